"""Relevance filters: policy objects applied between reranking and finalization."""

import abc

from hybrid_rag.retrieval.models import FilterType, MergedRecord
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


class RelevanceFilter(abc.ABC):
    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @property
    @abc.abstractmethod
    def description(self) -> str: ...

    @abc.abstractmethod
    def filter(self, records: list[MergedRecord]) -> list[MergedRecord]: ...


class ThresholdRelevanceFilter(RelevanceFilter):
    """Keeps records with combined_score >= threshold."""

    def __init__(self, threshold: float):
        self.threshold = min(1.0, max(0.0, threshold))

    @property
    def name(self) -> str:
        return f"ThresholdFilter_{self.threshold:.4f}"

    @property
    def description(self) -> str:
        return f"Filters results with combined_score < {self.threshold:.4f}"

    def filter(self, records: list[MergedRecord]) -> list[MergedRecord]:
        kept = [r for r in records if (r.combined_score or 0.0) >= self.threshold]
        _log_filtered(self.name, records, kept)
        return kept


class LlmScoreRelevanceFilter(RelevanceFilter):
    """Keeps records whose llm_score >= threshold. Unscored records fail."""

    def __init__(self, threshold: float):
        self.threshold = min(1.0, max(0.0, threshold))

    @property
    def name(self) -> str:
        return f"LlmFilter_{self.threshold:.2f}"

    @property
    def description(self) -> str:
        return f"LLM-based filter: removes results with llm_score < {self.threshold:.4f}"

    def filter(self, records: list[MergedRecord]) -> list[MergedRecord]:
        kept = [r for r in records if r.llm_score is not None and r.llm_score >= self.threshold]
        _log_filtered(self.name, records, kept)
        return kept


class NoopRelevanceFilter(RelevanceFilter):
    name = "NoopFilter"
    description = "No filtering applied"

    def filter(self, records: list[MergedRecord]) -> list[MergedRecord]:
        return list(records)


_FILTERS: dict[FilterType, type[RelevanceFilter]] = {
    FilterType.THRESHOLD: ThresholdRelevanceFilter,
    FilterType.LLM_SCORE: LlmScoreRelevanceFilter,
}


def create_filter(kind: FilterType | str, threshold: float = 0.0) -> RelevanceFilter:
    """Build the filter for a FilterType. NOOP ignores the threshold."""
    filter_cls = _FILTERS.get(FilterType(kind))
    if filter_cls is None:
        return NoopRelevanceFilter()
    return filter_cls(threshold)


def _log_filtered(name: str, before: list[MergedRecord], after: list[MergedRecord]) -> None:
    removed = len(before) - len(after)
    logger.info(
        "relevance_filter_applied",
        filter=name,
        before=len(before),
        after=len(after),
        removed=removed,
        removed_pct=round(removed / len(before) * 100, 1) if before else 0.0,
    )
