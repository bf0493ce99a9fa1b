"""
Search quality comparison across three filtering modes.

    no_filter         merged + reranked results as they are
    threshold_filter  ThresholdRelevanceFilter on combined_score
    llm_filter        LLM rescoring, then LlmScoreRelevanceFilter on llm_score

Reports how many results each mode keeps and how the scores shift, so a
threshold can be tuned against real queries.
"""

import time

from hybrid_rag.config.settings import settings
from hybrid_rag.retrieval.filters import LlmScoreRelevanceFilter, ThresholdRelevanceFilter
from hybrid_rag.retrieval.llm_rescorer import LlmRescorer
from hybrid_rag.retrieval.models import MergedRecord, ModeMetrics, QualityMetrics
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


class SearchQualityComparator:
    def __init__(self, rescorer: LlmRescorer | None = None):
        self._rescorer = rescorer

    @property
    def rescorer(self) -> LlmRescorer:
        if self._rescorer is None:
            self._rescorer = LlmRescorer()
        return self._rescorer

    def compare_modes(
        self,
        records: list[MergedRecord],
        query: str,
        filter_threshold: float | None = None,
        use_llm_rescoring: bool = False,
        llm_filter_threshold: float | None = None,
    ) -> QualityMetrics:
        start = time.perf_counter()
        filter_threshold = (
            settings.min_score_threshold if filter_threshold is None else filter_threshold
        )
        llm_filter_threshold = (
            settings.llm_filter_threshold if llm_filter_threshold is None else llm_filter_threshold
        )
        records = list(records)

        no_filter = records
        threshold_kept = ThresholdRelevanceFilter(filter_threshold).filter(records)
        if use_llm_rescoring and records:
            rescored = self.rescorer.rescore(records, query)
            llm_kept = LlmScoreRelevanceFilter(llm_filter_threshold).filter(rescored)
        else:
            llm_kept = []

        scores = _combined(records)
        threshold_metrics = _mode_metrics("threshold_filter", records, threshold_kept)
        llm_metrics = _mode_metrics("llm_filter", records, llm_kept, enabled=use_llm_rescoring)

        metrics = QualityMetrics(
            query=query,
            count_before=len(records),
            avg_score_before=_mean(scores),
            min_score_before=min(scores, default=0.0),
            max_score_before=max(scores, default=0.0),
            filter_threshold=filter_threshold,
            llm_filter_threshold=llm_filter_threshold,
            no_filter=_mode_metrics("no_filter", records, no_filter),
            threshold_filter=threshold_metrics,
            llm_filter=llm_metrics,
            execution_time_ms=round((time.perf_counter() - start) * 1000, 2),
            comment=_comment(threshold_metrics, llm_metrics, _mean(scores)),
        )

        logger.info(
            "quality_compared",
            query=query[:100],
            before=metrics.count_before,
            after_threshold=threshold_metrics.count_after,
            after_llm=llm_metrics.count_after if use_llm_rescoring else None,
        )
        return metrics


def _combined(records: list[MergedRecord]) -> list[float]:
    return [r.combined_score or 0.0 for r in records]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _mode_metrics(
    mode: str,
    before: list[MergedRecord],
    after: list[MergedRecord],
    enabled: bool = True,
) -> ModeMetrics:
    if not enabled:
        return ModeMetrics(mode=mode, enabled=False)

    removed = len(before) - len(after)
    scores = _combined(after)
    llm_scores = [r.llm_score for r in after if r.llm_score is not None]
    return ModeMetrics(
        mode=mode,
        count_after=len(after),
        count_removed=removed,
        percentage_removed=removed / len(before) * 100 if before else 0.0,
        avg_score_after=_mean(scores),
        min_score_after=min(scores, default=0.0),
        max_score_after=max(scores, default=0.0),
        avg_llm_score_after=_mean(llm_scores) if llm_scores else None,
        chunk_ids=[r.chunk_id for r in after],
    )


def _comment(threshold: ModeMetrics, llm: ModeMetrics, avg_before: float) -> str:
    parts = [
        f"Threshold filter removed {threshold.count_removed} "
        f"({threshold.percentage_removed:.1f}%), avg score "
        f"{avg_before:.4f} -> {threshold.avg_score_after:.4f}"
    ]
    if llm.enabled:
        parts.append(
            f"LLM filter removed {llm.count_removed} ({llm.percentage_removed:.1f}%), "
            f"avg llm score {llm.avg_llm_score_after or 0.0:.4f}"
        )
    else:
        parts.append("LLM filter disabled")
    return ". ".join(parts)
