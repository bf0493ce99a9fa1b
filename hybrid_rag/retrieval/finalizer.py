"""
Final result shaping.

Fixed order: sort -> score threshold -> dedup -> per-document cap -> top_k -> annotate.
Every step can be switched off through PipelineConfig.
"""

from collections import defaultdict

from hybrid_rag.retrieval.models import FinalResult, MergedRecord, PipelineConfig
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set overlap, case-insensitive, whitespace-tokenized."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a and not words_b:
        return 1.0
    return len(words_a & words_b) / len(words_a | words_b)


class Finalizer:
    def finalize(self, records: list[MergedRecord], config: PipelineConfig) -> list[FinalResult]:
        if not records:
            return []

        results = list(records)
        if config.sort_by_score:
            results.sort(key=lambda r: r.combined_score or 0.0, reverse=True)

        before = len(results)
        results = self._apply_threshold(results, config.min_score_threshold)
        after_threshold = len(results)

        if config.remove_duplicates:
            results = self._remove_duplicates(results, config.duplicate_similarity_threshold)
        after_dedup = len(results)

        if config.max_chunks_per_document is not None:
            results = self._cap_per_document(results, config.max_chunks_per_document)

        results = results[: config.top_k]
        final = self._annotate(results, config.include_metadata)

        logger.info(
            "finalize_done",
            input=before,
            after_threshold=after_threshold,
            after_dedup=after_dedup,
            output=len(final),
        )
        return final

    @staticmethod
    def _apply_threshold(records: list[MergedRecord], threshold: float) -> list[MergedRecord]:
        if threshold <= 0:
            return records
        return [r for r in records if (r.combined_score or 0.0) >= threshold]

    @staticmethod
    def _remove_duplicates(
        records: list[MergedRecord], similarity_threshold: float
    ) -> list[MergedRecord]:
        kept: list[MergedRecord] = []
        seen_texts: set[str] = set()
        check_similarity = similarity_threshold < 1.0

        for record in records:
            text = record.text.strip()
            if text in seen_texts:
                continue
            if check_similarity and any(
                jaccard_similarity(text, k.text) >= similarity_threshold for k in kept
            ):
                continue
            seen_texts.add(text)
            kept.append(record)

        if len(kept) < len(records):
            logger.debug("duplicates_removed", removed=len(records) - len(kept))
        return kept

    @staticmethod
    def _cap_per_document(records: list[MergedRecord], cap: int) -> list[MergedRecord]:
        counts: dict[int, int] = defaultdict(int)
        kept = []
        for record in records:
            if counts[record.document_id] >= cap:
                continue
            counts[record.document_id] += 1
            kept.append(record)
        return kept

    @staticmethod
    def _annotate(records: list[MergedRecord], include_metadata: bool) -> list[FinalResult]:
        total = len(records)
        final = []
        for i, record in enumerate(records):
            data = record.model_dump()
            data["source"] = record.result_source()
            if include_metadata:
                data["relevance_rank"] = i + 1
                data["relevance_percentile"] = (total - i) / total * 100
            final.append(FinalResult(**data))
        return final
