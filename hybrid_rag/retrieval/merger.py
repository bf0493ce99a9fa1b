"""
Merge semantic and keyword hits into one record per chunk.

A chunk found by only one source gets 0 for the other source, so it is
penalized relative to a chunk both sources agree on:

    semantic: [(c1, 0.89), (c3, 0.82)]     keyword: [(c2, 0.95), (c1, 0.88)]
    c1 = 0.6 * 0.89 + 0.4 * 0.88 = 0.886
    c3 = 0.6 * 0.82              = 0.492
    c2 =              0.4 * 0.95 = 0.380
"""

from hybrid_rag.retrieval.models import ChunkHit, MergedRecord
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


def normalize_weights(semantic_weight: float, keyword_weight: float) -> tuple[float, float]:
    """Scale the two weights to sum to 1. Non-positive totals fall back to 0.5 / 0.5."""
    total = semantic_weight + keyword_weight
    if total <= 0:
        return 0.5, 0.5
    return semantic_weight / total, keyword_weight / total


class ResultMerger:
    def merge(
        self,
        semantic_hits: list[ChunkHit] | None,
        keyword_hits: list[ChunkHit] | None,
        semantic_weight: float = 0.6,
        keyword_weight: float = 0.4,
        top_k: int | None = None,
    ) -> list[MergedRecord]:
        """Union both lists by chunk_id, score with the weighted sum, keep the best top_k."""
        semantic_hits = semantic_hits or []
        keyword_hits = keyword_hits or []
        sem_w, kw_w = normalize_weights(semantic_weight, keyword_weight)

        # chunk_id -> (first hit seen, semantic score, keyword score); insertion ordered
        entries: dict[int, tuple[ChunkHit, float | None, float | None]] = {}

        for hit in semantic_hits:
            entries[hit.chunk_id] = (hit, hit.score, None)

        for hit in keyword_hits:
            if hit.chunk_id in entries:
                first, semantic_score, _ = entries[hit.chunk_id]
                entries[hit.chunk_id] = (first, semantic_score, hit.score)
            else:
                entries[hit.chunk_id] = (hit, None, hit.score)

        merged = [
            MergedRecord.from_hit(hit, semantic_score=sem, keyword_score=kw).model_copy(
                update={"combined_score": sem_w * (sem or 0.0) + kw_w * (kw or 0.0)}
            )
            for hit, sem, kw in entries.values()
        ]
        merged.sort(key=lambda r: r.combined_score, reverse=True)
        if top_k is not None:
            merged = merged[:top_k]

        logger.info(
            "merge_done",
            semantic_hits=len(semantic_hits),
            keyword_hits=len(keyword_hits),
            unique=len(entries),
            kept=len(merged),
            semantic_weight=round(sem_w, 3),
            keyword_weight=round(kw_w, 3),
        )
        return merged
