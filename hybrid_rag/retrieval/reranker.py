"""
Score fusion strategies.

WEIGHTED_SUM: w_s * semantic + w_k * keyword (weights normalized to sum to 1)
MAX_SCORE:    max(semantic, keyword), the single best signal wins
RRF:          score(d) = sum over sources of 1 / (k + rank_source(d))

RRF only looks at positions, so it is insensitive to the scale of the two
score systems (cosine similarity vs ts_rank). Missing scores count as 0 for
the score-based strategies and contribute nothing to RRF.
"""

import abc

from hybrid_rag.config.settings import settings
from hybrid_rag.errors import InvalidConfigurationError
from hybrid_rag.retrieval.merger import normalize_weights
from hybrid_rag.retrieval.models import MergedRecord, RerankStrategyType
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


class RerankStrategy(abc.ABC):
    """Computes one combined score per record, keyed by chunk_id."""

    kind: RerankStrategyType

    @classmethod
    def from_params(cls, semantic_weight: float, keyword_weight: float, rrf_k: int | None):
        return cls()

    @abc.abstractmethod
    def score(self, records: list[MergedRecord]) -> dict[int, float]: ...


class WeightedSumStrategy(RerankStrategy):
    kind = RerankStrategyType.WEIGHTED_SUM

    def __init__(self, semantic_weight: float = 0.6, keyword_weight: float = 0.4):
        _check_weight("semantic_weight", semantic_weight)
        _check_weight("keyword_weight", keyword_weight)
        self.semantic_weight, self.keyword_weight = normalize_weights(
            semantic_weight, keyword_weight
        )

    @classmethod
    def from_params(cls, semantic_weight, keyword_weight, rrf_k):
        return cls(semantic_weight, keyword_weight)

    def score(self, records: list[MergedRecord]) -> dict[int, float]:
        return {
            r.chunk_id: self.semantic_weight * (r.semantic_score or 0.0)
            + self.keyword_weight * (r.keyword_score or 0.0)
            for r in records
        }


class MaxScoreStrategy(RerankStrategy):
    kind = RerankStrategyType.MAX_SCORE

    def score(self, records: list[MergedRecord]) -> dict[int, float]:
        return {r.chunk_id: max(r.semantic_score or 0.0, r.keyword_score or 0.0) for r in records}


class ReciprocalRankFusionStrategy(RerankStrategy):
    kind = RerankStrategyType.RRF

    def __init__(self, k: int | None = None):
        self.k = k if k is not None else settings.rrf_k
        if self.k <= 0:
            raise InvalidConfigurationError([f"rrf_k: must be > 0, got {self.k}"])

    @classmethod
    def from_params(cls, semantic_weight, keyword_weight, rrf_k):
        return cls(rrf_k)

    def score(self, records: list[MergedRecord]) -> dict[int, float]:
        scores = {r.chunk_id: 0.0 for r in records}

        semantic_ranking = sorted(
            (r for r in records if r.semantic_score is not None),
            key=lambda r: r.semantic_score,
            reverse=True,
        )
        keyword_ranking = sorted(
            (r for r in records if r.keyword_score is not None),
            key=lambda r: r.keyword_score,
            reverse=True,
        )

        for ranking in (semantic_ranking, keyword_ranking):
            for rank, r in enumerate(ranking, start=1):
                scores[r.chunk_id] += 1.0 / (self.k + rank)

        logger.debug(
            "rrf_rankings",
            k=self.k,
            semantic_ranked=len(semantic_ranking),
            keyword_ranked=len(keyword_ranking),
        )
        return scores


_STRATEGIES: dict[RerankStrategyType, type[RerankStrategy]] = {
    RerankStrategyType.WEIGHTED_SUM: WeightedSumStrategy,
    RerankStrategyType.MAX_SCORE: MaxScoreStrategy,
    RerankStrategyType.RRF: ReciprocalRankFusionStrategy,
}


def create_strategy(
    kind: RerankStrategyType | str,
    semantic_weight: float = 0.6,
    keyword_weight: float = 0.4,
    rrf_k: int | None = None,
) -> RerankStrategy:
    """Map a strategy name to a configured instance."""
    strategy_cls = _STRATEGIES[RerankStrategyType(kind)]
    return strategy_cls.from_params(semantic_weight, keyword_weight, rrf_k)


class Reranker:
    def rerank(self, records: list[MergedRecord], strategy: RerankStrategy) -> list[MergedRecord]:
        """Return new records with combined_score set, sorted descending (stable on ties)."""
        if not records:
            logger.info("rerank_skipped", reason="no_records")
            return []

        scores = strategy.score(records)
        reranked = [r.model_copy(update={"combined_score": scores[r.chunk_id]}) for r in records]
        reranked.sort(key=lambda r: r.combined_score, reverse=True)

        logger.info("rerank_done", strategy=strategy.kind.value, records=len(reranked))
        return reranked


def _check_weight(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InvalidConfigurationError([f"{name}: must be within [0.0, 1.0], got {value}"])
