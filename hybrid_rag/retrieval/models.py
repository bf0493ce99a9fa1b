"""Retrieval domain models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from hybrid_rag.config.settings import settings


class RerankStrategyType(str, Enum):
    WEIGHTED_SUM = "WEIGHTED_SUM"
    MAX_SCORE = "MAX_SCORE"
    RRF = "RRF"


class FilterType(str, Enum):
    THRESHOLD = "THRESHOLD"
    LLM_SCORE = "LLM_SCORE"
    NOOP = "NOOP"


class ResultSource(str, Enum):
    SEMANTIC = "SEMANTIC"
    KEYWORD = "KEYWORD"
    BOTH = "BOTH"


class SearchStatus(str, Enum):
    SUCCESS = "SUCCESS"
    DEGRADED = "DEGRADED"  # at least one ranker failed, results come from the rest
    EMPTY = "EMPTY"  # nothing matched
    FAILED = "FAILED"  # every ranker failed


class ChunkHit(BaseModel):
    """One scored passage from one ranking source. Score is source-local."""

    chunk_id: int
    document_id: int
    document_name: str | None = None
    chunk_index: int = 0
    text: str
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    score: float

    model_config = {"frozen": True}


class MergedRecord(BaseModel):
    """A chunk carrying up to two source scores plus the fused and LLM scores."""

    chunk_id: int
    document_id: int
    document_name: str | None = None
    chunk_index: int = 0
    text: str
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    semantic_score: float | None = None
    keyword_score: float | None = None
    combined_score: float | None = None
    llm_score: float | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _has_a_source_score(self) -> "MergedRecord":
        if self.semantic_score is None and self.keyword_score is None:
            raise ValueError("semantic_score and keyword_score cannot both be null")
        return self

    @classmethod
    def from_hit(
        cls, hit: ChunkHit, semantic_score: float | None = None, keyword_score: float | None = None
    ) -> "MergedRecord":
        return cls(
            **hit.model_dump(exclude={"score"}),
            semantic_score=semantic_score,
            keyword_score=keyword_score,
        )

    def result_source(self) -> ResultSource:
        if self.semantic_score is not None and self.keyword_score is not None:
            return ResultSource.BOTH
        if self.semantic_score is not None:
            return ResultSource.SEMANTIC
        return ResultSource.KEYWORD


class FinalResult(MergedRecord):
    """Merged record plus position metadata in the final list."""

    relevance_rank: int | None = None
    relevance_percentile: float | None = None
    source: ResultSource


class PipelineConfig(BaseModel):
    """Immutable per-call parameters. Defaults come from settings."""

    top_k: int = Field(default_factory=lambda: settings.top_k, ge=1)
    min_score_threshold: float = Field(
        default_factory=lambda: settings.min_score_threshold, ge=0.0, le=1.0
    )
    semantic_weight: float = Field(default_factory=lambda: settings.semantic_weight, ge=0.0, le=1.0)
    keyword_weight: float = Field(default_factory=lambda: settings.keyword_weight, ge=0.0, le=1.0)
    max_chunks_per_document: int | None = Field(
        default_factory=lambda: settings.max_chunks_per_document, ge=1
    )
    remove_duplicates: bool = Field(default_factory=lambda: settings.remove_duplicates)
    duplicate_similarity_threshold: float = Field(
        default_factory=lambda: settings.duplicate_similarity_threshold, ge=0.0, le=1.0
    )
    rerank_strategy: RerankStrategyType = Field(
        default_factory=lambda: RerankStrategyType(settings.rerank_strategy)
    )
    rrf_k: int = Field(default_factory=lambda: settings.rrf_k, gt=0)
    include_metadata: bool = True
    sort_by_score: bool = True
    use_llm_rescoring: bool = False
    relevance_filter: FilterType = FilterType.NOOP
    relevance_filter_threshold: float = Field(
        default_factory=lambda: settings.llm_filter_threshold, ge=0.0, le=1.0
    )
    document_id: int | None = None
    advanced_keyword_query: bool = False

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _rank_scale_threshold(cls, data: Any) -> Any:
        # RRF scores stay below 2 / (rrf_k + 1), under the score-scale default threshold
        if isinstance(data, dict) and data.get("min_score_threshold") is None:
            strategy = data.get("rerank_strategy") or settings.rerank_strategy
            if getattr(strategy, "value", strategy) == RerankStrategyType.RRF.value:
                data = {**data, "min_score_threshold": 0.0}
        return data


class SearchResponse(BaseModel):
    """Outcome of one search: distinguishes 'nothing matched' from 'a dependency failed'."""

    query: str
    status: SearchStatus
    results: list[FinalResult] = Field(default_factory=list)
    degraded_sources: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ModeMetrics(BaseModel):
    """Statistics of one filtering mode against the unfiltered input."""

    mode: str
    enabled: bool = True
    count_after: int = 0
    count_removed: int = 0
    percentage_removed: float = 0.0
    avg_score_after: float = 0.0
    min_score_after: float = 0.0
    max_score_after: float = 0.0
    avg_llm_score_after: float | None = None
    chunk_ids: list[int] = Field(default_factory=list)


class QualityMetrics(BaseModel):
    """Side-by-side comparison of no filter, threshold filter and LLM filter."""

    query: str
    count_before: int
    avg_score_before: float
    min_score_before: float
    max_score_before: float
    filter_threshold: float
    llm_filter_threshold: float
    no_filter: ModeMetrics
    threshold_filter: ModeMetrics
    llm_filter: ModeMetrics
    execution_time_ms: float = 0.0
    comment: str = ""
