"""
Hybrid search pipeline.

Why hybrid? Semantic search misses exact entity names.
Keyword search misses paraphrases.

    embed query ─> semantic ranker ─┐
                                    ├─> merge ─> rerank ─> [LLM rescore] ─> filter ─> finalize
    keyword ranker ─────────────────┘

The two rankers run concurrently. If one of them fails the search continues
with the other and the response is marked DEGRADED; if both fail the response
is FAILED with no results. Neither case raises.
"""

import asyncio

from pydantic import ValidationError

from hybrid_rag.config.settings import settings
from hybrid_rag.errors import InvalidConfigurationError, ProviderUnavailableError
from hybrid_rag.ingestion.chunker import chunk_text
from hybrid_rag.retrieval.filters import create_filter
from hybrid_rag.retrieval.finalizer import Finalizer
from hybrid_rag.retrieval.llm_rescorer import LlmRescorer
from hybrid_rag.retrieval.merger import ResultMerger
from hybrid_rag.retrieval.models import (
    ChunkHit,
    FilterType,
    FinalResult,
    MergedRecord,
    PipelineConfig,
    RerankStrategyType,
    SearchResponse,
    SearchStatus,
)
from hybrid_rag.retrieval.rankers import (
    KeywordRanker,
    PgVectorSemanticRanker,
    PostgresKeywordRanker,
    SemanticRanker,
)
from hybrid_rag.retrieval.reranker import Reranker, create_strategy
from hybrid_rag.services.embedding import BaseEmbeddingService, create_embedding_service
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

# Under WEIGHTED_SUM a source weighted below this contributes nothing worth a lookup
MIN_SOURCE_WEIGHT = 0.01


def build_config(**overrides) -> PipelineConfig:
    """Validate per-request parameters. Unset fields fall back to settings."""
    try:
        return PipelineConfig(**overrides)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        ]
        raise InvalidConfigurationError(messages) from e


class HybridSearchPipeline:
    def __init__(
        self,
        semantic_ranker: SemanticRanker | None = None,
        keyword_ranker: KeywordRanker | None = None,
        embedding_service: BaseEmbeddingService | None = None,
        rescorer: LlmRescorer | None = None,
    ):
        self.semantic_ranker = semantic_ranker or PgVectorSemanticRanker()
        self.keyword_ranker = keyword_ranker or PostgresKeywordRanker()
        self.embedding_service = embedding_service or create_embedding_service()
        self._rescorer = rescorer
        self.merger = ResultMerger()
        self.reranker = Reranker()
        self.finalizer = Finalizer()

    @property
    def rescorer(self) -> LlmRescorer:
        if self._rescorer is None:
            self._rescorer = LlmRescorer()
        return self._rescorer

    @staticmethod
    def chunk_text(text: str, chunk_size: int | None = None, overlap: int | None = None) -> list[str]:
        return chunk_text(text, chunk_size, overlap)

    def search(self, query: str, config: PipelineConfig | None = None) -> list[FinalResult]:
        return self.run(query, config).results

    def run(self, query: str, config: PipelineConfig | None = None) -> SearchResponse:
        """Sync entry point. Use run_async from inside a running event loop."""
        return asyncio.run(self.run_async(query, config))

    async def search_async(
        self, query: str, config: PipelineConfig | None = None
    ) -> list[FinalResult]:
        response = await self.run_async(query, config)
        return response.results

    async def run_async(self, query: str, config: PipelineConfig | None = None) -> SearchResponse:
        if config is None:
            config = build_config()

        if not query or not query.strip():
            logger.info("empty_query")
            return SearchResponse(query=query or "", status=SearchStatus.EMPTY)

        ranked, failures = await self._rank_async(query, config)
        if ranked is None:
            logger.error("all_sources_failed", query=query[:100], sources=list(failures))
            return SearchResponse(
                query=query,
                status=SearchStatus.FAILED,
                degraded_sources=list(failures),
                errors=list(failures.values()),
            )

        if config.use_llm_rescoring and ranked:
            ranked = await self.rescorer.rescore_async(ranked, query)
        elif config.relevance_filter == FilterType.LLM_SCORE:
            logger.warning("llm_filter_without_rescoring", records=len(ranked))

        filtered = create_filter(config.relevance_filter, config.relevance_filter_threshold).filter(
            ranked
        )
        results = self.finalizer.finalize(filtered, config)

        if failures:
            status = SearchStatus.DEGRADED
        elif results:
            status = SearchStatus.SUCCESS
        else:
            status = SearchStatus.EMPTY

        logger.info(
            "hybrid_retrieval",
            status=status.value,
            strategy=config.rerank_strategy.value,
            candidates=len(ranked),
            filtered=len(filtered),
            results=len(results),
        )
        return SearchResponse(
            query=query,
            status=status,
            results=results,
            degraded_sources=list(failures),
            errors=list(failures.values()),
        )

    def candidates(self, query: str, config: PipelineConfig | None = None) -> list[MergedRecord]:
        """Merged and reranked records, before rescoring, filtering and finalization."""
        if config is None:
            config = build_config()
        if not query or not query.strip():
            return []
        ranked, _ = asyncio.run(self._rank_async(query, config))
        return ranked or []

    async def _rank_async(
        self, query: str, config: PipelineConfig
    ) -> tuple[list[MergedRecord] | None, dict[str, str]]:
        """Retrieve, merge and rerank. The list is None when every source failed."""
        strategy = create_strategy(
            config.rerank_strategy, config.semantic_weight, config.keyword_weight, config.rrf_k
        )
        hits, failures = await self._retrieve(
            query, config, config.top_k * settings.candidate_multiplier
        )
        if failures and not hits:
            return None, failures

        semantic_hits = hits.get("semantic", [])
        keyword_hits = hits.get("keyword", [])
        merged = self.merger.merge(
            semantic_hits, keyword_hits, config.semantic_weight, config.keyword_weight
        )
        ranked = self.reranker.rerank(merged, strategy)

        logger.debug(
            "candidates_ranked",
            semantic_hits=len(semantic_hits),
            keyword_hits=len(keyword_hits),
            merged=len(merged),
        )
        return ranked, failures

    async def _retrieve(
        self, query: str, config: PipelineConfig, limit: int
    ) -> tuple[dict[str, list[ChunkHit]], dict[str, str]]:
        """Run the active rankers concurrently. Returns hits of the sources that answered, and failures."""
        loop = asyncio.get_running_loop()
        lookups = {}
        if self._source_active(config.semantic_weight, config.keyword_weight, config):
            lookups["semantic"] = loop.run_in_executor(
                None, self._semantic_lookup, query, limit, config.document_id
            )
        if self._source_active(config.keyword_weight, config.semantic_weight, config):
            lookups["keyword"] = loop.run_in_executor(
                None,
                self._keyword_lookup,
                query,
                limit,
                config.document_id,
                config.advanced_keyword_query,
            )

        outcomes = await asyncio.gather(*lookups.values(), return_exceptions=True)

        hits: dict[str, list[ChunkHit]] = {}
        failures: dict[str, str] = {}
        for source, outcome in zip(lookups, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"{source}_search_failed", error=str(outcome))
                failures[source] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                hits[source] = outcome
        return hits, failures

    @staticmethod
    def _source_active(weight: float, other_weight: float, config: PipelineConfig) -> bool:
        if config.rerank_strategy != RerankStrategyType.WEIGHTED_SUM:
            return True
        return weight >= MIN_SOURCE_WEIGHT or other_weight < MIN_SOURCE_WEIGHT

    def _semantic_lookup(self, query: str, limit: int, document_id: int | None) -> list[ChunkHit]:
        try:
            vector = self.embedding_service.embed(query)
        except ProviderUnavailableError:
            raise
        except Exception as e:
            raise ProviderUnavailableError("embedding", str(e)) from e
        return self.semantic_ranker.search(
            vector, limit, settings.semantic_search_threshold, document_id
        )

    def _keyword_lookup(
        self, query: str, limit: int, document_id: int | None, advanced: bool
    ) -> list[ChunkHit]:
        return self.keyword_ranker.search(query, limit, document_id=document_id, advanced=advanced)
