"""
Hybrid RAG retrieval.

Usage:
    python main.py --task ingest --csv data/documents.csv                      # chunk, embed, store
    python main.py --task search --query "vector databases" --top-k 5          # hybrid search
    python main.py --task search --query "python AND NOT java" --advanced      # tsquery operators
    python main.py --task compare --query "vector databases" --llm             # filter mode comparison
    python scripts/evaluate.py                                                 # Evaluation
"""

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path

from hybrid_rag.config.settings import settings
from hybrid_rag.errors import InvalidConfigurationError
from hybrid_rag.logger import setup_logging, get_logger
from hybrid_rag.db.connection import check_connection
from hybrid_rag.ingestion.pipeline import IngestionPipeline
from hybrid_rag.retrieval.hybrid import HybridSearchPipeline, build_config
from hybrid_rag.retrieval.models import SearchResponse, QualityMetrics
from hybrid_rag.retrieval.quality import SearchQualityComparator
from hybrid_rag.services.embedding import create_embedding_service

setup_logging()
logger = get_logger("main")


@dataclass
class Dependencies:
    """Shared services."""
    pipeline: HybridSearchPipeline
    comparator: SearchQualityComparator


def run_ingest(csv_path: Path, force: bool) -> int:
    count = IngestionPipeline().ingest_csv(csv_path, skip_existing=not force)

    print(f"\n{'='*70}")
    print(f" INGEST: {count} chunks stored from {csv_path}")
    print(f"{'='*70}\n")
    return count


def run_search(query: str, overrides: dict, deps: Dependencies) -> SearchResponse:
    config = build_config(**overrides)
    response = deps.pipeline.run(query, config)

    print(f"\n{'='*70}")
    print(f" SEARCH: Top-{config.top_k} ({config.rerank_strategy.value}) [{response.status.value}]")
    print(f" Query: {query[:100]}")
    if response.degraded_sources:
        print(f" Degraded: {', '.join(response.degraded_sources)}")
    print(f"{'='*70}\n")

    for r in response.results:
        llm = f" | LLM: {r.llm_score:.3f}" if r.llm_score is not None else ""
        print(f"  [{r.relevance_rank or '-'}] Combined: {r.combined_score:.4f}{llm}  ({r.source.value})")
        sem = f"{r.semantic_score:.4f}" if r.semantic_score is not None else "-"
        kw = f"{r.keyword_score:.4f}" if r.keyword_score is not None else "-"
        print(f"      Semantic: {sem} | Keyword: {kw}")
        print(f"      Document: {r.document_name} #{r.chunk_index}")
        print(f"      Text: {r.text[:200]}...\n")

    if not response.results:
        print("  No results.\n")

    _save(response.model_dump(mode="json"), "search_results.json", "search_saved")
    return response


def run_compare(query: str, overrides: dict, use_llm: bool, deps: Dependencies) -> QualityMetrics:
    config = build_config(**overrides)
    records = deps.pipeline.candidates(query, config)
    metrics = deps.comparator.compare_modes(
        records,
        query,
        filter_threshold=config.min_score_threshold,
        use_llm_rescoring=use_llm,
        llm_filter_threshold=config.relevance_filter_threshold,
    )

    print(f"\n{'='*70}")
    print(f" COMPARE: {metrics.count_before} candidates")
    print(f" Query: {query[:100]}")
    print(f"{'='*70}\n")

    for mode in (metrics.no_filter, metrics.threshold_filter, metrics.llm_filter):
        if not mode.enabled:
            print(f"  {mode.mode:<18} disabled")
            continue
        print(
            f"  {mode.mode:<18} kept {mode.count_after:>3}, removed {mode.count_removed:>3} "
            f"({mode.percentage_removed:.1f}%), avg score {mode.avg_score_after:.4f}"
        )
    print(f"\n  {metrics.comment}\n")

    _save(metrics.model_dump(mode="json"), "quality_metrics.json", "compare_saved")
    return metrics


def _save(payload: dict, filename: str, event: str) -> None:
    output_path = Path(settings.output_dir) / filename
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    logger.info(event, path=str(output_path))


def build_overrides(args: argparse.Namespace) -> dict:
    """PipelineConfig overrides from CLI flags. Unset flags fall back to settings."""
    overrides = {
        "top_k": args.top_k,
        "rerank_strategy": args.strategy,
        "min_score_threshold": args.threshold,
        "max_chunks_per_document": args.max_per_doc,
        "document_id": args.document_id,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.dedup:
        overrides["remove_duplicates"] = True
    if args.advanced:
        overrides["advanced_keyword_query"] = True
    if args.llm and args.task == "search":
        # Results keep the rescorer's llm_score order
        overrides["use_llm_rescoring"] = True
        overrides["sort_by_score"] = False
    return overrides


# CLI
def main():
    parser = argparse.ArgumentParser(description="Hybrid RAG retrieval")
    parser.add_argument("--task", type=str, choices=["ingest", "search", "compare"], required=True)
    parser.add_argument("--query", type=str, default="")
    parser.add_argument("--csv", type=str, default=str(Path(settings.data_dir) / "documents.csv"))
    parser.add_argument("--force", action="store_true", help="ingest even if chunks already exist")
    parser.add_argument("--top-k", type=int, default=None)
    parser.add_argument("--strategy", type=str, choices=["WEIGHTED_SUM", "MAX_SCORE", "RRF"])
    parser.add_argument("--threshold", type=float, default=None)
    parser.add_argument("--max-per-doc", type=int, default=None)
    parser.add_argument("--dedup", action="store_true")
    parser.add_argument("--document-id", type=int, default=None)
    parser.add_argument("--advanced", action="store_true", help="AND/OR/NOT keyword syntax")
    parser.add_argument("--llm", action="store_true", help="LLM rescoring")
    args = parser.parse_args()

    if not check_connection():
        logger.error("Database unavailable")
        sys.exit(1)

    if args.task == "ingest":
        run_ingest(Path(args.csv), args.force)
        return

    if not args.query.strip():
        parser.error("--query is required for search and compare")

    overrides = build_overrides(args)

    deps = Dependencies(
        pipeline=HybridSearchPipeline(embedding_service=create_embedding_service()),
        comparator=SearchQualityComparator(),
    )

    try:
        if args.task == "search":
            run_search(args.query, overrides, deps)
        else:
            run_compare(args.query, overrides, args.llm, deps)
    except InvalidConfigurationError as e:
        logger.error("invalid_configuration", errors=e.errors)
        sys.exit(2)


if __name__ == "__main__":
    main()
