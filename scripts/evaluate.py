"""
Check retrieval against expected documents: hit rate and MRR per strategy.

data/ground_truth.json:
    [{"query": "...", "expected_documents": ["doc-a", "doc-b"]}, ...]

Usage: python scripts/evaluate.py [--top-k 5]
"""

import argparse
import json
from pathlib import Path

from hybrid_rag.config.settings import settings
from hybrid_rag.logger import setup_logging
from hybrid_rag.retrieval.hybrid import HybridSearchPipeline, build_config
from hybrid_rag.retrieval.models import RerankStrategyType


def first_relevant_rank(document_names: list[str | None], expected: set[str]) -> int | None:
    for rank, name in enumerate(document_names, 1):
        if name in expected:
            return rank
    return None


def evaluate(top_k: int):
    ground_truth = json.loads((Path(settings.data_dir) / "ground_truth.json").read_text())
    pipeline = HybridSearchPipeline()

    print(f"\n{'='*50}")
    print(f" Evaluation: {len(ground_truth)} queries, top-{top_k}")
    print(f"{'='*50}\n")

    for strategy in RerankStrategyType:
        config = build_config(top_k=top_k, rerank_strategy=strategy)
        hits = 0
        reciprocal_ranks = 0.0
        for case in ground_truth:
            results = pipeline.search(case["query"], config)
            rank = first_relevant_rank(
                [r.document_name for r in results], set(case["expected_documents"])
            )
            if rank is not None:
                hits += 1
                reciprocal_ranks += 1.0 / rank

        total = len(ground_truth)
        hit_rate = hits / total if total else 0
        mrr = reciprocal_ranks / total if total else 0
        print(f"  {strategy.value:<13} hit rate {hits}/{total} ({hit_rate:.0%}), MRR {mrr:.3f}")
    print()


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser()
    parser.add_argument("--top-k", type=int, default=5)
    evaluate(parser.parse_args().top_k)
