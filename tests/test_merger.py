"""Tests for merging semantic and keyword hits."""

import pytest

from hybrid_rag.retrieval.merger import ResultMerger, normalize_weights


class TestNormalizeWeights:
    def test_scaled_to_one(self) -> None:
        assert normalize_weights(0.3, 0.2) == pytest.approx((0.6, 0.4))

    def test_zero_total_falls_back_to_equal(self) -> None:
        assert normalize_weights(0.0, 0.0) == (0.5, 0.5)


class TestMerge:
    """Union by chunk_id with weighted-sum scoring."""

    def test_completeness(self, example_hits) -> None:
        """One record per distinct chunk_id, source scores copied or left null."""
        semantic, keyword = example_hits
        merged = {r.chunk_id: r for r in ResultMerger().merge(semantic, keyword)}

        assert set(merged) == {1, 2, 3}
        assert merged[1].semantic_score == 0.89 and merged[1].keyword_score == 0.88
        assert merged[2].semantic_score is None and merged[2].keyword_score == 0.95
        assert merged[3].semantic_score == 0.82 and merged[3].keyword_score is None

    def test_weighted_sum_example(self, example_hits) -> None:
        semantic, keyword = example_hits
        merged = ResultMerger().merge(semantic, keyword, semantic_weight=0.6, keyword_weight=0.4)

        assert [r.chunk_id for r in merged] == [1, 3, 2]
        assert merged[0].combined_score == pytest.approx(0.886, abs=1e-3)
        assert merged[1].combined_score == pytest.approx(0.492, abs=1e-3)
        assert merged[2].combined_score == pytest.approx(0.380, abs=1e-3)

    def test_top_k_truncates(self, example_hits) -> None:
        semantic, keyword = example_hits
        assert len(ResultMerger().merge(semantic, keyword, top_k=2)) == 2

    def test_keyword_only_record_keeps_keyword_hit_fields(self, make_hit) -> None:
        merged = ResultMerger().merge([], [make_hit(7, 0.5, document_id=4, text="kw text")])
        assert merged[0].document_id == 4
        assert merged[0].text == "kw text"

    def test_empty_inputs(self) -> None:
        assert ResultMerger().merge([], []) == []
        assert ResultMerger().merge(None, None) == []

    def test_inputs_are_not_mutated(self, example_hits) -> None:
        semantic, keyword = example_hits
        before = [h.model_dump() for h in semantic + keyword]
        ResultMerger().merge(semantic, keyword)
        assert [h.model_dump() for h in semantic + keyword] == before
