"""Tests for the three-mode search quality comparison."""

import pytest

from fakes import FakeLLM
from hybrid_rag.retrieval.llm_rescorer import LlmRescorer
from hybrid_rag.retrieval.quality import SearchQualityComparator


@pytest.fixture
def records(make_record):
    return [
        make_record(1, semantic=0.9, combined=0.9),
        make_record(2, semantic=0.6, combined=0.6),
        make_record(3, keyword=0.5, combined=0.2),
        make_record(4, keyword=0.3, combined=0.1),
    ]


class TestCompareModes:
    def test_threshold_mode_statistics(self, records) -> None:
        metrics = SearchQualityComparator().compare_modes(records, "q", filter_threshold=0.5)

        assert metrics.count_before == 4
        assert metrics.avg_score_before == pytest.approx(0.45)
        assert metrics.min_score_before == pytest.approx(0.1)
        assert metrics.max_score_before == pytest.approx(0.9)

        threshold = metrics.threshold_filter
        assert threshold.chunk_ids == [1, 2]
        assert threshold.count_removed == 2
        assert threshold.percentage_removed == pytest.approx(50.0)
        assert threshold.avg_score_after == pytest.approx(0.75)
        assert threshold.min_score_after == pytest.approx(0.6)

    def test_no_filter_keeps_everything(self, records) -> None:
        metrics = SearchQualityComparator().compare_modes(records, "q", filter_threshold=0.5)
        assert metrics.no_filter.count_after == 4
        assert metrics.no_filter.count_removed == 0

    def test_llm_mode_disabled_by_default(self, records) -> None:
        llm = FakeLLM()
        metrics = SearchQualityComparator(LlmRescorer(llm_client=llm)).compare_modes(records, "q")

        assert metrics.llm_filter.enabled is False
        assert metrics.llm_filter.count_after == 0
        assert llm.calls == 0
        assert "LLM filter disabled" in metrics.comment

    def test_llm_mode(self, records) -> None:
        rescorer = LlmRescorer(llm_client=FakeLLM(responses=["[0.8, 0.2, 0.9, 0.4]"]), batch_size=10)
        metrics = SearchQualityComparator(rescorer).compare_modes(
            records, "q", filter_threshold=0.5, use_llm_rescoring=True, llm_filter_threshold=0.5
        )

        llm = metrics.llm_filter
        assert llm.enabled is True
        assert sorted(llm.chunk_ids) == [1, 3]
        assert llm.count_removed == 2
        assert llm.avg_llm_score_after == pytest.approx(0.85)
        assert metrics.llm_filter_threshold == 0.5

    def test_defaults_from_settings(self, records) -> None:
        metrics = SearchQualityComparator().compare_modes(records, "q")
        assert metrics.filter_threshold == 0.3
        assert metrics.llm_filter_threshold == 0.5

    def test_empty_input(self) -> None:
        metrics = SearchQualityComparator().compare_modes([], "q", use_llm_rescoring=True)
        assert metrics.count_before == 0
        assert metrics.avg_score_before == 0.0
        assert metrics.threshold_filter.percentage_removed == 0.0
