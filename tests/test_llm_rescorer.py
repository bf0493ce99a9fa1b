"""Tests for LLM rescoring and its synthetic fallback.

The fallback guarantee: whatever the model does (raise, hang, answer with
prose), every record comes back with an llm_score in [0, 1].
"""

import asyncio
import time

import pytest

from fakes import FakeLLM
from hybrid_rag.errors import MalformedModelOutputError
from hybrid_rag.retrieval.llm_rescorer import LlmRescorer, SyntheticScorer, parse_scores

QUERY = "vector database indexing"


@pytest.fixture
def records(make_record):
    return [
        make_record(1, semantic=0.9, combined=0.9, text="Vector database indexing with HNSW graphs."),
        make_record(2, semantic=0.7, combined=0.7, text="A recipe for lemon cake."),
        make_record(3, keyword=0.6, combined=0.24, text="Indexing strategies for a vector store."),
    ]


class TestParseScores:
    def test_plain_array(self) -> None:
        assert parse_scores("[0.9, 0.5, 0.1]") == pytest.approx([0.9, 0.5, 0.1])

    def test_array_inside_prose(self) -> None:
        assert parse_scores("Sure! Here you go: [0.3, 0.7]\nHope it helps.") == pytest.approx(
            [0.3, 0.7]
        )

    def test_values_clamped_and_junk_skipped(self) -> None:
        assert parse_scores("[1.5, -0.2, high, 0.4]") == pytest.approx([1.0, 0.0, 0.4])

    @pytest.mark.parametrize("response", ["", "   ", "no scores here", "] 0.5 [", "[]", "[a, b]"])
    def test_malformed(self, response) -> None:
        with pytest.raises(MalformedModelOutputError):
            parse_scores(response)


class TestSyntheticScorer:
    @pytest.mark.parametrize(
        "length, bonus",
        [(10, 0.2), (49, 0.2), (50, 0.6), (299, 0.6), (300, 1.0), (1000, 1.0),
         (1001, 0.9), (2000, 0.9), (2001, 0.7)],
    )
    def test_length_bands(self, length, bonus) -> None:
        assert SyntheticScorer.length_bonus("x" * length) == bonus

    def test_keyword_overlap_counts_long_matches_over_all_words(self) -> None:
        scorer = SyntheticScorer()
        # "is" and "a" cannot match but still count in the denominator
        assert scorer.keyword_overlap("is a vector".split(), "vector") == pytest.approx(1 / 3)
        assert scorer.keyword_overlap("is a vector database fast".split(), "a vector index") == (
            pytest.approx(1 / 5)
        )

    def test_short_query_words_lower_the_score(self) -> None:
        scorer = SyntheticScorer()
        assert scorer.score("is a vector", "vector") < scorer.score("vector", "vector")
        # 0.6 * 1/3 + 0.2 * 0.2 + 0.2 * 1.0
        assert scorer.score("is a vector", "vector") == pytest.approx(0.44)

    def test_position_bonus_skips_short_words(self) -> None:
        scorer = SyntheticScorer()
        assert scorer.position_bonus(["a", "vector"], "a long vector") == pytest.approx(
            scorer.position_bonus(["vector"], "a long vector")
        )

    def test_position_bonus_prefers_early_matches(self) -> None:
        scorer = SyntheticScorer()
        early = scorer.position_bonus(["vector"], "vector search engines")
        late = scorer.position_bonus(["vector"], "search engines for vector")
        assert early == pytest.approx(1.0)
        assert late < early

    def test_blend(self) -> None:
        # overlap 1.0 * 0.6 + length(6 chars) 0.2 * 0.2 + position 1.0 * 0.2
        assert SyntheticScorer().score("vector", "Vector") == pytest.approx(0.84)

    def test_blank_inputs_score_zero(self) -> None:
        scorer = SyntheticScorer()
        assert scorer.score("", "some text") == 0.0
        assert scorer.score("query", "   ") == 0.0

    def test_deterministic_and_bounded(self, records) -> None:
        scorer = SyntheticScorer()
        for r in records:
            first = scorer.score(QUERY, r.text)
            assert first == scorer.score(QUERY, r.text)
            assert 0.0 <= first <= 1.0


class TestLlmRescorer:
    def test_scores_assigned_and_sorted(self, records) -> None:
        llm = FakeLLM(responses=["[0.2, 0.1, 0.95]"])
        rescored = LlmRescorer(llm_client=llm, batch_size=5).rescore(records, QUERY)

        assert [r.chunk_id for r in rescored] == [3, 1, 2]
        assert [r.llm_score for r in rescored] == pytest.approx([0.95, 0.2, 0.1])
        assert llm.calls == 1

    def test_one_call_per_batch(self, records) -> None:
        llm = FakeLLM(responses=["[0.5, 0.5]", "[0.5]"])
        LlmRescorer(llm_client=llm, batch_size=2).rescore(records, QUERY)
        assert llm.calls == 2

    def test_missing_trailing_scores_are_zero(self, records) -> None:
        llm = FakeLLM(responses=["[0.7]"])
        rescored = LlmRescorer(llm_client=llm, batch_size=5).rescore(records, QUERY)
        by_id = {r.chunk_id: r.llm_score for r in rescored}
        assert by_id == {1: 0.7, 2: 0.0, 3: 0.0}

    @pytest.mark.parametrize(
        "llm",
        [
            FakeLLM(error=RuntimeError("provider down")),
            FakeLLM(error=TimeoutError()),
            FakeLLM(responses=["I think the first one is best."]),
            FakeLLM(responses=[""]),
        ],
    )
    def test_fallback_guarantee(self, records, llm) -> None:
        """Any model failure yields the synthetic score, never an exception."""
        rescored = LlmRescorer(llm_client=llm, batch_size=5).rescore(records, QUERY)

        scorer = SyntheticScorer()
        assert len(rescored) == len(records)
        for r in rescored:
            assert 0.0 <= r.llm_score <= 1.0
            assert r.llm_score == pytest.approx(scorer.score(QUERY, r.text))

    def test_fallback_is_per_batch(self, records) -> None:
        llm = FakeLLM(responses=["[0.99, 0.98]", "garbage"])
        rescored = LlmRescorer(llm_client=llm, batch_size=2, max_concurrency=1).rescore(
            records, QUERY
        )
        by_id = {r.chunk_id: r.llm_score for r in rescored}
        assert by_id[1] == pytest.approx(0.99)
        assert by_id[2] == pytest.approx(0.98)
        assert by_id[3] == pytest.approx(SyntheticScorer().score(QUERY, records[2].text))

    def test_timeout_falls_back(self, records) -> None:
        llm = FakeLLM(responses=["[1.0, 1.0, 1.0]"], delay=0.5)
        rescored = LlmRescorer(llm_client=llm, timeout_seconds=0.05).rescore(records, QUERY)
        assert all(r.llm_score != 1.0 for r in rescored)

    def test_timeout_bounds_sync_call(self, records) -> None:
        """A hung model call must not hold rescore() past the batch timeout."""
        llm = FakeLLM(responses=["[1.0, 1.0, 1.0]"], delay=2.0)
        started = time.monotonic()
        rescored = LlmRescorer(llm_client=llm, timeout_seconds=0.05).rescore(records, QUERY)
        assert time.monotonic() - started < 1.0
        assert len(rescored) == len(records)

    def test_synthetic_mode_makes_no_calls(self, records) -> None:
        llm = FakeLLM(responses=["[1.0, 1.0, 1.0]"])
        rescored = LlmRescorer(llm_client=llm, mode="synthetic").rescore(records, QUERY)
        assert llm.calls == 0
        assert all(r.llm_score is not None for r in rescored)

    def test_inputs_untouched(self, records) -> None:
        LlmRescorer(llm_client=FakeLLM(responses=["[0.1, 0.2, 0.3]"])).rescore(records, QUERY)
        assert all(r.llm_score is None for r in records)

    def test_empty(self) -> None:
        llm = FakeLLM()
        assert LlmRescorer(llm_client=llm).rescore([], QUERY) == []
        assert llm.calls == 0

    def test_cancellation_skips_pending_batches(self, records) -> None:
        llm = FakeLLM(responses=["[0.5]"] * 3, delay=0.3)
        rescorer = LlmRescorer(llm_client=llm, batch_size=1, max_concurrency=1)

        async def cancel_midway():
            task = asyncio.create_task(rescorer.rescore_async(records, QUERY))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(cancel_midway())
        assert llm.calls == 1
