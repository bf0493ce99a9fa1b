"""
LLM-based relevance rescoring.

Candidates are sent to the LLM in batches, one prompt per batch, and the
model answers with a JSON array of relevance scores. Batches run concurrently
(bounded by a semaphore). A batch whose call fails, times out or returns
something unparsable is scored by SyntheticScorer instead, which needs no
network call, so rescoring always completes.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

from hybrid_rag.config.settings import settings
from hybrid_rag.errors import MalformedModelOutputError
from hybrid_rag.retrieval.models import MergedRecord
from hybrid_rag.retrieval.prompts import RESCORING_PROMPT, format_passages
from hybrid_rag.services.llm import LLMClient
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

# (exclusive upper bound on passage length, bonus); longer passages get LENGTH_BONUS_DEFAULT
LENGTH_BONUS_BANDS = ((50, 0.2), (300, 0.6), (1001, 1.0), (2001, 0.9))
LENGTH_BONUS_DEFAULT = 0.7


def parse_scores(response: str | None) -> list[float]:
    """Pull the scores out of the first '[' ... last ']' span, clamped to [0, 1]."""
    if not response or not response.strip():
        raise MalformedModelOutputError("empty response")

    start = response.find("[")
    end = response.rfind("]")
    if start == -1 or end < start:
        raise MalformedModelOutputError(f"no JSON array in response: {response[:100]!r}")

    scores = []
    for part in response[start + 1 : end].split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = float(part)
        except ValueError:
            logger.warning("unparsable_score", value=part[:50])
            continue
        scores.append(min(1.0, max(0.0, value)))

    if not scores:
        raise MalformedModelOutputError("array contains no scores")
    return scores


class SyntheticScorer:
    """
    Deterministic relevance heuristic:

        keyword overlap  (60%)  share of query tokens found in the passage
        length bonus     (20%)  peaks for 300-1000 character passages
        position bonus   (20%)  earlier matches score higher
    """

    def __init__(
        self,
        keyword_weight: float | None = None,
        length_weight: float | None = None,
        position_weight: float | None = None,
        position_decay: float | None = None,
        min_token_length: int | None = None,
    ):
        self.keyword_weight = _default(keyword_weight, settings.synthetic_keyword_weight)
        self.length_weight = _default(length_weight, settings.synthetic_length_weight)
        self.position_weight = _default(position_weight, settings.synthetic_position_weight)
        self.position_decay = _default(position_decay, settings.synthetic_position_decay)
        self.min_token_length = _default(min_token_length, settings.synthetic_min_token_length)

    def score(self, query: str, text: str) -> float:
        if not query or not query.strip() or not text or not text.strip():
            return 0.0

        words = query.lower().split()
        lower_text = text.lower()

        blended = (
            self.keyword_weight * self.keyword_overlap(words, lower_text)
            + self.length_weight * self.length_bonus(text)
            + self.position_weight * self.position_bonus(words, lower_text)
        )
        return min(1.0, max(0.0, blended))

    def keyword_overlap(self, words: list[str], lower_text: str) -> float:
        """Matched long words over all query words; short words only dilute the score."""
        if not words:
            return 0.0
        matched = sum(1 for w in words if len(w) >= self.min_token_length and w in lower_text)
        return matched / len(words)

    @staticmethod
    def length_bonus(text: str) -> float:
        length = len(text)
        for limit, bonus in LENGTH_BONUS_BANDS:
            if length < limit:
                return bonus
        return LENGTH_BONUS_DEFAULT

    def position_bonus(self, words: list[str], lower_text: str) -> float:
        if not lower_text:
            return 0.0
        factors = []
        for word in words:
            if len(word) < self.min_token_length:
                continue
            index = lower_text.find(word)
            if index >= 0:
                factors.append(1.0 - self.position_decay * (index / len(lower_text)))
        if not factors:
            return 0.0
        return sum(factors) / len(factors)


class LlmRescorer:
    def __init__(
        self,
        llm_client: LLMClient | None = None,
        scorer: SyntheticScorer | None = None,
        batch_size: int | None = None,
        max_concurrency: int | None = None,
        timeout_seconds: float | None = None,
        mode: str | None = None,
    ):
        self.mode = (mode or settings.rescorer_mode).lower()
        self.llm = llm_client or (LLMClient() if self.mode == "llm" else None)
        self.scorer = scorer or SyntheticScorer()
        self.batch_size = batch_size or settings.rescorer_batch_size
        self.max_concurrency = max_concurrency or settings.rescorer_max_concurrency
        self.timeout_seconds = timeout_seconds or settings.rescorer_timeout_seconds

    def rescore(self, records: list[MergedRecord], query: str) -> list[MergedRecord]:
        """Sync entry point. Use rescore_async from inside a running event loop."""
        return asyncio.run(self.rescore_async(records, query))

    async def rescore_async(self, records: list[MergedRecord], query: str) -> list[MergedRecord]:
        """Set llm_score on every record and sort by it, descending."""
        if not records:
            return []

        batches = [
            records[i : i + self.batch_size] for i in range(0, len(records), self.batch_size)
        ]

        if self.mode != "llm":
            logger.info("rescoring_synthetic", records=len(records), mode=self.mode)
            scored = [self._synthetic_batch(batch, query) for batch in batches]
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)
            # Timed-out calls keep their thread; shutdown must not join them
            executor = ThreadPoolExecutor(
                max_workers=self.max_concurrency, thread_name_prefix="rescorer"
            )
            try:
                scored = await asyncio.gather(
                    *(
                        self._score_batch(batch, query, n, semaphore, executor)
                        for n, batch in enumerate(batches, start=1)
                    )
                )
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        rescored = [r for batch in scored for r in batch]
        rescored.sort(key=lambda r: r.llm_score, reverse=True)

        logger.info("rescoring_done", records=len(rescored), batches=len(batches))
        return rescored

    async def _score_batch(
        self,
        batch: list[MergedRecord],
        query: str,
        batch_no: int,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor,
    ) -> list[MergedRecord]:
        prompt = RESCORING_PROMPT.format(
            query=query,
            passages=format_passages([r.text for r in batch]),
            count=len(batch),
        )

        async with semaphore:
            loop = asyncio.get_running_loop()
            try:
                response = await asyncio.wait_for(
                    loop.run_in_executor(executor, self._call_llm, prompt),
                    timeout=self.timeout_seconds,
                )
                scores = parse_scores(response)
            except Exception as e:
                logger.warning(
                    "rescoring_fallback",
                    batch=batch_no,
                    size=len(batch),
                    error=str(e) or type(e).__name__,
                )
                return self._synthetic_batch(batch, query)

        # Missing trailing scores count as 0, extra ones are ignored
        scores = scores[: len(batch)] + [0.0] * (len(batch) - len(scores))
        logger.debug("batch_rescored", batch=batch_no, scores=[round(s, 3) for s in scores])
        return [r.model_copy(update={"llm_score": s}) for r, s in zip(batch, scores)]

    def _call_llm(self, prompt: str) -> str:
        return self.llm.chat_complete(
            prompt,
            temperature=settings.rescorer_temperature,
            max_tokens=settings.rescorer_max_tokens,
        )

    def _synthetic_batch(self, batch: list[MergedRecord], query: str) -> list[MergedRecord]:
        return [r.model_copy(update={"llm_score": self.scorer.score(query, r.text)}) for r in batch]


def _default(value, fallback):
    return fallback if value is None else value
