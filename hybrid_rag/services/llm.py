"""
LLM client via OpenRouter (OpenAI-compatible API).

Retries with exponential backoff and the per-call timeout are handled by the
OpenAI client itself (max_retries / timeout from settings).
"""

from openai import OpenAI

from hybrid_rag.config.settings import settings
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)


class LLMClient:
    def __init__(self, model: str | None = None):
        self.client = OpenAI(
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
            max_retries=settings.provider_max_retries,
            timeout=settings.provider_timeout_seconds,
        )
        self.model = model or settings.llm_model

    def chat_complete(
        self,
        prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        system: str | None = None,
    ) -> str:
        """Raw text response."""
        messages = self._build_messages(prompt, system)
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content
        logger.debug("llm_call_done", model=self.model, prompt_chars=len(prompt))
        return content or ""

    @staticmethod
    def _build_messages(prompt: str, system: str | None) -> list[dict]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages
