"""Anthropic client shared by answer grading and question generation.

Wraps the SDK with a requests-per-minute limiter, retries on transient
failures and a running token count for cost reporting.
"""

import logging
import time
from collections import deque

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings

logger = logging.getLogger(__name__)

# Transient failures worth another attempt; auth and request errors are not.
TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)

WINDOW_SECONDS = 60


class LLMUnavailableError(RuntimeError):
    """Raised when no Anthropic API key is configured."""


class LLMClient:
    """Rate-limited, retrying Anthropic messages client that tracks token usage."""

    def __init__(self, api_key: str | None = None) -> None:
        self.client = anthropic.Anthropic(api_key=api_key or settings.anthropic_api_key)
        self.model = settings.anthropic_model
        self.max_rpm = settings.anthropic_rate_limit_rpm
        self._sent_at: deque[float] = deque()
        self.total_input_tokens = 0
        self.total_output_tokens = 0

    def _wait_for_slot(self) -> None:
        """Block until another request fits in the per-minute budget."""
        now = time.monotonic()
        while self._sent_at and now - self._sent_at[0] > WINDOW_SECONDS:
            self._sent_at.popleft()
        if len(self._sent_at) >= self.max_rpm:
            delay = WINDOW_SECONDS - (now - self._sent_at[0])
            if delay > 0:
                logger.info("Rate limit reached (%d rpm), waiting %.1fs", self.max_rpm, delay)
                time.sleep(delay)
        self._sent_at.append(time.monotonic())

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.anthropic_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def create_message(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Send a single-turn prompt and return the concatenated text of the reply."""
        self._wait_for_slot()
        params: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            params["system"] = system
        response = self.client.messages.create(**params)

        usage = response.usage
        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        logger.debug("%s: %d tokens in, %d out", self.model, usage.input_tokens, usage.output_tokens)

        return "".join(block.text for block in response.content if block.type == "text")

    def get_cost_estimate(self) -> dict[str, float]:
        """Token totals so far and their estimated price in USD."""
        input_cost = self.total_input_tokens * settings.llm_input_price_per_million / 1_000_000
        output_cost = self.total_output_tokens * settings.llm_output_price_per_million / 1_000_000
        return {
            "input_tokens": self.total_input_tokens,
            "output_tokens": self.total_output_tokens,
            "estimated_cost_usd": round(input_cost + output_cost, 4),
        }


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```) from LLM output."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:].removeprefix("json")
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
    return text


# Lazy singleton: avoids import-time Anthropic client creation when no API key is set.
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Return the shared LLMClient, creating it on first call."""
    global _llm_client
    if _llm_client is None:
        if not settings.anthropic_api_key:
            raise LLMUnavailableError("Set CONCEPT_DRILL_ANTHROPIC_API_KEY to enable AI grading")
        _llm_client = LLMClient()
    return _llm_client
