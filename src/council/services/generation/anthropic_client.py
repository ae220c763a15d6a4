"""Anthropic LLM client implementing the LLMClient protocol.

Configuration via environment variables:
- ANTHROPIC_API_KEY: Required. Fail-closed if missing.
- COUNCIL_ANTHROPIC_MODEL: Model id (see council.config for the default).
"""

from __future__ import annotations

import logging
import os
import time

import anthropic

from council.config import DEFAULT_ANTHROPIC_MODEL, ENV_ANTHROPIC_MODEL

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_BACKOFF_BASE_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 120
MAX_TOKENS = 2048
TEMPERATURE = 0.7


class AnthropicLLMClient:
    """Anthropic-backed LLM client implementing the LLMClient protocol.

    Retries with exponential backoff on rate limits, 5xx responses and
    connection errors. Every failure surfaces as RuntimeError.
    """

    def __init__(
        self,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        api_key: str | None = None,
    ) -> None:
        """Initialize the Anthropic client.

        Args:
            model: Model identifier override. Falls back to
                COUNCIL_ANTHROPIC_MODEL, then the built-in default.
            max_tokens: Maximum output tokens per request.
            api_key: API key override; read from ANTHROPIC_API_KEY otherwise.

        Raises:
            ValueError: If no API key is available.
        """
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is required "
                "when using the Anthropic backend. "
                "Set COUNCIL_GENERATION_BACKEND=deterministic to run offline."
            )

        self._model = model or os.environ.get(ENV_ANTHROPIC_MODEL, DEFAULT_ANTHROPIC_MODEL)
        self._max_tokens = max_tokens or MAX_TOKENS
        self._client: anthropic.Anthropic = anthropic.Anthropic(
            api_key=api_key,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def model(self) -> str:
        return self._model

    def call(self, prompt: str) -> str:
        """Make an LLM call via the Anthropic API and return raw response text.

        Args:
            prompt: The full prompt text to send.

        Returns:
            Raw response string from the LLM.

        Raises:
            RuntimeError: If the call fails permanently or all retries fail.
        """
        messages: list[anthropic.types.MessageParam] = [{"role": "user", "content": prompt}]

        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    temperature=TEMPERATURE,
                    messages=messages,
                )
                text_block = response.content[0]
                if hasattr(text_block, "text"):
                    return str(text_block.text)
                return str(text_block)

            except anthropic.RateLimitError as exc:
                last_error = exc
                logger.warning(
                    "Anthropic rate limit (attempt %d/%d)", attempt + 1, MAX_RETRIES + 1
                )
                _backoff(attempt)

            except anthropic.APIStatusError as exc:
                last_error = exc
                if exc.status_code < 500:
                    raise RuntimeError(
                        f"Anthropic API error (non-retryable): {exc.status_code}"
                    ) from exc
                logger.warning(
                    "Anthropic server error %d (attempt %d/%d)",
                    exc.status_code,
                    attempt + 1,
                    MAX_RETRIES + 1,
                )
                _backoff(attempt)

            except anthropic.APIConnectionError as exc:
                last_error = exc
                logger.warning(
                    "Anthropic connection error (attempt %d/%d)", attempt + 1, MAX_RETRIES + 1
                )
                _backoff(attempt)

        raise RuntimeError(
            f"Anthropic API call failed after {MAX_RETRIES + 1} attempts"
        ) from last_error


def _backoff(attempt: int) -> None:
    """Sleep with exponential backoff.

    Args:
        attempt: Zero-based attempt number.
    """
    time.sleep(RETRY_BACKOFF_BASE_SECONDS * (2**attempt))
