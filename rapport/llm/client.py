"""Provider client with retry/backoff.

Single entry point the suggestion generators use to reach the generative
provider. Wraps a TextProvider in a bounded tenacity retry loop:

- Rate limited (429): wait the provider's Retry-After (default 5s), retry
- Server error (5xx): wait attempt * 1s (1s, then 2s), retry
- Anything else, or attempts exhausted: give up and return None
- No provider configured: return None immediately, nothing is retried

call() raises the ProviderError taxonomy once retries are spent; send()
never raises and maps every failure to None.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from rapport.config import LLM_MAX_ATTEMPTS, LLM_RATE_LIMIT_DEFAULT_DELAY, LLM_SERVER_ERROR_BACKOFF
from rapport.llm.errors import (
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitedError,
    ProviderRequestError,
    ProviderServerError,
)
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter, time_block

logger = get_logger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class PromptMessage:
    role: Role
    content: str


class TextProvider(Protocol):
    def complete(
        self,
        messages: Sequence[PromptMessage],
        max_tokens: int,
        temperature: float,
    ) -> str | None: ...


class ProviderClient:
    """Retrying front end for a TextProvider (absent provider = not configured)."""

    def __init__(
        self,
        provider: TextProvider | None,
        max_attempts: int = LLM_MAX_ATTEMPTS,
        rate_limit_default_delay: float = LLM_RATE_LIMIT_DEFAULT_DELAY,
        server_error_backoff: float = LLM_SERVER_ERROR_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.max_attempts = max_attempts
        self.rate_limit_default_delay = rate_limit_default_delay
        self.server_error_backoff = server_error_backoff
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return self.provider is not None

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, ProviderRateLimitedError):
            if error.retry_after is not None:
                return error.retry_after
            return self.rate_limit_default_delay
        return retry_state.attempt_number * self.server_error_backoff

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        kind = "rate limited" if isinstance(error, ProviderRateLimitedError) else "server error"
        counter("ai.provider.retry")
        logger.warning(
            "LLM provider %s. Retrying in %.1fs (attempt %d/%d)",
            kind,
            delay,
            retry_state.attempt_number,
            self.max_attempts,
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type((ProviderRateLimitedError, ProviderServerError)),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

    def call(
        self,
        messages: Sequence[PromptMessage],
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str | None:
        """
        Run the prompt through the retry loop.

        Returns:
            Completion text, or None when the provider returned no content

        Raises:
            ProviderConfigurationError: No provider configured (not retried)
            ProviderError: Non-retryable failure, or retry budget exhausted

        Side Effects:
            - Calls the provider up to max_attempts times
            - Sleeps between attempts (injected sleep function)
        """
        if self.provider is None:
            counter("ai.provider.not_configured")
            raise ProviderConfigurationError("no text provider configured")

        try:
            with time_block("ai.provider.latency"):
                text = self._retrying()(
                    self.provider.complete,
                    messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
        except ProviderError as e:
            counter("ai.provider.failed")
            logger.error("LLM provider call failed: %s", e)
            raise
        except Exception as e:
            counter("ai.provider.failed")
            logger.error("LLM provider call failed unexpectedly: %s", e)
            raise ProviderRequestError(f"unexpected provider failure: {e}") from e

        if text is None:
            counter("ai.provider.empty")
            logger.warning("LLM provider returned no content")
        return text

    def send(
        self,
        messages: Sequence[PromptMessage],
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str | None:
        """
        Send a prompt and return the first text completion.

        Returns:
            Completion text, or None when the provider is absent, returned no
            content, or failed after the retry budget.
        """
        try:
            return self.call(messages, max_tokens=max_tokens, temperature=temperature)
        except ProviderError:
            return None
