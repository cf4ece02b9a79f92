"""Provider failure taxonomy.

Adapters translate SDK exceptions into these types so the retry policy in
rapport.llm.client never depends on a particular SDK:

- ProviderRateLimitedError: retry after the provider's delay
- ProviderServerError: retry with linear backoff
- ProviderConfigurationError, ProviderRequestError: never retried
"""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Base class for generative provider failures."""


class ProviderConfigurationError(ProviderError):
    """Credentials or SDK missing; retrying cannot help."""


class ProviderRateLimitedError(ProviderError):
    """Provider answered 429 / resource exhausted."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ProviderServerError(ProviderError):
    """Provider-side 5xx failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderRequestError(ProviderError):
    """Any other failure (bad request, permission denied, blocked content)."""
