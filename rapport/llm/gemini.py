"""
Gemini text provider.

Shared model instance plus the adapter that turns role-tagged prompt
messages into a Gemini call and Gemini failures into the provider error
taxonomy.

Supports two backends:
  1. Vertex AI SDK (production): uses GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev): uses GOOGLE_API_KEY

When neither credential is set, build_text_provider() returns None and the
suggestion generators serve fallback content.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import Any

from rapport.infrastructure.settings import GEMINI_LOCATION, GEMINI_MODEL, llm_credentials_present
from rapport.llm.client import PromptMessage
from rapport.llm.errors import (
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitedError,
    ProviderRequestError,
    ProviderServerError,
)
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter

logger = get_logger(__name__)

# Track which backend is available so get_gemini_model_with_options can reuse it
_backend: str | None = None  # "vertexai" or "genai"


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create the shared Gemini model instance (no system instruction).

    Tries Vertex AI SDK first (production). Falls back to google-generativeai
    with GOOGLE_API_KEY for local development.

    Raises:
        GeminiInitializationError: If model cannot be initialized
    """
    global _backend
    # Read env vars fresh (settings may have been imported before dotenv ran)
    project = os.getenv("GOOGLE_CLOUD_PROJECT")
    location = os.getenv("GEMINI_LOCATION") or GEMINI_LOCATION

    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)
            _backend = "vertexai"

            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai")
        except Exception as e:
            logger.error("Failed to initialize Vertex AI Gemini model: %s", e)
            raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e

    api_key = os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise GeminiInitializationError(
            "Neither GOOGLE_CLOUD_PROJECT (with vertexai) nor GOOGLE_API_KEY available."
        )

    try:
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(GEMINI_MODEL)
        _backend = "genai"

        logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)
        return model

    except ImportError as e:
        raise GeminiInitializationError(
            "No Gemini SDK available. Install google-cloud-aiplatform or google-generativeai."
        ) from e
    except Exception as e:
        logger.error("Failed to initialize Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e


def get_gemini_model_with_options(system_instruction: str | None = None) -> Any:
    """Create a Gemini model instance with an optional system instruction.

    System instructions are per-model-instance in the Gemini API, so a fresh
    GenerativeModel is built when one is given; otherwise the cached
    singleton is returned.
    """
    if system_instruction is None:
        return get_gemini_model()

    # Ensure the default model has been initialized (sets _backend)
    get_gemini_model()

    if _backend == "vertexai":
        from vertexai.generative_models import GenerativeModel

        return GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)

    import google.generativeai as genai

    return genai.GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)


def clear_model_cache() -> None:
    """
    Clear the cached model instance.

    Useful for testing or when reconfiguration is needed.
    """
    get_gemini_model.cache_clear()
    logger.info("Cleared Gemini model cache")


def _retry_after_seconds(exc: Exception) -> float | None:
    """Retry-After header from an HTTP-backed SDK error, if any."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after") or headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception) -> ProviderError:
    """Map a Gemini SDK exception onto the provider error taxonomy."""
    from google.api_core import exceptions as api_exceptions

    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (api_exceptions.ResourceExhausted, api_exceptions.TooManyRequests)):
        return ProviderRateLimitedError(
            f"Gemini rate limited: {exc}", retry_after=_retry_after_seconds(exc)
        )
    if isinstance(exc, api_exceptions.ServerError):
        return ProviderServerError(f"Gemini server error: {exc}", status_code=exc.code)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ProviderServerError(f"Gemini transport error: {exc}")
    if isinstance(exc, GeminiInitializationError):
        return ProviderConfigurationError(str(exc))
    return ProviderRequestError(f"Gemini request failed: {exc}")


def _first_text(response: Any) -> str | None:
    """First non-empty text part of the first candidate, or None."""
    try:
        text = response.text
    except (ValueError, AttributeError, IndexError):
        # Blocked or empty candidates raise from .text; look at parts directly
        text = None
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    text = part.text
                    break
            if text:
                break

    if not text or not text.strip():
        return None
    return text


class GeminiTextProvider:
    """TextProvider backed by a Gemini GenerativeModel."""

    def __init__(
        self,
        model_factory: Callable[..., Any] = get_gemini_model_with_options,
    ):
        self._model_factory = model_factory

    def _contents(self, messages: Sequence[PromptMessage]) -> Any:
        turns = [m for m in messages if m.role != "system"]
        if len(turns) == 1 and turns[0].role == "user":
            return turns[0].content

        if _backend == "vertexai":
            from vertexai.generative_models import Content, Part

            return [
                Content(
                    role="model" if m.role == "assistant" else "user",
                    parts=[Part.from_text(m.content)],
                )
                for m in turns
            ]

        return [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in turns
        ]

    def complete(
        self,
        messages: Sequence[PromptMessage],
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        """
        Run one generation.

        Raises:
            ProviderError subclasses, never raw SDK exceptions
        """
        system = "\n\n".join(m.content for m in messages if m.role == "system") or None

        try:
            model = self._model_factory(system_instruction=system)
        except Exception as e:
            raise translate_error(e) from e

        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }

        try:
            response = model.generate_content(
                self._contents(messages), generation_config=generation_config
            )
        except Exception as e:
            error = translate_error(e)
            counter(f"ai.provider.{type(error).__name__}")
            raise error from e

        return _first_text(response)


def build_text_provider() -> GeminiTextProvider | None:
    """Gemini provider when credentials are configured, else None."""
    if not llm_credentials_present():
        logger.warning(
            "GOOGLE_CLOUD_PROJECT / GOOGLE_API_KEY not configured. "
            "AI features will use fallback responses."
        )
        return None
    return GeminiTextProvider()
