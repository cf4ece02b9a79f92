"""Rapport - AI suggestion orchestration for relationship management"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports keep `import rapport` free of the Gemini SDK and FastAPI
def __getattr__(name: str):
    """
    Lazy imports to avoid loading heavy dependencies when only importing lightweight modules.
    """
    if name in ("SuggestionService", "build_suggestion_service"):
        from rapport.suggestions import service

        if name == "SuggestionService":
            return service.SuggestionService
        if name == "build_suggestion_service":
            return service.build_suggestion_service

    if name in ("Feature", "SuggestionOutcome", "DegradeReason"):
        from rapport.suggestions import models

        if name == "Feature":
            return models.Feature
        if name == "SuggestionOutcome":
            return models.SuggestionOutcome
        if name == "DegradeReason":
            return models.DegradeReason

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "DegradeReason",
    "Feature",
    "SuggestionOutcome",
    "SuggestionService",
    "build_suggestion_service",
]
