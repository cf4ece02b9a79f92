"""Health check endpoint for the Rapport API.

Liveness check. Reports which Gemini backend the credentials select without
calling the provider; "none" means every feature serves fallback content.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from rapport.config import APP_VERSION, STATE_BACKEND

router = APIRouter(tags=["health"])


def _llm_backend() -> str:
    if os.getenv("GOOGLE_CLOUD_PROJECT"):
        return "vertexai"
    if os.getenv("GOOGLE_API_KEY"):
        return "genai"
    return "none"


@router.get("/health")
def health_check() -> dict[str, Any]:
    backend = _llm_backend()
    return {
        "status": "healthy",
        "service": "rapport-ai",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "state_backend": STATE_BACKEND,
        "llm": {"ready": backend != "none", "backend": backend},
    }
