"""FastAPI server for Rapport AI suggestions"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rapport.api.routes import suggestions
from rapport.api.routes.health import router as health_router
from rapport.config import API_HOST, API_PORT, APP_VERSION, is_development
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter, log_event
from rapport.utils.redaction import redact

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    log_event("api.startup", service="rapport-ai", version=APP_VERSION)
    yield
    service = suggestions._service
    if service is not None:
        service.close()
        logger.info("Usage writer drained")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Custom validation error handler that prevents leaking internal validation logic.
    """
    logger.warning("Validation error on %s: %s", redact(str(request.url.path)), exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


def _allowed_origins() -> list[str]:
    origins = [o.strip() for o in os.getenv("RAPPORT_CORS_ORIGINS", "").split(",") if o.strip()]
    if is_development():
        origins.extend(
            [
                "http://localhost:8081",
                "http://localhost:19006",
                "http://127.0.0.1:8081",
            ]
        )
    return origins


def create_app() -> FastAPI:
    app = FastAPI(title="Rapport AI Suggestions API", version=APP_VERSION, lifespan=lifespan)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(suggestions.router)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "service": "Rapport AI Suggestions API",
            "version": APP_VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "message_suggestions": "/api/ai/message-suggestions",
                "event_ideas": "/api/ai/event-ideas",
                "conversation_starters": "/api/ai/conversation-starters/{contact_id}",
                "relationship_tip": "/api/ai/relationship-tip",
                "usage": "/api/ai/usage",
                "cache_stats": "/api/ai/cache/stats",
                "cache_clear": "/api/ai/cache/clear",
            },
        }

    return app


app = create_app()


def main() -> None:
    """Run the API under uvicorn (console script: rapport-api)."""
    import uvicorn

    uvicorn.run("rapport.api.app:app", host=API_HOST, port=API_PORT, reload=is_development())
