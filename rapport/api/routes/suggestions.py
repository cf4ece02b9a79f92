"""AI suggestion endpoints.

Every endpoint answers 200 with suggestion content even when the provider is
down or the user's quota is spent: the service degrades to fallback content
instead of failing. Only request problems (identity, validation, unknown
contact) produce error statuses.
"""

from __future__ import annotations

import threading
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from rapport.api.auth import get_current_user_id, require_admin
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter, get_latency_stats, snapshot_counters
from rapport.suggestions.models import EventIdeaParams, MessageContext
from rapport.suggestions.service import SuggestionService, build_suggestion_service

router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = get_logger(__name__)

VALID_CONTEXTS = [c.value for c in MessageContext]


# ============================================================================
# Service wiring
# ============================================================================

_service: SuggestionService | None = None
_service_lock = threading.Lock()


def get_suggestion_service() -> SuggestionService:
    """Get or create the process-wide SuggestionService."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = build_suggestion_service()
    return _service


def set_suggestion_service(service: SuggestionService | None) -> None:
    """Install the service the endpoints use (host applications wire their repository here)."""
    global _service
    with _service_lock:
        _service = service


# ============================================================================
# Request Models
# ============================================================================


class MessageSuggestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    contact_id: str = Field(..., min_length=1, max_length=128, alias="contactId")
    context: str = "general"


def _ok(data: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": data}


def _require_contact(service: SuggestionService, user_id: str, contact_id: str) -> None:
    if service.repository.get_contact_with_details(user_id, contact_id) is None:
        counter("api.ai.contact_not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/message-suggestions")
def message_suggestions(
    request: MessageSuggestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    """Three message variations (casual, warm, thoughtful) for reaching out to a contact."""
    if request.context not in VALID_CONTEXTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid context. Context must be one of: {', '.join(VALID_CONTEXTS)}",
        )
    _require_contact(service, user_id, request.contact_id)

    suggestions = service.generate_message_suggestions(
        user_id, request.contact_id, MessageContext(request.context)
    )
    return _ok({"suggestions": suggestions.to_wire()})


@router.post("/event-ideas")
def event_ideas(
    params: EventIdeaParams,
    user_id: str = Depends(get_current_user_id),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    """Event and activity ideas for the given budget tier and group size."""
    ideas = service.generate_event_ideas(user_id, params)
    return _ok({"ideas": [idea.to_wire() for idea in ideas]})


@router.get("/conversation-starters/{contact_id}")
def conversation_starters(
    contact_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    """Conversation starters for talking with a contact."""
    _require_contact(service, user_id, contact_id)

    starters = service.generate_conversation_starters(user_id, contact_id)
    return _ok({"starters": [starter.to_wire() for starter in starters]})


@router.get("/relationship-tip")
def relationship_tip(
    user_id: str = Depends(get_current_user_id),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    """Today's relationship tip for the user."""
    tip = service.generate_relationship_tip(user_id)
    return _ok(tip.to_wire())


@router.get("/usage")
def usage_stats(
    user_id: str = Depends(get_current_user_id),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    """Requests used and remaining in the user's current quota window."""
    stats = service.get_usage_stats(user_id)
    return _ok(
        {
            "requestsToday": stats.requests_today,
            "requestsRemaining": stats.requests_remaining,
            "resetAt": stats.reset_at.isoformat(),
        }
    )


@router.get("/cache/stats")
def cache_stats(
    _admin: bool = Depends(require_admin),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    stats = service.get_cache_stats()
    return _ok({"size": stats.size, "keys": stats.keys})


@router.post("/cache/clear")
def clear_cache(
    _admin: bool = Depends(require_admin),
    service: SuggestionService = Depends(get_suggestion_service),
) -> dict[str, Any]:
    service.clear_cache()
    logger.info("AI cache cleared via admin endpoint")
    return _ok({"cleared": True})


@router.get("/metrics")
def metrics(_admin: bool = Depends(require_admin)) -> dict[str, Any]:
    """Process-local counters and provider latency (milliseconds) since startup."""
    return _ok(
        {
            "counters": snapshot_counters("ai."),
            "providerLatencyMs": get_latency_stats("ai.provider.latency"),
        }
    )
