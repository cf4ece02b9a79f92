"""
Data models for AI suggestions.

Result schemas are pydantic models: they validate what the LLM returns and
serialize to the camelCase wire format the mobile client reads. Request-side
enums mirror the values the client sends.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rapport.config import API_GROUP_SIZE_MAX, API_GROUP_SIZE_MIN

T = TypeVar("T")


class Feature(str, Enum):
    """The four suggestion types."""

    MESSAGE_SUGGESTIONS = "message_suggestions"
    EVENT_IDEAS = "event_ideas"
    CONVERSATION_STARTERS = "conversation_starters"
    RELATIONSHIP_TIP = "relationship_tip"


class SuggestionSource(str, Enum):
    LIVE = "live"
    CACHE = "cache"
    FALLBACK = "fallback"


class DegradeReason(str, Enum):
    """Why a request ended on fallback content."""

    QUOTA_EXCEEDED = "quota_exceeded"
    CONFIGURATION_ABSENT = "configuration_absent"
    NOT_FOUND = "not_found"
    PROVIDER_ERROR = "provider_error"
    MALFORMED_RESPONSE = "malformed_response"
    INTERNAL_ERROR = "internal_error"


class MessageContext(str, Enum):
    """Occasion a message is being written for."""

    BIRTHDAY = "birthday"
    CHECK_IN = "check-in"
    EVENT_INVITE = "event-invite"
    HOLIDAY = "holiday"
    CONGRATULATIONS = "congratulations"
    SYMPATHY = "sympathy"
    THANK_YOU = "thank-you"
    RECONNECT = "reconnect"
    GENERAL = "general"


class BudgetTier(str, Enum):
    FREE = "FREE"
    BUDGET = "BUDGET"
    MODERATE = "MODERATE"
    PREMIUM = "PREMIUM"

    @property
    def price_range(self) -> str:
        ranges = {
            BudgetTier.FREE: "$0 (free activities only)",
            BudgetTier.BUDGET: "$0-20 per person",
            BudgetTier.MODERATE: "$20-50 per person",
            BudgetTier.PREMIUM: "$50+ per person",
        }
        return ranges[self]


class _WireModel(BaseModel):
    """Accepts either field names or camelCase aliases; dumps by alias for the API."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MessageSuggestions(_WireModel):
    casual: str = Field(min_length=1)
    warm: str = Field(min_length=1)
    thoughtful: str = Field(min_length=1)


class EventIdea(_WireModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    estimated_cost: float = Field(ge=0, alias="estimatedCost")
    duration: str = Field(min_length=1)
    venue_type: str = Field(min_length=1, alias="venueType")
    tips: list[str]


class ConversationStarter(_WireModel):
    topic: str = Field(min_length=1)
    opener: str = Field(min_length=1)
    follow_up: str = Field(min_length=1, alias="followUp")


class RelationshipTip(_WireModel):
    title: str = Field(min_length=1)
    advice: str = Field(min_length=1)
    action_item: str = Field(min_length=1, alias="actionItem")
    source: str | None = None


class EventIdeaParams(BaseModel):
    """Inputs for event idea generation."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    budget_tier: BudgetTier = Field(BudgetTier.MODERATE, alias="budgetTier")
    group_size: int = Field(4, ge=API_GROUP_SIZE_MIN, le=API_GROUP_SIZE_MAX, alias="groupSize")
    location: str | None = None
    shared_interests: list[str] = Field(default_factory=list, alias="interests")
    season: str | None = None
    restrictions: list[str] = Field(default_factory=list)

    @field_validator("shared_interests", "restrictions")
    @classmethod
    def drop_blank_items(cls, v: list[str]) -> list[str]:
        return [item.strip() for item in v if item and item.strip()]

    def cache_params(self) -> dict[str, Any]:
        """
        Logical identity of the request.

        Defaults are dropped and list order is ignored, so
        {"interests": ["a", "b"]} and {"interests": ["b", "a"], "groupSize": 4}
        describe the same request.
        """
        params = self.model_dump(mode="json", exclude_defaults=True)
        for key in ("shared_interests", "restrictions"):
            if key in params:
                params[key] = sorted(params[key])
        return params


@dataclass(frozen=True)
class SuggestionOutcome(Generic[T]):
    """
    Internal envelope around a generated value.

    The user-facing API returns only `value`; `source`, `degraded` and
    `reason` let tests and monitoring tell live content from fallback.
    """

    feature: Feature
    value: T
    source: SuggestionSource
    degraded: bool = False
    reason: DegradeReason | None = None
    quota_remaining: int | None = None
