"""
Suggestion generators.

Every generator runs the same pipeline for one request:

    RATE_CHECK -> CACHE_CHECK -> FETCH_CONTEXT -> CALL_PROVIDER -> PARSE -> STORE_AND_RETURN

Any stage that cannot continue ends the request on fallback content with a
DegradeReason. Nothing raises to the caller: unexpected exceptions resolve to
DegradeReason.INTERNAL_ERROR.

Cache entries are stored as JSON-compatible dicts so every CacheStore
(including the SQLite one) can hold them:

    {"value": <wire json>, "degraded": bool, "reason": str | None}

Fallback content is cached only when no provider is configured, so repeat
requests stop re-checking a provider that cannot exist for this process.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from rapport.llm.client import PromptMessage, ProviderClient
from rapport.llm.errors import ProviderConfigurationError, ProviderError
from rapport.llm.prompts import PromptLoader, detail_lines
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter, log_event
from rapport.suggestions.cache import CacheStore, cache_key
from rapport.suggestions.fallbacks import fallback_for
from rapport.suggestions.models import (
    ConversationStarter,
    DegradeReason,
    EventIdea,
    EventIdeaParams,
    Feature,
    MessageContext,
    MessageSuggestions,
    RelationshipTip,
    SuggestionOutcome,
    SuggestionSource,
)
from rapport.suggestions.parsing import MalformedResponseError, ResponseShape, parse_payload
from rapport.suggestions.rate_limit import RateLimiter
from rapport.suggestions.repository import ContactDetails, ContentRepository
from rapport.suggestions.usage import UsageTracker
from rapport.utils.redaction import redact, sanitize_for_prompt

logger = get_logger(__name__)

T = TypeVar("T")

PromptFactory = Callable[[], list[PromptMessage] | None]

EVENT_IDEA_COUNT = 10
CONVERSATION_STARTER_COUNT = 5


class SuggestionGenerator(Generic[T]):
    """
    Shared request pipeline; subclasses supply the key params and the prompt.

    Class attributes:
        feature: Feature served by this generator
        cache_prefix: Prefix of every cache key this generator writes
        shape: Expected response payload
        max_tokens: Completion budget, also the recorded usage estimate
        temperature: Sampling temperature
    """

    feature: Feature
    cache_prefix: str
    shape: ResponseShape
    max_tokens: int
    temperature: float = 0.7

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: CacheStore,
        client: ProviderClient,
        usage: UsageTracker,
        repository: ContentRepository,
        prompts: PromptLoader | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.client = client
        self.usage = usage
        self.repository = repository
        self.prompts = prompts or PromptLoader()
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=UTC)

    def _execute(
        self,
        user_id: str,
        params: dict[str, Any],
        build_prompt: PromptFactory,
    ) -> SuggestionOutcome[T]:
        remaining: int | None = None
        try:
            decision = self.rate_limiter.check_and_consume(user_id)
            remaining = decision.remaining
            if not decision.allowed:
                return self._fallback(user_id, DegradeReason.QUOTA_EXCEEDED, remaining)

            key = cache_key(self.cache_prefix, params)
            cached = self._from_cache(key, remaining)
            if cached is not None:
                return cached

            messages = build_prompt()
            if messages is None:
                return self._fallback(user_id, DegradeReason.NOT_FOUND, remaining)

            try:
                raw = self.client.call(
                    messages, max_tokens=self.max_tokens, temperature=self.temperature
                )
            except ProviderConfigurationError:
                outcome = self._fallback(user_id, DegradeReason.CONFIGURATION_ABSENT, remaining)
                if not self.client.is_configured:
                    self._store(key, outcome)
                return outcome
            except ProviderError:
                return self._fallback(user_id, DegradeReason.PROVIDER_ERROR, remaining)

            if raw is None:
                return self._fallback(user_id, DegradeReason.PROVIDER_ERROR, remaining)

            try:
                value = parse_payload(raw, self.shape)
            except MalformedResponseError as e:
                logger.warning("Unusable %s response: %s", self.feature.value, e)
                return self._fallback(user_id, DegradeReason.MALFORMED_RESPONSE, remaining)

            outcome = SuggestionOutcome(
                feature=self.feature,
                value=value,
                source=SuggestionSource.LIVE,
                quota_remaining=remaining,
            )
            self._store(key, outcome)
            self.usage.record(user_id, self.max_tokens, self.feature)
            counter(f"ai.{self.feature.value}.live")
            return outcome

        except Exception as e:
            logger.exception("Generate %s failed: %s", self.feature.value, e)
            return self._fallback(user_id, DegradeReason.INTERNAL_ERROR, remaining)

    def _from_cache(self, key: str, remaining: int) -> SuggestionOutcome[T] | None:
        payload = self.cache.get(key)
        if payload is None:
            return None

        try:
            value = self.shape.adapter.validate_python(payload["value"])
            reason = DegradeReason(payload["reason"]) if payload.get("reason") else None
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            counter("ai.cache.corrupt")
            logger.warning("Ignoring unreadable cache entry %s: %s", key, e)
            return None

        return SuggestionOutcome(
            feature=self.feature,
            value=value,
            source=SuggestionSource.CACHE,
            degraded=bool(payload.get("degraded")),
            reason=reason,
            quota_remaining=remaining,
        )

    def _store(self, key: str, outcome: SuggestionOutcome[T]) -> None:
        self.cache.set(
            key,
            {
                "value": self.shape.adapter.dump_python(
                    outcome.value, mode="json", by_alias=True, exclude_none=True
                ),
                "degraded": outcome.degraded,
                "reason": outcome.reason.value if outcome.reason else None,
            },
        )

    def _fallback(
        self, user_id: str, reason: DegradeReason, remaining: int | None
    ) -> SuggestionOutcome[T]:
        counter(f"ai.{self.feature.value}.fallback.{reason.value}")
        log_event(
            "ai.fallback",
            feature=self.feature.value,
            reason=reason.value,
            user=redact(user_id),
        )
        return SuggestionOutcome(
            feature=self.feature,
            value=fallback_for(self.feature),
            source=SuggestionSource.FALLBACK,
            degraded=True,
            reason=reason,
            quota_remaining=remaining,
        )


def _joined(items: list[str] | None) -> str:
    cleaned = [sanitize_for_prompt(item, max_length=100) for item in items or []]
    return ", ".join(item for item in cleaned if item)


class MessageSuggestionGenerator(SuggestionGenerator[MessageSuggestions]):
    """Three tones (casual, warm, thoughtful) of an outreach message to one contact."""

    feature = Feature.MESSAGE_SUGGESTIONS
    cache_prefix = "message"
    shape = ResponseShape.object(MessageSuggestions)
    max_tokens = 200
    temperature = 0.7

    def generate(
        self,
        user_id: str,
        contact_id: str,
        context: MessageContext | str = MessageContext.GENERAL,
    ) -> SuggestionOutcome[MessageSuggestions]:
        context = self._coerce_context(context)
        return self._execute(
            user_id,
            {"user_id": user_id, "contact_id": contact_id, "context": context.value},
            lambda: self._build_prompt(user_id, contact_id, context),
        )

    def _coerce_context(self, context: MessageContext | str) -> MessageContext:
        try:
            return MessageContext(context)
        except ValueError:
            counter(f"ai.{self.feature.value}.unknown_context")
            logger.warning("Unknown message context %r, writing a general message", context)
            return MessageContext.GENERAL

    def _days_since_contact(self, contact: ContactDetails) -> int | None:
        last = contact.relationship.last_contact_date if contact.relationship else None
        if last is None:
            return None
        if last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        return max(0, (self._now() - last).days)

    def _build_prompt(
        self, user_id: str, contact_id: str, context: MessageContext
    ) -> list[PromptMessage] | None:
        contact = self.repository.get_contact_with_details(user_id, contact_id)
        if contact is None:
            return None

        relationship = contact.relationship
        details = detail_lines(
            [
                ("Days since last contact", self._days_since_contact(contact)),
                ("Shared interests", _joined(contact.interests)),
            ]
        )
        return self.prompts.build_messages(
            self.feature.value,
            name=sanitize_for_prompt(contact.name, max_length=100),
            tier=relationship.tier if relationship else "FRIENDS",
            relationship_type=relationship.type if relationship else "PERSONAL",
            details=details,
            context=context.value,
        )


class EventIdeaGenerator(SuggestionGenerator[list[EventIdea]]):
    """Activity ideas for a group, constrained by budget tier."""

    feature = Feature.EVENT_IDEAS
    cache_prefix = "events"
    shape = ResponseShape.array(EventIdea)
    max_tokens = 1000
    temperature = 0.8

    def generate(self, user_id: str, params: EventIdeaParams) -> SuggestionOutcome[list[EventIdea]]:
        return self._execute(user_id, params.cache_params(), lambda: self._build_prompt(params))

    def _build_prompt(self, params: EventIdeaParams) -> list[PromptMessage]:
        details = detail_lines(
            [
                ("Location", sanitize_for_prompt(params.location, max_length=200)),
                ("Shared interests", _joined(params.shared_interests)),
                ("Season", sanitize_for_prompt(params.season, max_length=50)),
                ("Restrictions", _joined(params.restrictions)),
            ]
        )
        return self.prompts.build_messages(
            self.feature.value,
            count=EVENT_IDEA_COUNT,
            budget=params.budget_tier.price_range,
            group_size=params.group_size,
            details=details,
        )


class ConversationStarterGenerator(SuggestionGenerator[list[ConversationStarter]]):
    """Topic, opener and follow-up question sets for talking with one contact."""

    feature = Feature.CONVERSATION_STARTERS
    cache_prefix = "conversation"
    shape = ResponseShape.array(ConversationStarter)
    max_tokens = 500
    temperature = 0.7

    def generate(self, user_id: str, contact_id: str) -> SuggestionOutcome[list[ConversationStarter]]:
        return self._execute(
            user_id,
            {"user_id": user_id, "contact_id": contact_id},
            lambda: self._build_prompt(user_id, contact_id),
        )

    def _build_prompt(self, user_id: str, contact_id: str) -> list[PromptMessage] | None:
        contact = self.repository.get_contact_with_details(user_id, contact_id)
        if contact is None:
            return None

        details = detail_lines(
            [
                ("Interests", _joined(contact.interests)),
                ("Notes about them", sanitize_for_prompt(contact.notes)),
            ]
        )
        return self.prompts.build_messages(
            self.feature.value,
            count=CONVERSATION_STARTER_COUNT,
            name=sanitize_for_prompt(contact.name, max_length=100),
            details=details,
        )


class RelationshipTipGenerator(SuggestionGenerator[RelationshipTip]):
    """One coaching tip per user per calendar day, based on network statistics."""

    feature = Feature.RELATIONSHIP_TIP
    cache_prefix = "tip"
    shape = ResponseShape.object(RelationshipTip)
    max_tokens = 300
    temperature = 0.7

    def generate(self, user_id: str) -> SuggestionOutcome[RelationshipTip]:
        # Day boundaries are UTC so every worker agrees on the key
        return self._execute(
            user_id,
            {"user_id": user_id, "date": self._now().date().isoformat()},
            lambda: self._build_prompt(user_id),
        )

    def _build_prompt(self, user_id: str) -> list[PromptMessage]:
        stats = self.repository.get_relationship_stats(user_id)
        details = detail_lines(
            [("Inner circle contacts due for a check-in", _joined(stats.under_contacted))]
        )
        return self.prompts.build_messages(
            self.feature.value,
            contact_count=stats.contact_count,
            inner_circle_count=stats.inner_circle_count,
            recent_interaction_count=stats.recent_interaction_count,
            details=details,
        )
