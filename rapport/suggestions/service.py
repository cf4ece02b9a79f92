"""
Suggestion service facade.

Wires one rate limiter, cache, provider client and usage tracker into the
four generators so they share a single quota and cache. User-facing callers
use the generate_* methods, which return only the suggestion value; the
*_outcome variants return the full SuggestionOutcome envelope.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from rapport.config import (
    AI_CACHE_MAX_ENTRIES,
    AI_CACHE_TTL_SECONDS,
    AI_RATE_LIMIT_MAX,
    AI_RATE_LIMIT_MAX_USERS,
    AI_RATE_LIMIT_WINDOW_SECONDS,
    SQLITE_PATH,
    STATE_BACKEND,
    USAGE_WRITER_THREADS,
)
from rapport.infrastructure.database import SQLiteDatabase
from rapport.llm.client import ProviderClient, TextProvider
from rapport.observability.logging import get_logger
from rapport.suggestions.cache import (
    CacheStats,
    CacheStore,
    InMemoryCacheStore,
    SQLiteCacheStore,
)
from rapport.suggestions.generators import (
    ConversationStarterGenerator,
    EventIdeaGenerator,
    MessageSuggestionGenerator,
    RelationshipTipGenerator,
)
from rapport.suggestions.models import (
    ConversationStarter,
    EventIdea,
    EventIdeaParams,
    MessageContext,
    MessageSuggestions,
    RelationshipTip,
    SuggestionOutcome,
)
from rapport.suggestions.rate_limit import (
    InMemoryRateLimitStore,
    RateLimiter,
    SQLiteRateLimitStore,
    UsageStats,
)
from rapport.suggestions.repository import ContentRepository, InMemoryContentRepository
from rapport.suggestions.usage import (
    InMemoryUsageLedger,
    SQLiteUsageLedger,
    UsageLedger,
    UsageTracker,
)

logger = get_logger(__name__)


class SuggestionService:
    """Entry point for AI suggestions. Never raises for generation failures."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: CacheStore,
        client: ProviderClient,
        usage: UsageTracker,
        repository: ContentRepository,
        clock: Callable[[], float] = time.time,
    ):
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.client = client
        self.usage = usage
        self.repository = repository

        shared: dict[str, Any] = {
            "rate_limiter": rate_limiter,
            "cache": cache,
            "client": client,
            "usage": usage,
            "repository": repository,
            "clock": clock,
        }
        self.messages = MessageSuggestionGenerator(**shared)
        self.events = EventIdeaGenerator(**shared)
        self.conversations = ConversationStarterGenerator(**shared)
        self.tips = RelationshipTipGenerator(**shared)

    # --- Envelope variants ---

    def message_suggestions_outcome(
        self,
        user_id: str,
        contact_id: str,
        context: MessageContext | str = MessageContext.GENERAL,
    ) -> SuggestionOutcome[MessageSuggestions]:
        return self.messages.generate(user_id, contact_id, context)

    def event_ideas_outcome(
        self, user_id: str, params: EventIdeaParams | None = None
    ) -> SuggestionOutcome[list[EventIdea]]:
        return self.events.generate(user_id, params or EventIdeaParams())

    def conversation_starters_outcome(
        self, user_id: str, contact_id: str
    ) -> SuggestionOutcome[list[ConversationStarter]]:
        return self.conversations.generate(user_id, contact_id)

    def relationship_tip_outcome(self, user_id: str) -> SuggestionOutcome[RelationshipTip]:
        return self.tips.generate(user_id)

    # --- Value-only variants ---

    def generate_message_suggestions(
        self,
        user_id: str,
        contact_id: str,
        context: MessageContext | str = MessageContext.GENERAL,
    ) -> MessageSuggestions:
        return self.message_suggestions_outcome(user_id, contact_id, context).value

    def generate_event_ideas(
        self, user_id: str, params: EventIdeaParams | None = None
    ) -> list[EventIdea]:
        return self.event_ideas_outcome(user_id, params).value

    def generate_conversation_starters(
        self, user_id: str, contact_id: str
    ) -> list[ConversationStarter]:
        return self.conversation_starters_outcome(user_id, contact_id).value

    def generate_relationship_tip(self, user_id: str) -> RelationshipTip:
        return self.relationship_tip_outcome(user_id).value

    # --- Operations ---

    def get_usage_stats(self, user_id: str) -> UsageStats:
        return self.rate_limiter.get_usage_stats(user_id)

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def close(self) -> None:
        self.usage.close()


def build_suggestion_service(
    provider: TextProvider | None = None,
    repository: ContentRepository | None = None,
    backend: str = STATE_BACKEND,
    sqlite_path: str = SQLITE_PATH,
) -> SuggestionService:
    """
    Assemble a SuggestionService from configuration.

    Args:
        provider: Text provider; defaults to Gemini when credentials are set
        repository: Content repository; defaults to an empty in-memory one
        backend: "memory" (per process) or "sqlite" (shared between processes)
        sqlite_path: Database file for the sqlite backend

    Raises:
        ValueError: Unknown backend
    """
    if provider is None:
        from rapport.llm.gemini import build_text_provider

        provider = build_text_provider()

    cache: CacheStore
    ledger: UsageLedger
    if backend == "memory":
        cache = InMemoryCacheStore(default_ttl=AI_CACHE_TTL_SECONDS, maxsize=AI_CACHE_MAX_ENTRIES)
        rate_store: Any = InMemoryRateLimitStore(maxsize=AI_RATE_LIMIT_MAX_USERS)
        ledger = InMemoryUsageLedger()
    elif backend == "sqlite":
        database = SQLiteDatabase(sqlite_path)
        cache = SQLiteCacheStore(database, default_ttl=AI_CACHE_TTL_SECONDS)
        rate_store = SQLiteRateLimitStore(database)
        ledger = SQLiteUsageLedger(database)
    else:
        raise ValueError(f"Unknown state backend: {backend!r} (expected 'memory' or 'sqlite')")

    executor = ThreadPoolExecutor(
        max_workers=max(1, USAGE_WRITER_THREADS), thread_name_prefix="ai-usage"
    )

    logger.info(
        "Suggestion service ready: backend=%s provider=%s",
        backend,
        type(provider).__name__ if provider is not None else "none",
    )

    return SuggestionService(
        rate_limiter=RateLimiter(
            rate_store, limit=AI_RATE_LIMIT_MAX, window_seconds=AI_RATE_LIMIT_WINDOW_SECONDS
        ),
        cache=cache,
        client=ProviderClient(provider),
        usage=UsageTracker(ledger, executor=executor),
        repository=repository or InMemoryContentRepository(),
    )
