"""
Pytest configuration for Rapport tests

Provides a controllable clock, a scripted text provider and a service factory
wired entirely to in-memory stores. No test touches the network.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from rapport.llm.client import PromptMessage, ProviderClient
from rapport.observability.telemetry import reset_counters, reset_latencies
from rapport.suggestions.cache import InMemoryCacheStore
from rapport.suggestions.rate_limit import InMemoryRateLimitStore, RateLimiter
from rapport.suggestions.repository import (
    ContactDetails,
    InMemoryContentRepository,
    RelationshipInfo,
)
from rapport.suggestions.service import SuggestionService
from rapport.suggestions.usage import InMemoryUsageLedger, UsageTracker

START = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

USER_ID = "user-1"
CONTACT_ID = "contact-1"


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=UTC)


class ScriptedProvider:
    """
    TextProvider that replays a script.

    Each script item is returned (str or None) or raised (Exception). The last
    item repeats once the script runs out.
    """

    def __init__(self, *script: Any):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    def complete(
        self, messages: Sequence[PromptMessage], max_tokens: int, temperature: float
    ) -> str | None:
        self.calls.append(
            {"messages": list(messages), "max_tokens": max_tokens, "temperature": temperature}
        )
        index = min(len(self.calls), len(self.script)) - 1
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _reset_counters():
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    """Collects delays the provider client would have slept."""
    return []


@pytest.fixture
def repository(clock: FakeClock) -> InMemoryContentRepository:
    repo = InMemoryContentRepository(now=clock.as_datetime)
    repo.add_contact(
        USER_ID,
        CONTACT_ID,
        ContactDetails(
            name="Alice",
            relationship=RelationshipInfo(
                tier="INNER_CIRCLE",
                type="PERSONAL",
                last_contact_date=START - timedelta(days=10),
            ),
            interests=["hiking", "jazz"],
            notes="Moved to Lisbon last spring",
        ),
    )
    return repo


@pytest.fixture
def ledger() -> InMemoryUsageLedger:
    return InMemoryUsageLedger()


@pytest.fixture
def make_service(
    clock: FakeClock,
    sleeps: list[float],
    repository: InMemoryContentRepository,
    ledger: InMemoryUsageLedger,
) -> Callable[..., SuggestionService]:
    """Factory: make_service(provider=None, limit=50) -> SuggestionService on in-memory stores."""

    def _make(provider: Any = None, limit: int = 50) -> SuggestionService:
        return SuggestionService(
            rate_limiter=RateLimiter(
                InMemoryRateLimitStore(clock=clock), limit=limit, window_seconds=86400, clock=clock
            ),
            cache=InMemoryCacheStore(default_ttl=86400, clock=clock),
            client=ProviderClient(provider, sleep=sleeps.append),
            usage=UsageTracker(ledger),
            repository=repository,
            clock=clock,
        )

    return _make


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    """The ScriptedProvider class: scripted("reply", ProviderServerError("503"), ...)."""
    return ScriptedProvider
