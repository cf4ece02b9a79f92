"""Unit tests for the fixed-window per-user quota."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from rapport.observability.telemetry import get_counter
from rapport.suggestions.rate_limit import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitWindow,
    advance_window,
)

DAY = 86400


@pytest.fixture
def limiter(clock):
    return RateLimiter(InMemoryRateLimitStore(clock=clock), limit=50, window_seconds=DAY, clock=clock)


class TestAdvanceWindow:
    def test_first_request_opens_window(self):
        window, allowed = advance_window(None, "u", now=100.0, limit=3, window_seconds=10)
        assert allowed
        assert window == RateLimitWindow(user_id="u", count=1, reset_at=110.0)

    def test_denied_request_leaves_window_unchanged(self):
        full = RateLimitWindow(user_id="u", count=3, reset_at=110.0)
        window, allowed = advance_window(full, "u", now=105.0, limit=3, window_seconds=10)
        assert not allowed
        assert window is full

    def test_window_resets_at_reset_time(self):
        full = RateLimitWindow(user_id="u", count=3, reset_at=110.0)
        window, allowed = advance_window(full, "u", now=110.0, limit=3, window_seconds=10)
        assert allowed
        assert window.count == 1
        assert window.reset_at == 120.0


class TestRateLimiter:
    def test_fifty_requests_allowed_then_denied(self, limiter):
        remaining = [limiter.check_and_consume("u1") for _ in range(50)]

        assert all(d.allowed for d in remaining)
        assert remaining[0].remaining == 49
        assert remaining[-1].remaining == 0

        denied = limiter.check_and_consume("u1")
        assert not denied.allowed
        assert denied.remaining == 0
        assert get_counter("ai.rate_limit.denied") == 1

    def test_denied_requests_are_not_counted(self, limiter):
        for _ in range(55):
            limiter.check_and_consume("u1")
        assert limiter.get_usage_stats("u1").requests_today == 50

    def test_users_have_independent_windows(self, limiter):
        for _ in range(50):
            limiter.check_and_consume("u1")
        assert limiter.check_and_consume("u2").allowed

    def test_quota_resets_after_window(self, limiter, clock):
        for _ in range(51):
            limiter.check_and_consume("u1")

        clock.advance(DAY)
        decision = limiter.check_and_consume("u1")
        assert decision.allowed
        assert decision.remaining == 49

    def test_request_just_before_reset_is_still_denied(self, limiter, clock):
        for _ in range(50):
            limiter.check_and_consume("u1")

        clock.advance(DAY - 1)
        assert not limiter.check_and_consume("u1").allowed


class TestUsageStats:
    def test_no_window_reports_full_quota(self, limiter, clock):
        stats = limiter.get_usage_stats("nobody")
        assert stats.requests_today == 0
        assert stats.requests_remaining == 50
        assert stats.reset_at == datetime.fromtimestamp(clock.now + DAY, tz=UTC)

    def test_active_window_reports_counts(self, limiter, clock):
        opened_at = clock.now
        for _ in range(3):
            limiter.check_and_consume("u1")
        clock.advance(60)

        stats = limiter.get_usage_stats("u1")
        assert stats.requests_today == 3
        assert stats.requests_remaining == 47
        assert stats.reset_at == datetime.fromtimestamp(opened_at + DAY, tz=UTC)

    def test_expired_window_reports_full_quota(self, limiter, clock):
        limiter.check_and_consume("u1")
        clock.advance(DAY + 1)
        assert limiter.get_usage_stats("u1").requests_remaining == 50

    def test_stats_do_not_consume(self, limiter):
        limiter.check_and_consume("u1")
        limiter.get_usage_stats("u1")
        limiter.get_usage_stats("u1")
        assert limiter.get_usage_stats("u1").requests_today == 1


class TestInMemoryStore:
    def test_expired_windows_are_evicted(self, clock):
        store = InMemoryRateLimitStore(clock=clock)
        limiter = RateLimiter(store, limit=50, window_seconds=60, clock=clock)
        for n in range(1000):
            limiter.check_and_consume(f"user-{n}")
        assert len(store) == 1000

        clock.advance(3600)
        limiter.check_and_consume("late-user")

        assert len(store) == 1
        assert store.get("user-0") is None

    def test_evicted_window_starts_fresh(self, clock):
        store = InMemoryRateLimitStore(clock=clock)
        limiter = RateLimiter(store, limit=2, window_seconds=60, clock=clock)
        limiter.check_and_consume("u1")
        limiter.check_and_consume("u1")
        assert not limiter.check_and_consume("u1").allowed

        clock.advance(60)
        assert store.get("u1") is None
        assert limiter.check_and_consume("u1").remaining == 1
