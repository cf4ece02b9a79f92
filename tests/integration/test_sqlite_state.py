"""
Integration tests for the SQLite shared-state backend.

Each test gets its own database file; two store instances over the same file
stand in for two worker processes.
"""

from __future__ import annotations

import json

import pytest

from rapport.infrastructure.database import SQLiteDatabase
from rapport.suggestions.cache import SQLiteCacheStore
from rapport.suggestions.models import DegradeReason, Feature, SuggestionSource
from rapport.suggestions.rate_limit import RateLimiter, SQLiteRateLimitStore
from rapport.suggestions.service import build_suggestion_service
from rapport.suggestions.usage import SQLiteUsageLedger, UsageRecord


@pytest.fixture
def database(tmp_path):
    return SQLiteDatabase(tmp_path / "rapport.db")


class TestSQLiteCacheStore:
    def test_round_trip_json_payload(self, database, clock):
        store = SQLiteCacheStore(database, default_ttl=60, clock=clock)
        store.set("k", {"value": [1, 2], "degraded": False, "reason": None})
        assert store.get("k") == {"value": [1, 2], "degraded": False, "reason": None}

    def test_entries_are_shared_between_instances(self, database, clock):
        SQLiteCacheStore(database, clock=clock).set("k", "v")
        assert SQLiteCacheStore(database, clock=clock).get("k") == "v"

    def test_expired_entry_is_deleted_on_read(self, database, clock):
        store = SQLiteCacheStore(database, default_ttl=60, clock=clock)
        store.set("k", "v")
        clock.advance(60)

        assert store.get("k") is None
        with database.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM ai_cache").fetchone()[0] == 0

    def test_upsert_replaces_payload_and_expiry(self, database, clock):
        store = SQLiteCacheStore(database, default_ttl=60, clock=clock)
        store.set("k", "old")
        clock.advance(50)
        store.set("k", "new")
        clock.advance(50)
        assert store.get("k") == "new"

    def test_stats_and_clear(self, database, clock):
        store = SQLiteCacheStore(database, default_ttl=60, clock=clock)
        store.set("b", 1)
        store.set("a", 2, ttl=5)
        store.set("c", 3)
        clock.advance(10)

        stats = store.stats()
        assert stats.size == 2
        assert stats.keys == ["b", "c"]

        store.clear()
        assert store.stats().size == 0


class TestSQLiteRateLimitStore:
    def test_quota_is_shared_between_limiters(self, database, clock):
        first = RateLimiter(SQLiteRateLimitStore(database), limit=3, window_seconds=100, clock=clock)
        second = RateLimiter(SQLiteRateLimitStore(database), limit=3, window_seconds=100, clock=clock)

        assert first.check_and_consume("u1").remaining == 2
        assert second.check_and_consume("u1").remaining == 1
        assert first.check_and_consume("u1").remaining == 0
        assert not second.check_and_consume("u1").allowed

        stats = first.get_usage_stats("u1")
        assert stats.requests_today == 3

    def test_window_resets(self, database, clock):
        limiter = RateLimiter(SQLiteRateLimitStore(database), limit=1, window_seconds=100, clock=clock)
        limiter.check_and_consume("u1")
        assert not limiter.check_and_consume("u1").allowed

        clock.advance(100)
        assert limiter.check_and_consume("u1").allowed


def test_usage_ledger_appends_rows(database):
    ledger = SQLiteUsageLedger(database)
    ledger.append(UsageRecord(user_id="u1", tokens_estimate=200, feature=Feature.MESSAGE_SUGGESTIONS))
    ledger.append(UsageRecord(user_id="u1", tokens_estimate=300, feature=Feature.RELATIONSHIP_TIP))

    with database.connection() as conn:
        rows = conn.execute(
            "SELECT feature, tokens_estimate FROM ai_usage WHERE user_id = ? ORDER BY id", ("u1",)
        ).fetchall()
    assert [(r["feature"], r["tokens_estimate"]) for r in rows] == [
        ("message_suggestions", 200),
        ("relationship_tip", 300),
    ]


class TestServiceOnSQLite:
    def test_live_result_is_cached_and_billed(self, tmp_path, scripted, repository):
        reply = json.dumps(
            [{"topic": "Music", "opener": "Seen any gigs?", "followUp": "Who played?"}]
        )
        provider = scripted(reply)
        db_path = str(tmp_path / "shared.db")
        service = build_suggestion_service(
            provider=provider, repository=repository, backend="sqlite", sqlite_path=db_path
        )

        first = service.conversation_starters_outcome("user-1", "contact-1")
        second = service.conversation_starters_outcome("user-1", "contact-1")
        service.close()

        assert first.source is SuggestionSource.LIVE
        assert second.source is SuggestionSource.CACHE
        assert second.value == first.value
        assert len(provider.calls) == 1

        with SQLiteDatabase(db_path).connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM ai_usage").fetchone()[0] == 1
            row = conn.execute("SELECT request_count FROM ai_rate_limits").fetchone()
            assert row["request_count"] == 2

    def test_unconfigured_fallback_survives_in_cache(self, tmp_path, repository, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        service = build_suggestion_service(
            repository=repository, backend="sqlite", sqlite_path=str(tmp_path / "s.db")
        )

        service.relationship_tip_outcome("user-1")
        cached = service.relationship_tip_outcome("user-1")
        service.close()

        assert cached.source is SuggestionSource.CACHE
        assert cached.reason is DegradeReason.CONFIGURATION_ABSENT


def test_unknown_backend_rejected(scripted):
    with pytest.raises(ValueError):
        build_suggestion_service(provider=scripted("x"), backend="redis")
