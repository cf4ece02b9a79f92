"""Unit tests for best-effort usage accounting."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from rapport.observability.telemetry import get_counter
from rapport.suggestions.models import Feature
from rapport.suggestions.usage import InMemoryUsageLedger, UsageTracker


class ExplodingLedger:
    def __init__(self):
        self.attempts = 0

    def append(self, record):
        self.attempts += 1
        raise RuntimeError("disk full")


def test_inline_write_appends_record():
    ledger = InMemoryUsageLedger()
    UsageTracker(ledger).record("u1", 200, Feature.MESSAGE_SUGGESTIONS)

    (record,) = ledger.records
    assert record.user_id == "u1"
    assert record.tokens_estimate == 200
    assert record.feature is Feature.MESSAGE_SUGGESTIONS
    assert record.created_at.tzinfo is not None
    assert get_counter("ai.usage.recorded.message_suggestions") == 1


def test_ledger_failure_is_swallowed():
    ledger = ExplodingLedger()
    UsageTracker(ledger).record("u1", 300, Feature.RELATIONSHIP_TIP)

    assert ledger.attempts == 1
    assert get_counter("ai.usage.write_failed") == 1


def test_executor_write_completes_after_close():
    ledger = InMemoryUsageLedger()
    tracker = UsageTracker(ledger, executor=ThreadPoolExecutor(max_workers=1))

    for _ in range(5):
        tracker.record("u1", 1000, Feature.EVENT_IDEAS)
    tracker.close()

    assert len(ledger.records) == 5


def test_executor_failure_is_swallowed():
    tracker = UsageTracker(ExplodingLedger(), executor=ThreadPoolExecutor(max_workers=1))
    tracker.record("u1", 500, Feature.CONVERSATION_STARTERS)
    tracker.close()

    assert get_counter("ai.usage.write_failed") == 1


def test_record_after_shutdown_does_not_raise():
    ledger = InMemoryUsageLedger()
    tracker = UsageTracker(ledger, executor=ThreadPoolExecutor(max_workers=1))
    tracker.close()

    tracker.record("u1", 200, Feature.MESSAGE_SUGGESTIONS)

    assert ledger.records == []
    assert get_counter("ai.usage.write_failed") == 1
