"""
AI usage accounting.

Every live generation appends one UsageRecord (user, estimated tokens,
feature) to a ledger for downstream cost reporting. Records are write-once
and never read back by the suggestion pipeline.

Writes are best-effort: a failing ledger is logged and ignored so that
accounting can never fail or delay a user-facing response. When an executor
is supplied, writes run on it and the caller returns immediately.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from rapport.infrastructure.database import SQLiteDatabase, retry_on_db_lock
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter
from rapport.suggestions.models import Feature
from rapport.utils.redaction import redact

logger = get_logger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    user_id: str
    tokens_estimate: int
    feature: Feature
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class UsageLedger(Protocol):
    def append(self, record: UsageRecord) -> None: ...


class InMemoryUsageLedger:
    """Keeps records in a list; used in development and tests."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []
        self._lock = threading.Lock()

    def append(self, record: UsageRecord) -> None:
        with self._lock:
            self.records.append(record)


class SQLiteUsageLedger:
    """Appends records to the ai_usage table."""

    def __init__(self, database: SQLiteDatabase):
        self.database = database

    @retry_on_db_lock()
    def append(self, record: UsageRecord) -> None:
        with self.database.connection() as conn:
            conn.execute(
                """
                INSERT INTO ai_usage (user_id, feature, tokens_estimate, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.user_id,
                    record.feature.value,
                    record.tokens_estimate,
                    record.created_at.isoformat(),
                ),
            )


class UsageTracker:
    """Fire-and-forget front end for a UsageLedger."""

    def __init__(self, ledger: UsageLedger, executor: Executor | None = None):
        self.ledger = ledger
        self.executor = executor

    def record(self, user_id: str, tokens_estimate: int, feature: Feature) -> None:
        """
        Record estimated token usage for one generation.

        Side Effects:
            - Appends to the ledger (inline, or on the executor when configured)
            - Never raises
        """
        record = UsageRecord(user_id=user_id, tokens_estimate=tokens_estimate, feature=feature)

        if self.executor is None:
            self._write(record)
            return

        try:
            future = self.executor.submit(self._write, record)
        except RuntimeError as e:
            # Executor already shut down
            counter("ai.usage.write_failed")
            logger.warning("Failed to schedule AI usage record: %s", e)
            return
        future.add_done_callback(self._log_unexpected)

    def _write(self, record: UsageRecord) -> None:
        try:
            self.ledger.append(record)
            counter(f"ai.usage.recorded.{record.feature.value}")
        except Exception as e:
            counter("ai.usage.write_failed")
            logger.warning(
                "Failed to track AI usage for user=%s feature=%s: %s",
                redact(record.user_id),
                record.feature.value,
                e,
            )

    def close(self) -> None:
        """Flush pending writes and stop the executor."""
        if self.executor is not None:
            self.executor.shutdown(wait=True)

    @staticmethod
    def _log_unexpected(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("AI usage writer crashed: %s", error)
