"""
Per-user AI request quota.

Fixed-window counter: a user's first request opens a window of
AI_RATE_LIMIT_WINDOW_SECONDS holding AI_RATE_LIMIT_MAX requests. The window
resets entirely (not incrementally) on the first request at or after
reset_at. A denied request is not counted.

Budget limits:
- Per user: 50 suggestion requests per 24h window
- Denial never raises; callers serve fallback content instead

Fixed windows tolerate a burst of up to 2x the limit around a window
boundary. The in-memory store is per process; use the SQLite store when
several workers must share one quota.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import NamedTuple, Protocol

from cachetools import TLRUCache

from rapport.config import AI_RATE_LIMIT_MAX, AI_RATE_LIMIT_MAX_USERS, AI_RATE_LIMIT_WINDOW_SECONDS
from rapport.infrastructure.database import SQLiteDatabase, retry_on_db_lock
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter, log_event
from rapport.utils.redaction import redact

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitWindow:
    user_id: str
    count: int
    reset_at: float


class RateLimitDecision(NamedTuple):
    allowed: bool
    remaining: int


class UsageStats(NamedTuple):
    """Read-only view of a user's quota."""

    requests_today: int
    requests_remaining: int
    reset_at: datetime


def advance_window(
    current: RateLimitWindow | None,
    user_id: str,
    now: float,
    limit: int,
    window_seconds: float,
) -> tuple[RateLimitWindow, bool]:
    """
    Apply one request to a window.

    Returns the window after the request and whether the request is allowed.
    When denied, the window is returned unchanged.
    """
    if current is None or now >= current.reset_at:
        return RateLimitWindow(user_id=user_id, count=1, reset_at=now + window_seconds), True

    if current.count >= limit:
        return current, False

    return replace(current, count=current.count + 1), True


class RateLimitStore(Protocol):
    def get(self, user_id: str) -> RateLimitWindow | None: ...

    def consume(
        self, user_id: str, now: float, limit: int, window_seconds: float
    ) -> tuple[RateLimitWindow, bool]: ...


class InMemoryRateLimitStore:
    """
    Windows held in a cachetools.TLRUCache keyed by user.

    Each window expires at its own reset_at, so lapsed windows are evicted
    instead of piling up; an evicted window reads the same as no window.
    The timer must be the limiter's clock. The lock makes check-and-consume
    atomic across threads.
    """

    def __init__(self, maxsize: int = AI_RATE_LIMIT_MAX_USERS, clock: Clock = time.time) -> None:
        self._windows: TLRUCache[str, RateLimitWindow] = TLRUCache(
            maxsize=maxsize, ttu=self._time_to_use, timer=clock
        )
        self._lock = threading.Lock()

    @staticmethod
    def _time_to_use(_user_id: str, window: RateLimitWindow, _now: float) -> float:
        return window.reset_at

    def __len__(self) -> int:
        with self._lock:
            self._windows.expire()
            return len(self._windows)

    def get(self, user_id: str) -> RateLimitWindow | None:
        with self._lock:
            return self._windows.get(user_id)

    def consume(
        self, user_id: str, now: float, limit: int, window_seconds: float
    ) -> tuple[RateLimitWindow, bool]:
        with self._lock:
            window, allowed = advance_window(
                self._windows.get(user_id), user_id, now, limit, window_seconds
            )
            if allowed:
                self._windows[user_id] = window
        return window, allowed


class SQLiteRateLimitStore:
    """Windows in the ai_rate_limits table, updated under BEGIN IMMEDIATE."""

    def __init__(self, database: SQLiteDatabase):
        self.database = database

    @staticmethod
    def _row_to_window(user_id: str, row) -> RateLimitWindow | None:
        if row is None:
            return None
        return RateLimitWindow(user_id=user_id, count=row["request_count"], reset_at=row["reset_at"])

    @retry_on_db_lock()
    def get(self, user_id: str) -> RateLimitWindow | None:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT request_count, reset_at FROM ai_rate_limits WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return self._row_to_window(user_id, row)

    @retry_on_db_lock()
    def consume(
        self, user_id: str, now: float, limit: int, window_seconds: float
    ) -> tuple[RateLimitWindow, bool]:
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT request_count, reset_at FROM ai_rate_limits WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            window, allowed = advance_window(
                self._row_to_window(user_id, row), user_id, now, limit, window_seconds
            )
            if allowed:
                conn.execute(
                    """
                    INSERT INTO ai_rate_limits (user_id, request_count, reset_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        request_count = excluded.request_count,
                        reset_at = excluded.reset_at
                    """,
                    (user_id, window.count, window.reset_at),
                )
        return window, allowed


class RateLimiter:
    """Fixed-window quota in front of the suggestion generators."""

    def __init__(
        self,
        store: RateLimitStore,
        limit: int = AI_RATE_LIMIT_MAX,
        window_seconds: float = AI_RATE_LIMIT_WINDOW_SECONDS,
        clock: Clock = time.time,
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    def check_and_consume(self, user_id: str) -> RateLimitDecision:
        """
        Count one request against the user's window.

        Side Effects:
            - Opens or resets the window when none is active
            - Increments the window count when allowed
        """
        window, allowed = self.store.consume(
            user_id, self._clock(), self.limit, self.window_seconds
        )

        if not allowed:
            counter("ai.rate_limit.denied")
            logger.warning("User %s exceeded AI rate limit (%d/%d)", redact(user_id), window.count, self.limit)
            log_event("ai.rate_limit.denied", user=redact(user_id), limit=self.limit)
            return RateLimitDecision(allowed=False, remaining=0)

        return RateLimitDecision(allowed=True, remaining=max(0, self.limit - window.count))

    def get_usage_stats(self, user_id: str) -> UsageStats:
        """Quota view for the user; full quota when no window is active."""
        now = self._clock()
        window = self.store.get(user_id)

        if window is None or now >= window.reset_at:
            return UsageStats(
                requests_today=0,
                requests_remaining=self.limit,
                reset_at=datetime.fromtimestamp(now + self.window_seconds, tz=UTC),
            )

        return UsageStats(
            requests_today=window.count,
            requests_remaining=max(0, self.limit - window.count),
            reset_at=datetime.fromtimestamp(window.reset_at, tz=UTC),
        )
