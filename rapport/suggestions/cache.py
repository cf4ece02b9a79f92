"""
Suggestion cache.

Keys are derived from the logical request (feature prefix + canonical hash of
the parameters), values carry a per-entry expiry. Expired entries read as a
miss and are dropped lazily; there is no background sweep.

Two stores implement the CacheStore protocol:
- InMemoryCacheStore: cachetools TLRUCache, one process
- SQLiteCacheStore: one SQLite file shared by every process on the host

Concurrent writers for the same key simply overwrite each other. Values are
derived from the same inputs, so last-write-wins is acceptable.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple, Protocol

from cachetools import TLRUCache

from rapport.config import AI_CACHE_MAX_ENTRIES, AI_CACHE_TTL_SECONDS
from rapport.infrastructure.database import SQLiteDatabase, retry_on_db_lock
from rapport.observability.logging import get_logger
from rapport.observability.telemetry import counter

logger = get_logger(__name__)

Clock = Callable[[], float]


def _canonical(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def cache_key(prefix: str, params: Mapping[str, Any]) -> str:
    """
    Build a cache key that depends only on the logical content of params.

    Keys are sorted and None values dropped before hashing, so the order in
    which a caller assembled the dict never changes the key.

    Example:
        cache_key("message", {"contact_id": "c1", "context": "birthday"})
        -> "message:<32 hex chars>"
    """
    canonical = json.dumps(_canonical(params), sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.md5(canonical.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{prefix}:{digest}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    expires_at: float


class CacheStats(NamedTuple):
    size: int
    keys: list[str]


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, payload: Any, ttl: float | None = None) -> None: ...

    def clear(self) -> None: ...

    def stats(self) -> CacheStats: ...


class InMemoryCacheStore:
    """
    Process-lifetime cache backed by cachetools.TLRUCache.

    The time-to-use function reads each entry's own expires_at, so entries
    written with different TTLs coexist. The TLRU timer is the injected clock,
    which lets tests move time forward without sleeping.
    """

    def __init__(
        self,
        default_ttl: float = AI_CACHE_TTL_SECONDS,
        maxsize: int = AI_CACHE_MAX_ENTRIES,
        clock: Clock = time.time,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=maxsize, ttu=self._time_to_use, timer=clock
        )

    @staticmethod
    def _time_to_use(_key: str, entry: CacheEntry, _now: float) -> float:
        return entry.expires_at

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._entries.expire()
                counter("ai.cache.miss")
                return None
        counter("ai.cache.hit")
        return entry.payload

    def set(self, key: str, payload: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(key=key, payload=payload, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("AI suggestion cache cleared")

    def stats(self) -> CacheStats:
        with self._lock:
            self._entries.expire()
            keys = list(self._entries.keys())
        return CacheStats(size=len(keys), keys=keys)


class SQLiteCacheStore:
    """
    Cache shared between processes through the ai_cache table.

    Payloads are stored as JSON text, so only JSON-serializable values can be
    cached here.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        default_ttl: float = AI_CACHE_TTL_SECONDS,
        clock: Clock = time.time,
    ):
        self.database = database
        self.default_ttl = default_ttl
        self._clock = clock

    @retry_on_db_lock()
    def get(self, key: str) -> Any | None:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT payload, expires_at FROM ai_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()
            if row is None:
                counter("ai.cache.miss")
                return None
            if self._clock() >= row["expires_at"]:
                conn.execute(
                    "DELETE FROM ai_cache WHERE cache_key = ? AND expires_at = ?",
                    (key, row["expires_at"]),
                )
                counter("ai.cache.miss")
                return None
        counter("ai.cache.hit")
        return json.loads(row["payload"])

    @retry_on_db_lock()
    def set(self, key: str, payload: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self.database.connection() as conn:
            conn.execute(
                """
                INSERT INTO ai_cache (cache_key, payload, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    payload = excluded.payload,
                    expires_at = excluded.expires_at
                """,
                (key, json.dumps(payload), self._clock() + ttl),
            )

    @retry_on_db_lock()
    def clear(self) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM ai_cache")
        logger.info("AI suggestion cache cleared (sqlite)")

    @retry_on_db_lock()
    def stats(self) -> CacheStats:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM ai_cache WHERE expires_at <= ?", (self._clock(),))
            keys = [
                row["cache_key"]
                for row in conn.execute("SELECT cache_key FROM ai_cache ORDER BY cache_key")
            ]
        return CacheStats(size=len(keys), keys=keys)
