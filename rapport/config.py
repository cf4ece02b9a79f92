"""Centralized configuration for the Rapport suggestion backend.

Re-exports everything from rapport.infrastructure.settings so existing imports
continue to work, then adds typed constants for caching, quota, provider
retry, state storage, and API settings. Environment variable overrides use
safe defaults so the app starts without extra env configuration.
"""

from __future__ import annotations

import os

from rapport.infrastructure.settings import *  # noqa: F401, F403 - re-export existing
from rapport.infrastructure.settings import DATA_DIR


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


# --- App ---
APP_VERSION: str = "1.0.0"

# --- Suggestion Cache ---
AI_CACHE_TTL_SECONDS: int = int(_env("RAPPORT_AI_CACHE_TTL", str(24 * 60 * 60)))
AI_CACHE_MAX_ENTRIES: int = int(_env("RAPPORT_AI_CACHE_MAX_ENTRIES", "10000"))

# --- Per-user Quota (fixed window) ---
AI_RATE_LIMIT_MAX: int = int(_env("RAPPORT_AI_RATE_LIMIT_MAX", "50"))
AI_RATE_LIMIT_WINDOW_SECONDS: int = int(_env("RAPPORT_AI_RATE_LIMIT_WINDOW", str(24 * 60 * 60)))
AI_RATE_LIMIT_MAX_USERS: int = int(_env("RAPPORT_AI_RATE_LIMIT_MAX_USERS", "10000"))

# --- LLM Provider ---
LLM_MAX_ATTEMPTS: int = int(_env("RAPPORT_LLM_MAX_ATTEMPTS", "3"))
LLM_RATE_LIMIT_DEFAULT_DELAY: float = float(_env("RAPPORT_LLM_RATE_LIMIT_DELAY", "5"))
LLM_SERVER_ERROR_BACKOFF: float = float(_env("RAPPORT_LLM_SERVER_BACKOFF", "1.0"))

# --- State Backend ---
# "memory" keeps cache, quota windows and usage in-process (single instance).
# "sqlite" shares them between processes through one database file.
STATE_BACKEND: str = _env("RAPPORT_STATE_BACKEND", "memory").lower()
SQLITE_PATH: str = _env("RAPPORT_SQLITE_PATH", str(DATA_DIR / "rapport.db"))
DB_CONNECT_TIMEOUT: float = float(_env("RAPPORT_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(_env("RAPPORT_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(_env("RAPPORT_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(_env("RAPPORT_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(_env("RAPPORT_DB_RETRY_JITTER", "0.1"))

# --- Usage Ledger ---
USAGE_WRITER_THREADS: int = int(_env("RAPPORT_USAGE_WRITER_THREADS", "1"))

# --- API ---
API_GROUP_SIZE_MIN: int = 1
API_GROUP_SIZE_MAX: int = 100
