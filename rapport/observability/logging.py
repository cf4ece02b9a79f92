from __future__ import annotations

import logging
import os
from typing import Final

_HANDLER_ATTACHED: bool = False
_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# SDK loggers that flood INFO with per-request transport chatter
_NOISY_LOGGERS: Final[tuple[str, ...]] = (
    "google.auth",
    "google.api_core",
    "urllib3",
    "httpx",
    "httpcore",
)


def _resolve_level(override: str | None = None) -> int:
    level_name = (override or os.getenv("RAPPORT_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(level: str | None = None) -> None:
    """Attach the shared stream handler once and apply the requested level."""
    global _HANDLER_ATTACHED

    resolved = _resolve_level(level)
    root = logging.getLogger()

    if not _HANDLER_ATTACHED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
        _HANDLER_ATTACHED = True

    root.setLevel(resolved)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger sharing the rapport stream handler."""
    configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level())
    return logger
