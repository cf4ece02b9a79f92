"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
RAPPORT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("RAPPORT_DATA_DIR", str(RAPPORT_ROOT / "data")))

# Environment
ENV = os.getenv("RAPPORT_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Google Cloud / Gemini
# No default project: an unset credential means the provider is absent and
# every feature degrades to its fallback content.
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")


def is_production() -> bool:
    """Check if running in production"""
    return ENV == "production"


def is_development() -> bool:
    """Check if running in development"""
    return ENV == "development"


def llm_credentials_present() -> bool:
    """Read credentials fresh so a late dotenv load is honored."""
    return bool(os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GOOGLE_API_KEY"))
