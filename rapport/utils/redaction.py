"""
Redaction helpers for log lines and prompt inputs.

Provides:
- redact(): Hash identifiers for correlation without exposure
- sanitize_for_prompt(): Strip prompt injection patterns from contact data
"""

from __future__ import annotations

import re
from hashlib import sha256

# Patterns that could be used for prompt injection via contact notes or names
INJECTION_PATTERNS = [
    r"ignore\s+(previous|above|all)\s+instructions?",
    r"disregard\s+(previous|above|all)\s+instructions?",
    r"forget\s+(previous|above|all)\s+instructions?",
    r"new\s+instructions?:",
    r"system\s*:",
    r"assistant\s*:",
    r"user\s*:",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
]
INJECTION_REGEX = re.compile("|".join(INJECTION_PATTERNS), re.IGNORECASE)


def redact(value: str | None) -> str:
    """
    Return a stable hash representation of a sensitive string.
    """
    if not value:
        return "hash:missing"
    digest = sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"hash:{digest}"


def sanitize_for_prompt(text: str | None, max_length: int = 500) -> str:
    """
    Clean user-authored text (names, interests, notes) before it enters a prompt.

    Truncates, replaces known injection markers with [REDACTED], and drops
    characters that could be read as template or markup delimiters.
    """
    if not text:
        return ""

    text = text[:max_length]
    text = INJECTION_REGEX.sub("[REDACTED]", text)
    text = re.sub(r"[<>{}|\\]", "", text)

    return text.strip()
