"""Helpers for client-supplied values that end up in headers or logs."""

from __future__ import annotations

import re

# C0/C1 controls, DEL, line/paragraph separators, bidi overrides and BOM.
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)

_SNIPPET_LENGTH = 100


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def log_safe(value: str, limit: int = _SNIPPET_LENGTH) -> str:
    """Clamp a client value to ``limit`` chars and strip control characters."""
    return strip_control_chars(value[:limit])
