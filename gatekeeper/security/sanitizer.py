"""Input sanitizer."""

from __future__ import annotations

import html
import re
from typing import Any

from gatekeeper.security.patterns import EVENT_HANDLER_RE, SCRIPT_BLOCK_RE

_SCRIPT_BLOCK = re.compile(SCRIPT_BLOCK_RE, re.IGNORECASE)
_EVENT_HANDLER = re.compile(EVENT_HANDLER_RE, re.IGNORECASE)
_SCRIPT_SCHEMES = re.compile(r"(?:javascript|vbscript):", re.IGNORECASE)


def sanitize(value: Any) -> Any:
    """Neutralize dangerous substrings in a string.

    Steps, in order: drop <script>...</script> blocks, drop inline event
    handler attributes (``on<word>=``), drop ``javascript:``/``vbscript:``
    schemes, HTML-escape ``& < > " '`` (``&`` first), trim whitespace.

    Non-string values, ``None`` included, are returned unchanged.

    Not idempotent: a second pass escapes the entities produced by the first
    (``&lt;`` becomes ``&amp;lt;``). A single pass is also not guaranteed to
    neutralize payloads nested so that removing one marker forms another.
    """
    if not isinstance(value, str):
        return value

    cleaned = _SCRIPT_BLOCK.sub("", value)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    cleaned = _SCRIPT_SCHEMES.sub("", cleaned)
    # html.escape replaces & before < > " ' and emits &#x27; for the quote
    cleaned = html.escape(cleaned, quote=True)
    return cleaned.strip()
