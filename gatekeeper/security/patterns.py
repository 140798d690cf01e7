"""Threat signature registry.

Two ordered, fixed sequences of compiled patterns, one per threat category.
Compiled once at import time; a pattern that fails to compile makes the
import fail, which prevents the service from starting.

The set is deliberately small and auditable. It has known false negatives
(obfuscated payloads, encodings other than the ``%XX`` forms listed) and
known false positives (free text such as "select items from the list").
"""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType


class ThreatCategory(str, enum.Enum):
    sql_injection = "sql_injection"
    xss = "xss"


@dataclass(frozen=True, slots=True)
class Pattern:
    """A compiled signature tagged with its threat category."""

    name: str
    category: ThreatCategory
    regex: re.Pattern[str]

    def search(self, value: str) -> re.Match[str] | None:
        return self.regex.search(value)


def _sql(name: str, expr: str) -> Pattern:
    return Pattern(name, ThreatCategory.sql_injection, re.compile(expr, re.IGNORECASE))


def _xss(name: str, expr: str) -> Pattern:
    return Pattern(name, ThreatCategory.xss, re.compile(expr, re.IGNORECASE))


# ── SQL injection ───────────────────────────────────────────────────────

SQL_INJECTION_PATTERNS: tuple[Pattern, ...] = (
    # Quote and comment markers, raw or URL-encoded
    _sql("sql_meta_chars", r"(%27)|(')|(--)|(%23)|(#)"),
    # Assignment followed by a quote, comment or statement terminator
    _sql("sql_assignment_terminator", r"((%3D)|(=))[^\n]*((%27)|(')|(--)|(%3B)|(;))"),
    # Tautologies: ' OR ... / ' AND ...
    _sql("sql_tautology_or", r"\w*((%27)|('))\s*((%6F)|o|(%4F))((%72)|r|(%52))"),
    _sql("sql_tautology_and", r"\w*((%27)|('))\s*((%61)|a|(%41))((%6E)|n|(%4E))((%64)|d|(%44))"),
    # Keyword sequences
    _sql("sql_union_select", r"union[\s\w]*select"),
    _sql("sql_select_from", r"select[\s\w]*from"),
    _sql("sql_insert_into", r"insert[\s\w]*into"),
    _sql("sql_delete_from", r"delete[\s\w]*from"),
    _sql("sql_update_set", r"update[\s\w]*set"),
    _sql("sql_drop_table", r"drop[\s\w]*table"),
)

# ── Cross-site scripting ────────────────────────────────────────────────

# Matches a whole <script>...</script> pair, including interior tags that are
# not the closing </script>.
SCRIPT_BLOCK_RE = r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>"
EVENT_HANDLER_RE = r"\bon\w+\s*="

XSS_PATTERNS: tuple[Pattern, ...] = (
    _xss("xss_script_block", SCRIPT_BLOCK_RE),
    _xss("xss_javascript_uri", r"javascript:"),
    _xss("xss_event_handler", EVENT_HANDLER_RE),
    _xss("xss_iframe_tag", r"<iframe"),
    _xss("xss_object_tag", r"<object"),
    _xss("xss_embed_tag", r"<embed"),
    _xss("xss_link_tag", r"<link"),
    _xss("xss_meta_tag", r"<meta"),
    _xss("xss_css_expression", r"expression\s*\("),
    _xss("xss_vbscript_uri", r"vbscript:"),
)

REGISTRY: Mapping[ThreatCategory, tuple[Pattern, ...]] = MappingProxyType({
    ThreatCategory.sql_injection: SQL_INJECTION_PATTERNS,
    ThreatCategory.xss: XSS_PATTERNS,
})


def first_match(value: str, category: ThreatCategory) -> tuple[Pattern, re.Match[str]] | None:
    """Return the first pattern of ``category`` that matches, with its match."""
    for pattern in REGISTRY[category]:
        match = pattern.search(value)
        if match is not None:
            return pattern, match
    return None
