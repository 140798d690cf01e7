"""Pattern-based input classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from gatekeeper.security.patterns import ThreatCategory, first_match
from gatekeeper.utils.sanitize import log_safe

logger = structlog.get_logger()

_DETECTION_EVENTS = {
    ThreatCategory.sql_injection: "sql_injection_detected",
    ThreatCategory.xss: "xss_detected",
}


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Per-call classification of a single value. Never stored."""

    is_xss_match: bool
    is_sql_match: bool
    is_safe: bool


def _matches(value: Any, category: ThreatCategory) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return first_match(value, category) is not None


def detect_xss(value: Any) -> bool:
    """True iff any XSS pattern matches. False for non-string input."""
    return _matches(value, ThreatCategory.xss)


def detect_sql_injection(value: Any) -> bool:
    """True iff any SQL injection pattern matches. False for non-string input."""
    return _matches(value, ThreatCategory.sql_injection)


def validate_input(value: Any) -> bool:
    """Return True only for a non-empty string that matches no known pattern.

    SQL injection patterns are checked before XSS patterns; each category
    stops at its first match. A rejection is logged with the category and
    the offending snippet.
    """
    if not isinstance(value, str) or not value:
        return False

    for category in (ThreatCategory.sql_injection, ThreatCategory.xss):
        hit = first_match(value, category)
        if hit is not None:
            pattern, match = hit
            logger.warning(
                _DETECTION_EVENTS[category],
                category=category.value,
                pattern=pattern.name,
                snippet=log_safe(match.group(0)),
            )
            return False
    return True


def classify(value: Any) -> ClassificationResult:
    """Classify ``value`` against both categories independently."""
    xss = detect_xss(value)
    sql = detect_sql_injection(value)
    safe = isinstance(value, str) and bool(value) and not (xss or sql)
    return ClassificationResult(is_xss_match=xss, is_sql_match=sql, is_safe=safe)
