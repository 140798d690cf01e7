"""Threat detection and sanitization engine."""

from gatekeeper.security.classifier import (
    ClassificationResult,
    classify,
    detect_sql_injection,
    detect_xss,
    validate_input,
)
from gatekeeper.security.patterns import Pattern, ThreatCategory
from gatekeeper.security.sanitizer import sanitize

__all__ = [
    "ClassificationResult",
    "Pattern",
    "ThreatCategory",
    "classify",
    "detect_sql_injection",
    "detect_xss",
    "sanitize",
    "validate_input",
]
