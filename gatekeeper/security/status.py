"""Self-reporting of protection status.

Used by the status endpoint and by the startup check, never on the request
path.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from gatekeeper.security.classifier import validate_input
from gatekeeper.security.patterns import REGISTRY

XSS_TEST_VECTORS: tuple[str, ...] = (
    '<script>alert("xss")</script>',
    'javascript:alert("xss")',
    '<img src="x" onerror="alert(1)">',
)

SQL_INJECTION_TEST_VECTORS: tuple[str, ...] = (
    "'; DROP TABLE users; --",
    "1' OR '1'='1",
    "UNION SELECT * FROM users",
)

REQUIRED_HEADERS: tuple[str, ...] = (
    "x-content-type-options",
    "x-frame-options",
    "x-xss-protection",
    "strict-transport-security",
)

SECURITY_FEATURES: tuple[str, ...] = (
    "Security headers - HTTP response hardening",
    "CORS - Cross-origin access control",
    "Rate limiting - Per-client request windows",
    "Input validation - Declared field rules",
    "XSS protection - Cross-site scripting detection and sanitization",
    "SQL injection prevention - Signature-based detection",
    "Request logging - Structured access log",
    "Error handling - Uniform JSON errors without internals in production",
)

DEVSECOPS_PRACTICES: tuple[str, ...] = (
    "Static analysis in CI",
    "Dependency vulnerability scanning",
    "Container image scanning",
    "Automated security tests",
    "Infrastructure as code",
    "Continuous security monitoring",
    "HTTP security headers",
    "Automatic input sanitization",
)


def xss_self_test() -> bool:
    """True if every canned XSS vector is rejected."""
    return all(not validate_input(vector) for vector in XSS_TEST_VECTORS)


def sql_injection_self_test() -> bool:
    """True if every canned SQL injection vector is rejected."""
    return all(not validate_input(vector) for vector in SQL_INJECTION_TEST_VECTORS)


def check_security_headers(header_names: Iterable[str]) -> dict[str, Any]:
    """Report which of the required security headers are present."""
    present_names = {name.lower() for name in header_names}
    present = [h for h in REQUIRED_HEADERS if h in present_names]
    missing = [h for h in REQUIRED_HEADERS if h not in present_names]
    return {
        "required": len(REQUIRED_HEADERS),
        "present": len(present),
        "missing": missing,
        "compliance": round(len(present) / len(REQUIRED_HEADERS) * 100),
    }


def verify_registry() -> None:
    """Fail startup if a category is empty or a self-test does not pass."""
    for category, patterns in REGISTRY.items():
        if not patterns:
            raise RuntimeError(f"No patterns registered for {category.value}")
    if not xss_self_test():
        raise RuntimeError("XSS self-test failed")
    if not sql_injection_self_test():
        raise RuntimeError("SQL injection self-test failed")
