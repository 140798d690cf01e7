"""JSON error shapes and the declared-rule failure exception."""

from __future__ import annotations

import traceback
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from starlette.requests import Request

if TYPE_CHECKING:
    from gatekeeper.validation.rules import ValidationError


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class ValidationFailed(Exception):
    """Raised when one or more declared field rules fail."""

    def __init__(self, errors: list[ValidationError], message: str = "Validation errors") -> None:
        super().__init__(message)
        self.errors = errors
        self.message = message


def validation_failed_body(exc: ValidationFailed) -> dict[str, Any]:
    return {
        "error": exc.message,
        "details": [error.as_dict() for error in exc.errors],
        "timestamp": utc_timestamp(),
    }


def malformed_body(message: str) -> dict[str, Any]:
    return {
        "error": "Malformed request body",
        "message": message,
        "timestamp": utc_timestamp(),
    }


def rate_limited_body(retry_after: int) -> dict[str, Any]:
    return {
        "error": "Too many requests, try again later",
        "retryAfter": retry_after,
        "timestamp": utc_timestamp(),
    }


def not_found_body(request: Request, available_endpoints: list[str]) -> dict[str, Any]:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return {
        "error": "Endpoint not found",
        "message": "The requested route does not exist",
        "requestedUrl": path,
        "method": request.method,
        "timestamp": utc_timestamp(),
        "availableEndpoints": available_endpoints,
    }


def internal_error_body(
    request: Request | None,
    request_id: str,
    exc: BaseException,
    *,
    debug: bool,
) -> dict[str, Any]:
    """Body for an unhandled error. Internals are only exposed when ``debug``."""
    body: dict[str, Any] = {
        "error": "Internal server error",
        "message": str(exc) if debug else "Something went wrong on the server",
        "timestamp": utc_timestamp(),
        "requestId": request_id or "unknown",
    }
    if debug:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if request is not None:
            body["details"] = {
                "url": str(request.url),
                "method": request.method,
                "headers": dict(request.headers),
            }
    return body
