"""Pre-handler input sanitization middleware."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any
from urllib.parse import parse_qsl

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gatekeeper.errors import malformed_body
from gatekeeper.middleware.pipeline import Middleware, RequestContext
from gatekeeper.security.sanitizer import sanitize

logger = structlog.get_logger()

_FORM_TYPE = "application/x-www-form-urlencoded"


def sanitize_mapping(values: dict[str, Any]) -> int:
    """Sanitize every top-level string value in place; return how many changed.

    Keys keep their order; non-string values are left untouched.
    """
    changed = 0
    for key, value in values.items():
        if isinstance(value, str):
            cleaned = sanitize(value)
            if cleaned != value:
                changed += 1
            values[key] = cleaned
    return changed


def multi_value_dict(pairs: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Collect key/value pairs; a repeated key maps to the list of its values.

    Lists are not strings, so the sanitizer leaves them as received.
    """
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key not in result:
            result[key] = value
        elif isinstance(result[key], list):
            result[key].append(value)
        else:
            result[key] = [result[key], value]
    return result


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class RequestSanitizer(Middleware):
    """Parse the body and query string onto the context, then sanitize them.

    Route handlers read ``context.body`` / ``context.query``. The values as
    received stay available in ``context.raw_body`` / ``context.raw_query``
    for endpoints whose job is to inspect them.

    - JSON objects and form-urlencoded bodies are parsed; other bodies are ignored
    - Oversized bodies get 413, unparseable JSON gets 400
    """

    def __init__(self, max_body_bytes: int) -> None:
        self._max_body_bytes = max_body_bytes

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > self._max_body_bytes:
                    return JSONResponse(malformed_body("Request body too large"), status_code=413)
            except (ValueError, OverflowError):
                return JSONResponse(malformed_body("Invalid Content-Length"), status_code=400)

        raw_body: dict[str, Any] = {}
        body = await request.body()
        if len(body) > self._max_body_bytes:
            return JSONResponse(malformed_body("Request body too large"), status_code=413)

        if body:
            content_type = request.headers.get("content-type", "")
            if _is_json(content_type):
                try:
                    parsed = json.loads(body)
                except (ValueError, UnicodeDecodeError):
                    logger.info("malformed_json_body", path=request.url.path)
                    return JSONResponse(malformed_body("Body is not valid JSON"), status_code=400)
                if not isinstance(parsed, dict):
                    return JSONResponse(malformed_body("JSON body must be an object"), status_code=400)
                raw_body = parsed
            elif content_type.split(";", 1)[0].strip().lower() == _FORM_TYPE:
                raw_body = multi_value_dict(
                    parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True)
                )

        context.raw_body = raw_body
        context.raw_query = multi_value_dict(request.query_params.multi_items())
        context.body = dict(raw_body)
        context.query = dict(context.raw_query)

        changed = sanitize_mapping(context.body) + sanitize_mapping(context.query)
        if changed:
            logger.info("input_sanitized", fields=changed, path=request.url.path)
        return None
