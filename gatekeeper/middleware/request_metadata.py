"""Request metadata middleware: request id, response time and access log."""

from __future__ import annotations

from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

from gatekeeper.middleware.pipeline import Middleware, RequestContext
from gatekeeper.utils.sanitize import log_safe, strip_control_chars

logger = structlog.get_logger()

_MAX_REQUEST_ID_LENGTH = 128


class RequestMetadata(Middleware):
    """Assign the request id and stamp the response time.

    Registered first so that its response stage runs last: X-Response-Time
    is set once, right before the response is written, on every path.

    - Propagates an inbound X-Request-ID (control chars stripped, clamped)
      or generates one (uuid4, first 8 chars)
    - Binds request_id to structlog contextvars for the request
    - Writes one ``request_completed`` access log record
    """

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        inbound = request.headers.get("x-request-id", "")
        inbound = strip_control_chars(inbound[:_MAX_REQUEST_ID_LENGTH]).strip()
        context.request_id = inbound or uuid4().hex[:8]

        context.extra["access_log"] = {
            "method": request.method,
            "path": request.url.path,
            "user_agent": log_safe(request.headers.get("user-agent", "")),
            "referer": log_safe(request.headers.get("referer", "direct")),
        }

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=context.request_id)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        context.response_time_ms = context.elapsed_ms()
        response.headers["x-request-id"] = context.request_id
        response.headers["x-response-time"] = f"{context.response_time_ms}ms"

        access = context.extra.get("access_log")
        if access is not None:
            logger.info(
                "request_completed",
                status=response.status_code,
                duration_ms=context.response_time_ms,
                client=log_safe(context.client_id),
                **access,
            )
        return response
