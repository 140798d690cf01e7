"""Per-client fixed-window rate limiter middleware."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gatekeeper.errors import rate_limited_body, utc_timestamp
from gatekeeper.middleware.pipeline import Middleware, RequestContext
from gatekeeper.store.windows import Clock, WindowStore, WindowStoreUnavailable
from gatekeeper.utils.sanitize import log_safe

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitConfig:
    window_seconds: float
    max_requests: int
    # Trusted reverse proxies in front of the service (0 = trust none)
    forwarded_hops: int = 0


def client_identity(request: Request, forwarded_hops: int = 0) -> str:
    """Resolve the rate-limit key for a request.

    With ``forwarded_hops`` = N > 0, the N-th X-Forwarded-For entry from the
    right is used, since each trusted proxy appends the address it saw.
    Entries further left are client-controlled and never used.
    """
    peer = request.client.host if request.client else "unknown"
    if forwarded_hops <= 0:
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [part.strip() for part in forwarded.split(",") if part.strip()]
    if len(hops) < forwarded_hops:
        return peer
    return hops[-forwarded_hops]


class RateLimiter(Middleware):
    """Admission gate. Must be the first stage that does any real work.

    - Fixed window per client identity (see store.windows)
    - The (max + 1)-th request of a window is rejected with 429
    - Fail-closed (503) when the counter backend is unavailable
    - Injects X-RateLimit-* response headers
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: WindowStore,
        *,
        clock: Clock = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def store(self) -> WindowStore:
        return self._store

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        identity = client_identity(request, self._config.forwarded_hops)
        context.client_id = identity

        try:
            window = await self._store.hit(identity, self._config.max_requests)
        except WindowStoreUnavailable as exc:
            logger.error("rate_limiter_store_unavailable", error=str(exc), action="fail_closed")
            return JSONResponse(
                {"error": "Service temporarily unavailable", "timestamp": utc_timestamp()},
                status_code=503,
            )

        reset_at = window.reset_at(self._store.window_seconds)
        context.extra["rate_limit_max"] = window.limit
        context.extra["rate_limit_remaining"] = window.remaining
        context.extra["rate_limit_reset"] = math.ceil(reset_at)

        if not window.exceeded:
            return None

        retry_after = max(1, math.ceil(reset_at - self._clock()))
        logger.warning(
            "rate_limit_exceeded",
            client=log_safe(identity),
            count=window.count,
            max=window.limit,
            request_id=context.request_id,
        )
        return JSONResponse(
            rate_limited_body(retry_after),
            status_code=429,
            headers={"Retry-After": str(retry_after)},
        )

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Inject X-RateLimit-* headers, including on the 429 itself."""
        if "rate_limit_max" in context.extra:
            response.headers["X-RateLimit-Limit"] = str(context.extra["rate_limit_max"])
            response.headers["X-RateLimit-Remaining"] = str(context.extra["rate_limit_remaining"])
            response.headers["X-RateLimit-Reset"] = str(context.extra["rate_limit_reset"])
        return response
