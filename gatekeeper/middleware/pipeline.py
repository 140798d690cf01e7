"""Ordered middleware chain framework.

Request stages run in registration order and may short-circuit with a
response. Response stages run in reverse order on every response, the
short-circuited ones included, so the first registered stage is the last to
touch the response before it is written.
"""

from __future__ import annotations

import abc
import time
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gatekeeper.errors import internal_error_body

logger = structlog.get_logger()

M = TypeVar("M", bound="Middleware")


@dataclass
class RequestContext:
    """Per-request record, discarded once the response is sent.

    ``body`` and ``query`` hold the sanitized input; ``raw_body`` and
    ``raw_query`` keep the values as received.
    """

    request_id: str = ""
    client_id: str = ""
    start_time: float = field(default_factory=time.perf_counter)
    response_time_ms: int | None = None
    body: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    raw_body: dict[str, Any] = field(default_factory=dict)
    raw_query: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.start_time) * 1000)


class Middleware(abc.ABC):
    """Base class for middleware in the pipeline."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Process an incoming request.

        Return None to continue the pipeline, or a Response to short-circuit.
        """
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Process an outgoing response. Override if needed."""
        return response


class MiddlewarePipeline:
    """Ordered list of middleware. Executes request handlers forward, response handlers in reverse."""

    def __init__(self, *, debug: bool = False) -> None:
        self._middleware: list[Middleware] = []
        self._debug = debug

    def add(self, middleware: Middleware) -> None:
        """Add a middleware to the end of the pipeline."""
        self._middleware.append(middleware)
        logger.debug("middleware_registered", name=middleware.name, position=len(self._middleware) - 1)

    @property
    def names(self) -> list[str]:
        return [mw.name for mw in self._middleware]

    @property
    def debug(self) -> bool:
        return self._debug

    def get_middleware(self, cls: type[M]) -> M | None:
        """First stage that is an instance of ``cls``."""
        for mw in self._middleware:
            if isinstance(mw, cls):
                return mw
        return None

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Run request through all middleware in order.

        Returns a Response if any middleware short-circuits, otherwise None.
        A middleware that raises is answered with a 500 instead of
        propagating.
        """
        for mw in self._middleware:
            try:
                result = await mw.process_request(request, context)
            except Exception as exc:
                logger.exception("middleware_request_error", middleware=mw.name)
                return JSONResponse(
                    internal_error_body(request, context.request_id, exc, debug=self._debug),
                    status_code=500,
                )
            if isinstance(result, Response):
                logger.info("middleware_short_circuit", middleware=mw.name, status=result.status_code)
                return result
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Run response through all middleware in reverse order.

        Individual middleware exceptions are caught so one broken middleware
        doesn't corrupt the response.
        """
        for mw in reversed(self._middleware):
            try:
                response = await mw.process_response(response, context)
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name)
        return response
