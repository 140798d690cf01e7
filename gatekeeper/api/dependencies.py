"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from gatekeeper.errors import ValidationFailed
from gatekeeper.middleware.pipeline import RequestContext
from gatekeeper.validation.rules import FieldRule, validate_fields


def get_request_context(request: Request) -> RequestContext:
    """The context the security pipeline attached to this request."""
    context = getattr(request.state, "context", None)
    if context is None:
        # Route reached without the pipeline (e.g. mounted in a bare app)
        context = RequestContext()
        request.state.context = context
    return context


def declared_rules(
    *rules: FieldRule,
    raw: bool = False,
    message: str = "Validation errors",
) -> Callable[..., Awaitable[RequestContext]]:
    """Dependency enforcing ``rules`` on the request body.

    Every rule runs; any failure raises ValidationFailed before the handler
    body executes. With ``raw=True`` the rules see the body as received
    rather than the sanitized copy.
    """

    async def _enforce(context: RequestContext = Depends(get_request_context)) -> RequestContext:
        payload = context.raw_body if raw else context.body
        errors = validate_fields(payload, rules)
        if errors:
            raise ValidationFailed(errors, message)
        return context

    return _enforce
