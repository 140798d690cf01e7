"""Security header policy and the middleware that applies it."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import structlog
import yaml
from starlette.requests import Request
from starlette.responses import Response

from gatekeeper.middleware.csp_builder import build_csp, merge_csp, parse_csp
from gatekeeper.middleware.pipeline import Middleware, RequestContext

logger = structlog.get_logger()

# Headers that must never leave the service
_STRIP_HEADERS = frozenset({
    "server",
    "x-powered-by",
})


@dataclass(frozen=True)
class HeaderPolicy:
    """Fixed header map, built once at startup and shared read-only."""

    headers: Mapping[str, str]

    @property
    def names(self) -> list[str]:
        return list(self.headers)


def load_header_policy(path: str | Path, csp_extra: str = "") -> HeaderPolicy:
    """Build the policy from its YAML file.

    Raises RuntimeError if the file is missing or malformed: the service
    must not start without its header policy.
    """
    path = Path(path)
    if not path.exists():
        raise RuntimeError(f"Header policy not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    headers = data.get("headers")
    directives = data.get("content_security_policy")
    if not isinstance(headers, dict) or not isinstance(directives, dict):
        raise RuntimeError(f"Header policy {path} needs 'headers' and 'content_security_policy' maps")

    if csp_extra:
        directives = merge_csp(directives, parse_csp(csp_extra))

    policy = {name.lower(): str(value) for name, value in headers.items()}
    policy["content-security-policy"] = build_csp(directives)
    logger.info("header_policy_loaded", path=str(path), headers=len(policy))
    return HeaderPolicy(headers=MappingProxyType(policy))


class SecurityHeaders(Middleware):
    """Inject the policy headers into every response.

    - Applied on every path, short-circuits included
    - Strips Server and X-Powered-By
    """

    def __init__(self, policy: HeaderPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> HeaderPolicy:
        return self._policy

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        for header in _STRIP_HEADERS:
            if header in response.headers:
                del response.headers[header]
        for name, value in self._policy.headers.items():
            response.headers[name] = value
        return response
