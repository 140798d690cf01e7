"""Tests for the header policy loader and the security headers middleware."""

from __future__ import annotations

from pathlib import Path

import pytest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gatekeeper.config.loader import DEFAULT_HEADER_POLICY
from gatekeeper.middleware.csp_builder import parse_csp
from gatekeeper.middleware.pipeline import RequestContext
from gatekeeper.middleware.security_headers import (
    HeaderPolicy,
    SecurityHeaders,
    load_header_policy,
)

REQUIRED = (
    "x-content-type-options",
    "x-frame-options",
    "x-xss-protection",
    "strict-transport-security",
    "content-security-policy",
)


@pytest.fixture
def policy() -> HeaderPolicy:
    return load_header_policy(DEFAULT_HEADER_POLICY)


def _request() -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": [], "query_string": b""})


class TestLoadHeaderPolicy:
    def test_default_policy_values(self, policy):
        assert policy.headers["x-content-type-options"] == "nosniff"
        assert policy.headers["x-frame-options"] == "DENY"
        assert policy.headers["x-xss-protection"] == "1; mode=block"
        assert policy.headers["strict-transport-security"] == "max-age=31536000; includeSubDomains; preload"

    def test_required_headers_present(self, policy):
        for name in REQUIRED:
            assert name in policy.names

    def test_cache_headers(self, policy):
        assert policy.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert policy.headers["pragma"] == "no-cache"
        assert policy.headers["expires"] == "0"

    def test_csp_directives(self, policy):
        directives = parse_csp(policy.headers["content-security-policy"])
        assert directives["default-src"] == ["'self'"]
        assert directives["style-src"] == ["'self'", "'unsafe-inline'"]
        assert directives["img-src"] == ["'self'", "data:", "https:"]
        assert directives["object-src"] == ["'none'"]
        assert directives["frame-src"] == ["'none'"]

    def test_policy_is_read_only(self, policy):
        with pytest.raises(TypeError):
            policy.headers["x-frame-options"] = "SAMEORIGIN"  # type: ignore[index]

    def test_csp_extra_merged(self):
        policy = load_header_policy(DEFAULT_HEADER_POLICY, csp_extra="img-src https://cdn.example.com")
        directives = parse_csp(policy.headers["content-security-policy"])
        assert directives["img-src"][-1] == "https://cdn.example.com"

    def test_csp_extra_cannot_widen_none(self):
        policy = load_header_policy(DEFAULT_HEADER_POLICY, csp_extra="frame-src https://evil.example")
        directives = parse_csp(policy.headers["content-security-policy"])
        assert directives["frame-src"] == ["'none'"]

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(RuntimeError, match="not found"):
            load_header_policy(tmp_path / "absent.yaml")

    def test_malformed_file_raises(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text("headers: [1, 2]\n")
        with pytest.raises(RuntimeError):
            load_header_policy(path)

    def test_header_names_lowercased(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            "headers:\n  X-Frame-Options: SAMEORIGIN\n"
            "content_security_policy:\n  default-src: [\"'self'\"]\n"
        )
        policy = load_header_policy(path)
        assert policy.headers == {
            "x-frame-options": "SAMEORIGIN",
            "content-security-policy": "default-src 'self'",
        }


class TestSecurityHeadersMiddleware:
    @pytest.mark.asyncio
    async def test_request_passes_through(self, policy):
        assert await SecurityHeaders(policy).process_request(_request(), RequestContext()) is None

    @pytest.mark.asyncio
    async def test_headers_applied(self, policy):
        response = await SecurityHeaders(policy).process_response(Response("ok"), RequestContext())
        for name, value in policy.headers.items():
            assert response.headers[name] == value

    @pytest.mark.asyncio
    async def test_applied_to_error_responses(self, policy):
        response = JSONResponse({"error": "x"}, status_code=429)
        response = await SecurityHeaders(policy).process_response(response, RequestContext())
        assert response.headers["x-frame-options"] == "DENY"

    @pytest.mark.asyncio
    async def test_fingerprint_headers_stripped(self, policy):
        response = Response("ok", headers={"Server": "uvicorn", "X-Powered-By": "Express"})
        response = await SecurityHeaders(policy).process_response(response, RequestContext())
        assert "server" not in response.headers
        assert "x-powered-by" not in response.headers

    @pytest.mark.asyncio
    async def test_overrides_handler_value(self, policy):
        response = Response("ok", headers={"X-Frame-Options": "ALLOWALL"})
        response = await SecurityHeaders(policy).process_response(response, RequestContext())
        assert response.headers["x-frame-options"] == "DENY"
