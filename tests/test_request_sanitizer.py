"""Tests for the request sanitizer middleware."""

from __future__ import annotations

import json

import pytest
from starlette.requests import Request
from structlog.testing import capture_logs

from gatekeeper.middleware.pipeline import RequestContext
from gatekeeper.middleware.request_sanitizer import RequestSanitizer, multi_value_dict, sanitize_mapping

LIMIT = 1024


def _make_request(
    body: bytes = b"",
    content_type: str = "application/json",
    query: bytes = b"",
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> Request:
    """Build a Request whose receive channel yields ``body``."""
    headers = [(b"content-type", content_type.encode())]
    if body:
        headers.append((b"content-length", str(len(body)).encode()))
    headers.extend(extra_headers or [])
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/validate",
        "query_string": query,
        "headers": headers,
        "server": ("localhost", 3000),
        "client": ("127.0.0.1", 5000),
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


async def _run(request: Request, limit: int = LIMIT):
    context = RequestContext()
    result = await RequestSanitizer(limit).process_request(request, context)
    return result, context


class TestSanitizeMapping:
    def test_strings_sanitized_others_untouched(self):
        values = {"a": "<b>", "n": 5, "flag": True, "nested": {"x": "<i>"}}
        changed = sanitize_mapping(values)
        assert changed == 1
        assert values == {"a": "&lt;b&gt;", "n": 5, "flag": True, "nested": {"x": "<i>"}}

    def test_key_order_kept(self):
        values = {"z": " 1 ", "a": "2"}
        sanitize_mapping(values)
        assert list(values) == ["z", "a"]
        assert values["z"] == "1"

    def test_multi_value_dict_groups_repeats(self):
        pairs = [("a", "1"), ("b", "x"), ("a", "2"), ("a", "3")]
        assert multi_value_dict(pairs) == {"a": ["1", "2", "3"], "b": "x"}


class TestRequestSanitizer:
    @pytest.mark.asyncio
    async def test_json_body_sanitized(self):
        request = _make_request(json.dumps({"data": "<script>x</script>hi", "n": 3}).encode())
        result, context = await _run(request)
        assert result is None
        assert context.body == {"data": "hi", "n": 3}

    @pytest.mark.asyncio
    async def test_raw_body_kept(self):
        payload = {"data": "<script>x</script>hi"}
        result, context = await _run(_make_request(json.dumps(payload).encode()))
        assert context.raw_body == payload
        assert context.raw_body is not context.body

    @pytest.mark.asyncio
    async def test_query_sanitized(self):
        request = _make_request(query=b"q=%3Cb%3E&page=2")
        result, context = await _run(request)
        assert result is None
        assert context.query == {"q": "&lt;b&gt;", "page": "2"}
        assert context.raw_query == {"q": "<b>", "page": "2"}

    @pytest.mark.asyncio
    async def test_repeated_query_key_kept_as_list(self):
        request = _make_request(query=b"q=%3Cscript%3Ex%3C%2Fscript%3E&q=ok&page=%3Cb%3E")
        result, context = await _run(request)
        assert result is None
        assert context.query == {"q": ["<script>x</script>", "ok"], "page": "&lt;b&gt;"}
        assert context.raw_query["q"] == ["<script>x</script>", "ok"]

    @pytest.mark.asyncio
    async def test_form_body_sanitized(self):
        request = _make_request(b"name=%3Ci%3Ebob&empty=", content_type="application/x-www-form-urlencoded")
        result, context = await _run(request)
        assert result is None
        assert context.body == {"name": "&lt;i&gt;bob", "empty": ""}

    @pytest.mark.asyncio
    async def test_repeated_form_key_kept_as_list(self):
        request = _make_request(b"tag=a&tag=b&name=%3Ci%3E", content_type="application/x-www-form-urlencoded")
        result, context = await _run(request)
        assert result is None
        assert context.body == {"tag": ["a", "b"], "name": "&lt;i&gt;"}

    @pytest.mark.asyncio
    async def test_vendor_json_type_parsed(self):
        request = _make_request(b'{"a": "<b>"}', content_type="application/vnd.api+json; charset=utf-8")
        result, context = await _run(request)
        assert context.body == {"a": "&lt;b&gt;"}

    @pytest.mark.asyncio
    async def test_other_content_types_ignored(self):
        result, context = await _run(_make_request(b"<xml/>", content_type="text/xml"))
        assert result is None
        assert context.body == {}

    @pytest.mark.asyncio
    async def test_empty_body(self):
        result, context = await _run(_make_request(b""))
        assert result is None
        assert context.body == {}
        assert context.raw_body == {}

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self):
        result, _ = await _run(_make_request(b"{not json"))
        assert result.status_code == 400
        assert json.loads(result.body)["error"] == "Malformed request body"

    @pytest.mark.asyncio
    async def test_non_object_json_rejected(self):
        result, _ = await _run(_make_request(b'["<script>"]'))
        assert result.status_code == 400
        assert json.loads(result.body)["message"] == "JSON body must be an object"

    @pytest.mark.asyncio
    async def test_declared_length_over_limit(self):
        request = _make_request(b"", extra_headers=[(b"content-length", b"999999")])
        result, _ = await _run(request)
        assert result.status_code == 413

    @pytest.mark.asyncio
    async def test_actual_body_over_limit(self):
        result, _ = await _run(_make_request(b'{"a": "' + b"x" * 200 + b'"}'), limit=100)
        assert result.status_code == 413

    @pytest.mark.asyncio
    async def test_invalid_content_length(self):
        request = _make_request(b"", extra_headers=[(b"content-length", b"abc")])
        result, _ = await _run(request)
        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_sanitization_logged(self):
        with capture_logs() as logs:
            await _run(_make_request(b'{"a": "<b>", "c": "plain"}'))
        events = [e for e in logs if e["event"] == "input_sanitized"]
        assert events[0]["fields"] == 1

    @pytest.mark.asyncio
    async def test_clean_input_not_logged(self):
        with capture_logs() as logs:
            await _run(_make_request(b'{"a": "plain"}'))
        assert not [e for e in logs if e["event"] == "input_sanitized"]
