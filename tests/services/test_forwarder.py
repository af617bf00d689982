"""Tests for the status-override forwarder."""

from unittest.mock import patch

import httpx
import pytest
from starlette.requests import Request

from maintenance_warden.logging_config import LogLevel, WardenLogger
from maintenance_warden.services.forwarder import (
    UNAVAILABLE_BODY,
    StatusOverrideForwarder,
    StatusOverrideWriter,
    unavailable_response,
)

MAINTENANCE_HEADERS = {"Retry-After": "3600", "X-Maintenance-Mode": "true"}


def make_request(
    path: str = "/api/v1/test",
    query: bytes = b"",
    method: str = "GET",
    headers: list[tuple[bytes, bytes]] | None = None,
    body: bytes = b"",
    raw_path: bytes | None = None,
) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("app.example", 80),
        "client": ("10.0.0.7", 51000),
        "path": path,
        "query_string": query,
        "headers": headers if headers is not None else [(b"host", b"app.example")],
    }
    if raw_path is not None:
        scope["raw_path"] = raw_path

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def make_forwarder(
    target: str = "http://maintenance.test",
    transport: httpx.AsyncBaseTransport | None = None,
    logger: WardenLogger | None = None,
    status_code: int = 503,
) -> StatusOverrideForwarder:
    return StatusOverrideForwarder(
        target=httpx.URL(target),
        status_code=status_code,
        timeout=5.0,
        logger=logger or WardenLogger(LogLevel.NONE),
        transport=transport,
    )


class Recorder:
    """ASGI send callable that keeps every message."""

    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    @property
    def status(self):
        starts = [m for m in self.messages if m["type"] == "http.response.start"]
        assert len(starts) == 1
        return starts[0]["status"]

    @property
    def headers(self):
        start = next(m for m in self.messages if m["type"] == "http.response.start")
        return {k.decode(): v.decode() for k, v in start["headers"]}

    @property
    def body(self):
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")


async def run_response(response) -> Recorder:
    recorder = Recorder()

    async def receive():
        return {"type": "http.disconnect"}

    await response({"type": "http"}, receive, recorder)
    return recorder


# =============================================================================
# StatusOverrideWriter
# =============================================================================


class TestStatusOverrideWriter:
    """The send decorator pins the status line."""

    @pytest.mark.asyncio
    async def test_first_start_is_overridden(self):
        recorder = Recorder()
        writer = StatusOverrideWriter(recorder, 503)

        await writer({"type": "http.response.start", "status": 200, "headers": [(b"x-a", b"1")]})

        assert recorder.messages == [
            {"type": "http.response.start", "status": 503, "headers": [(b"x-a", b"1")]}
        ]
        assert writer.header_sent

    @pytest.mark.asyncio
    async def test_later_starts_are_ignored(self):
        recorder = Recorder()
        writer = StatusOverrideWriter(recorder, 503)

        await writer({"type": "http.response.start", "status": 200, "headers": []})
        await writer({"type": "http.response.start", "status": 500, "headers": []})
        await writer({"type": "http.response.body", "body": b"ok", "more_body": False})

        assert recorder.status == 503
        assert recorder.body == b"ok"

    @pytest.mark.asyncio
    async def test_body_first_commits_status(self):
        """A body write before any start commits the configured status."""
        recorder = Recorder()
        writer = StatusOverrideWriter(recorder, 418)

        await writer({"type": "http.response.body", "body": b"hello", "more_body": False})

        assert recorder.messages[0] == {"type": "http.response.start", "status": 418, "headers": []}
        assert recorder.body == b"hello"

    @pytest.mark.asyncio
    async def test_original_message_not_mutated(self):
        recorder = Recorder()
        writer = StatusOverrideWriter(recorder, 503)
        message = {"type": "http.response.start", "status": 200, "headers": []}

        await writer(message)

        assert message["status"] == 200


# =============================================================================
# Upstream request building
# =============================================================================


class TestBuildUpstreamRequest:
    """The outbound request is a new object aimed at the service."""

    def test_original_request_unchanged(self):
        request = make_request(query=b"a=1")
        url_before = str(request.url)

        upstream = make_forwarder().build_upstream_request(request, b"")

        assert str(request.url) == url_before == "http://app.example/api/v1/test?a=1"
        assert str(upstream.url) == "http://maintenance.test/api/v1/test?a=1"
        assert upstream.headers["Host"] == "maintenance.test"

    def test_preserves_method_headers_and_body(self):
        request = make_request(
            method="PUT",
            headers=[(b"host", b"app.example"), (b"x-custom", b"value"), (b"content-type", b"text/plain")],
        )

        upstream = make_forwarder().build_upstream_request(request, b"payload")

        assert upstream.method == "PUT"
        assert upstream.headers["X-Custom"] == "value"
        assert upstream.headers["Content-Type"] == "text/plain"
        assert upstream.content == b"payload"

    def test_strips_hop_by_hop_headers(self):
        request = make_request(headers=[
            (b"host", b"app.example"),
            (b"connection", b"keep-alive, X-Private"),
            (b"keep-alive", b"timeout=5"),
            (b"upgrade", b"h2c"),
            (b"x-private", b"secret"),
            (b"x-public", b"ok"),
        ])

        upstream = make_forwarder().build_upstream_request(request, b"")

        assert "keep-alive" not in upstream.headers
        assert "upgrade" not in upstream.headers
        assert "x-private" not in upstream.headers
        assert upstream.headers["x-public"] == "ok"

    def test_appends_forwarded_for(self):
        request = make_request(headers=[(b"host", b"app.example"), (b"x-forwarded-for", b"192.0.2.1")])

        upstream = make_forwarder().build_upstream_request(request, b"")

        assert upstream.headers["X-Forwarded-For"] == "192.0.2.1, 10.0.0.7"

    @pytest.mark.parametrize(
        "target, path, query, expected",
        [
            ("http://svc", "/a/b", b"", "http://svc/a/b"),
            ("http://svc/", "/a", b"", "http://svc/a"),
            ("http://svc/base", "/a", b"", "http://svc/base/a"),
            ("http://svc/base/", "/a", b"", "http://svc/base/a"),
            ("http://svc/base?x=1", "/a", b"y=2", "http://svc/base/a?x=1&y=2"),
            ("https://svc:8443", "/", b"q=1", "https://svc:8443/?q=1"),
        ],
    )
    def test_upstream_url(self, target, path, query, expected):
        forwarder = make_forwarder(target=target)

        assert str(forwarder.upstream_url(make_request(path=path, query=query))) == expected

    @pytest.mark.parametrize(
        "raw_path",
        [b"/a%3Fb", b"/a%23b", b"/a%2Fb", b"/a%2541", b"/a%20b"],
    )
    def test_escaped_path_kept(self, raw_path):
        """Escaped reserved characters reach the service as the client sent them."""
        request = make_request(path=raw_path.decode(), raw_path=raw_path)

        url = make_forwarder().upstream_url(request)

        assert url.raw_path == raw_path

    def test_escaped_path_under_target_base(self):
        request = make_request(path="/a/b", raw_path=b"/a%2Fb", query=b"x=%26")

        url = make_forwarder(target="http://svc/base").upstream_url(request)

        assert url.raw_path == b"/base/a%2Fb?x=%26"

    def test_non_ascii_bytes_escaped(self):
        request = make_request(path="/café", raw_path=b"/caf\xc3\xa9", query=b"q=\xc3\xa9")

        url = make_forwarder().upstream_url(request)

        assert url.raw_path == b"/caf%C3%A9?q=%C3%A9"


# =============================================================================
# Forwarding
# =============================================================================


class TestForward:
    """forward() round trips."""

    @pytest.mark.asyncio
    async def test_success_status_overridden(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={
                    "Content-Type": "text/html",
                    "Retry-After": "60",
                    "Connection": "close",
                },
                content=b"<html>service</html>",
            )

        forwarder = make_forwarder(transport=httpx.MockTransport(handler))

        response = await forwarder.forward(make_request(), MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 503
        assert recorder.body == b"<html>service</html>"
        assert recorder.headers["content-type"] == "text/html"
        assert recorder.headers["retry-after"] == "3600"
        assert recorder.headers["x-maintenance-mode"] == "true"
        assert "connection" not in recorder.headers

    @pytest.mark.asyncio
    async def test_request_body_forwarded(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.content)
            return httpx.Response(200)

        forwarder = make_forwarder(transport=httpx.MockTransport(handler))
        request = make_request(method="POST", body=b"form=data")

        response = await forwarder.forward(request, MAINTENANCE_HEADERS)
        await run_response(response)

        assert received == [b"form=data"]

    @pytest.mark.asyncio
    async def test_non_ascii_query_forwarded(self):
        """Undecodable query bytes are escaped, not turned into a server error."""
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.url.raw_path)
            return httpx.Response(200, content=b"<html>service</html>")

        forwarder = make_forwarder(transport=httpx.MockTransport(handler))
        request = make_request(query=b"q=\xc3\xa9", raw_path=b"/api/v1/test")

        response = await forwarder.forward(request, MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 503
        assert recorder.body == b"<html>service</html>"
        assert received == [b"/api/v1/test?q=%C3%A9"]

    @pytest.mark.asyncio
    async def test_unbuildable_request(self):
        """A request that cannot be mapped onto the service gets the generic page."""
        forwarder = make_forwarder(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        with patch.object(
            StatusOverrideForwarder,
            "build_upstream_request",
            side_effect=httpx.InvalidURL("bad url"),
        ):
            response = await forwarder.forward(make_request(), MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 503
        assert recorder.body == UNAVAILABLE_BODY.encode()

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        logger_calls = []

        class ListLogger:
            def error(self, event, **fields):
                logger_calls.append((event, fields))

        logger = WardenLogger(LogLevel.ERROR, logger=ListLogger())
        forwarder = make_forwarder(transport=httpx.MockTransport(handler), logger=logger)

        response = await forwarder.forward(make_request(), MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 503
        assert recorder.body == UNAVAILABLE_BODY.encode()
        assert recorder.headers["x-maintenance-mode"] == "true"
        assert recorder.headers["retry-after"] == "3600"
        assert logger_calls[0][0] == "maintenance_service_error"
        assert logger_calls[0][1]["error_type"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("too slow", request=request)

        forwarder = make_forwarder(transport=httpx.MockTransport(handler), status_code=502)

        response = await forwarder.forward(make_request(), MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 502
        assert recorder.body == UNAVAILABLE_BODY.encode()

    @pytest.mark.asyncio
    async def test_stream_error_finishes_response(self):
        """A body error after the headers were sent still ends the response."""

        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b"partial"
                raise httpx.ReadError("connection reset")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream())

        forwarder = make_forwarder(transport=httpx.MockTransport(handler))

        response = await forwarder.forward(make_request(), MAINTENANCE_HEADERS)
        recorder = await run_response(response)

        assert recorder.status == 503
        assert recorder.body == b"partial"
        assert recorder.messages[-1] == {"type": "http.response.body", "body": b"", "more_body": False}


class TestUnavailableResponse:
    def test_headers_and_body(self):
        response = unavailable_response(503, {"Retry-After": "3600"})

        assert response.status_code == 503
        assert response.body == UNAVAILABLE_BODY.encode()
        assert response.headers["Retry-After"] == "3600"
        assert response.headers["X-Maintenance-Mode"] == "true"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
