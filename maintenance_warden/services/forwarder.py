"""Single-target forwarder for the maintenance service.

Relays a request to the maintenance service and always answers with the
configured maintenance status code, whatever the service returns. One attempt
per request: no retries, no pooling across requests, no redirects.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from urllib.parse import quote

import httpx
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import Message, Receive, Scope, Send

from maintenance_warden.logging_config import WardenLogger
from maintenance_warden.middleware.prometheus import UPSTREAM_DURATION, record_upstream_error

UNAVAILABLE_BODY = "Service temporarily unavailable"

# Headers that describe a single connection and must not be relayed
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# Set by the middleware, must not be duplicated from the service response
MAINTENANCE_HEADER_NAMES = frozenset({"retry-after", "x-maintenance-mode"})

# Characters kept literally in the forwarded path and query
PATH_SAFE = "/%:@!$&'()*+,;=[]"
QUERY_SAFE = PATH_SAFE + "?"

RawHeaders = list[tuple[bytes, bytes]]


def _hop_by_hop(raw_headers: RawHeaders) -> frozenset[str]:
    """Hop-by-hop header names, including those listed in Connection."""
    names = set(HOP_BY_HOP_HEADERS)
    for key, value in raw_headers:
        if key.lower() == b"connection":
            for token in value.decode("latin-1").split(","):
                if token.strip():
                    names.add(token.strip().lower())
    return frozenset(names)


def _strip_headers(raw_headers: RawHeaders, drop: frozenset[str]) -> RawHeaders:
    return [
        (key, value)
        for key, value in raw_headers
        if key.decode("latin-1").lower() not in drop
    ]


def _escape(raw: bytes, safe: str) -> str:
    """Percent-encode bytes that cannot appear in a URL as they are.

    Existing escapes are left alone, so %2F or %3F reach the service unchanged.
    """
    return quote(raw, safe=safe)


def _join_paths(base: str, path: str) -> str:
    """Join two URL paths with exactly one slash between them."""
    base_slash = base.endswith("/")
    path_slash = path.startswith("/")
    if base_slash and path_slash:
        return base + path[1:]
    if not base_slash and not path_slash:
        return base + "/" + path
    return base + path


def unavailable_response(status_code: int, headers: Mapping[str, str]) -> Response:
    """Generic maintenance response used when the real content is unavailable."""
    response = PlainTextResponse(UNAVAILABLE_BODY, status_code=status_code)
    for key, value in headers.items():
        response.headers[key] = value
    response.headers["X-Maintenance-Mode"] = "true"
    return response


class StatusOverrideWriter:
    """ASGI send wrapper that pins the response status.

    The first response start is rewritten to the configured status code and
    any later start is dropped. A body message arriving before any start
    commits the configured status first. Body messages always pass through.
    """

    def __init__(self, send: Send, status_code: int):
        self._send = send
        self.status_code = status_code
        self.header_sent = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            if self.header_sent:
                return
            self.header_sent = True
            message = {**message, "status": self.status_code}
        elif message["type"] == "http.response.body" and not self.header_sent:
            await self({"type": "http.response.start", "status": self.status_code, "headers": []})
        await self._send(message)


class StatusOverrideResponse(Response):
    """Streams a maintenance service response under a fixed status code."""

    def __init__(
        self,
        upstream: httpx.Response,
        client: httpx.AsyncClient,
        status_code: int,
        headers: Mapping[str, str],
        logger: WardenLogger,
    ):
        self._upstream = upstream
        self._client = client
        self._logger = logger
        self.status_code = status_code
        self.background = None

        raw = upstream.headers.raw
        raw_headers = _strip_headers(raw, _hop_by_hop(raw) | MAINTENANCE_HEADER_NAMES)
        for key, value in headers.items():
            raw_headers.append((key.lower().encode("latin-1"), value.encode("latin-1")))
        self.raw_headers = raw_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        writer = StatusOverrideWriter(send, self.status_code)
        try:
            # The service status is passed through the writer, which replaces it
            await writer({
                "type": "http.response.start",
                "status": self._upstream.status_code,
                "headers": self.raw_headers,
            })
            try:
                async for chunk in self._upstream.aiter_raw():
                    await writer({"type": "http.response.body", "body": chunk, "more_body": True})
            except httpx.HTTPError as e:
                # Status and headers are committed, end the body cleanly
                record_upstream_error()
                self._logger.error("maintenance_service_stream_error", error=str(e))
            await writer({"type": "http.response.body", "body": b"", "more_body": False})
        finally:
            await self._upstream.aclose()
            await self._client.aclose()


class StatusOverrideForwarder:
    """Forward requests to the maintenance service with a fixed status code."""

    def __init__(
        self,
        target: httpx.URL,
        status_code: int,
        timeout: float,
        logger: WardenLogger,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the forwarder.

        Args:
            target: Maintenance service base URL
            status_code: Status code every response is sent with
            timeout: Deadline for the service round trip in seconds
            logger: Warden logger
            transport: httpx transport override (tests)
        """
        self._target = target
        self._status_code = status_code
        self._timeout = httpx.Timeout(timeout)
        self._logger = logger
        self._transport = transport

    @property
    def target(self) -> httpx.URL:
        return self._target

    def upstream_url(self, request: Request) -> httpx.URL:
        """Map the request URL onto the maintenance service.

        Path and query are taken from the raw request bytes, so the service
        receives them with the client's escaping intact.
        """
        raw_path = request.scope.get("raw_path")
        if raw_path is None:
            raw_path = request.url.path.encode("utf-8")
        target_path = self._target.raw_path.partition(b"?")[0].decode("ascii")
        path = _join_paths(target_path, _escape(raw_path, PATH_SAFE))

        target_query = self._target.query.decode("ascii")
        request_query = _escape(request.scope.get("query_string", b""), QUERY_SAFE)
        if target_query and request_query:
            query = f"{target_query}&{request_query}"
        else:
            query = target_query or request_query

        if query:
            path = f"{path}?{query}"
        return self._target.copy_with(raw_path=path.encode("ascii"))

    def build_upstream_request(self, request: Request, body: bytes) -> httpx.Request:
        """Build the outbound request as a new object.

        Method, headers and body are preserved. Hop-by-hop headers and Host
        are dropped (httpx sets Host from the service URL) and the client
        address is appended to X-Forwarded-For.
        """
        raw = request.headers.raw
        headers = _strip_headers(raw, _hop_by_hop(raw) | {"host", "x-forwarded-for"})

        forwarded_for = [
            value.decode("latin-1")
            for key, value in raw
            if key.lower() == b"x-forwarded-for"
        ]
        if request.client and request.client.host:
            forwarded_for.append(request.client.host)
        if forwarded_for:
            headers.append((b"x-forwarded-for", ", ".join(forwarded_for).encode("latin-1")))

        return httpx.Request(
            request.method,
            self.upstream_url(request),
            headers=headers,
            content=body,
        )

    async def forward(self, request: Request, headers: Mapping[str, str]) -> Response:
        """Relay a request and return a response pinned to the maintenance status.

        Args:
            request: Incoming request (not modified)
            headers: Maintenance headers to add to the response

        Returns:
            Streaming response from the service, or the generic unavailable
            response if the service cannot be reached in time
        """
        body = await request.body()

        client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=False,
        )
        started = time.perf_counter()
        try:
            upstream_request = self.build_upstream_request(request, body)
            upstream = await client.send(upstream_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
            await client.aclose()
            record_upstream_error()
            self._logger.error(
                "maintenance_service_error",
                error=str(e),
                error_type=type(e).__name__,
                target=str(self._target),
            )
            return unavailable_response(self._status_code, headers)
        UPSTREAM_DURATION.observe(time.perf_counter() - started)

        self._logger.debug(
            "maintenance_service_responded",
            upstream_status=upstream.status_code,
            status=self._status_code,
            url=str(upstream_request.url),
        )
        return StatusOverrideResponse(
            upstream,
            client=client,
            status_code=self._status_code,
            headers=headers,
            logger=self._logger,
        )
