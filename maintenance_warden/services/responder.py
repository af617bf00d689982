"""Maintenance page rendering.

Builds the maintenance response from whichever content source is configured:
the cached file, the inline string, or the maintenance service.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from maintenance_warden.config import FileSource, InlineSource, MaintenanceConfig, RemoteSource
from maintenance_warden.logging_config import WardenLogger
from maintenance_warden.middleware.prometheus import record_file_reload
from maintenance_warden.services.forwarder import StatusOverrideForwarder, unavailable_response
from maintenance_warden.utils.errors import MaintenanceFileError

CACHE_CONTROL = "no-cache, no-store, must-revalidate"


class ContentResponder:
    """Render the maintenance response for the configured content source."""

    def __init__(
        self,
        config: MaintenanceConfig,
        logger: WardenLogger,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the responder.

        Args:
            config: Resolved middleware configuration
            logger: Warden logger
            transport: httpx transport for the maintenance service (tests)
        """
        self._config = config
        self._logger = logger
        self._forwarder: StatusOverrideForwarder | None = None

        source = config.source
        if isinstance(source, RemoteSource):
            self._forwarder = StatusOverrideForwarder(
                target=source.url,
                status_code=config.status_code,
                timeout=source.timeout,
                logger=logger,
                transport=transport,
            )

    @property
    def forwarder(self) -> StatusOverrideForwarder | None:
        return self._forwarder

    async def respond(self, request: Request, headers: Mapping[str, str]) -> Response:
        """Build the maintenance response.

        Args:
            request: Incoming request
            headers: Maintenance headers set by the dispatcher

        Returns:
            Response carrying the configured status code
        """
        source = self._config.source
        if isinstance(source, FileSource):
            return await self._serve_file(source, headers)
        if isinstance(source, InlineSource):
            return self._serve_content(source.content.encode("utf-8"), headers)
        return await self._forwarder.forward(request, headers)

    async def _serve_file(self, source: FileSource, headers: Mapping[str, str]) -> Response:
        # Pick up edits on disk; the previous snapshot stays servable on failure
        try:
            reloaded = await run_in_threadpool(source.cache.load)
            record_file_reload("reloaded" if reloaded else "unchanged")
        except MaintenanceFileError as e:
            record_file_reload("failed")
            self._logger.error(
                "maintenance_file_reload_failed",
                path=e.path,
                error=e.message,
                serving_cached=source.cache.has_content,
            )

        try:
            content = source.cache.snapshot()
        except MaintenanceFileError as e:
            self._logger.error("maintenance_file_unavailable", path=e.path, error=e.message)
            return unavailable_response(self._config.status_code, headers)

        return self._serve_content(content, headers)

    def _serve_content(self, content: bytes, headers: Mapping[str, str]) -> Response:
        response_headers = {
            **headers,
            "Content-Type": self._config.content_type,
            "Cache-Control": CACHE_CONTROL,
            "X-Maintenance-Mode": "true",
        }
        return Response(
            content=content,
            status_code=self._config.status_code,
            headers=response_headers,
        )
