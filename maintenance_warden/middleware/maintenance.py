"""Maintenance mode middleware.

While maintenance mode is on, requests get a maintenance page unless one of
the bypass rules lets them through:
- bypass header with the expected value
- path under one of the bypass prefixes
- favicon requests
"""

from enum import Enum
from typing import Any, Callable, Optional

import httpx
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from maintenance_warden.config import MaintenanceConfig, WardenSettings, resolve_config
from maintenance_warden.logging_config import WardenLogger
from maintenance_warden.middleware.prometheus import record_decision
from maintenance_warden.services.bypass import BypassMatch, BypassRule, evaluate_bypass
from maintenance_warden.services.responder import ContentResponder

# Suggest clients retry after an hour
RETRY_AFTER_SECONDS = "3600"


class DispatchState(str, Enum):
    """What happens to a single request."""

    PASS_THROUGH = "pass_through"
    MAINTENANCE = "maintenance"


class MaintenanceMiddleware(BaseHTTPMiddleware):
    """Maintenance mode middleware.

    Each request either goes to the next handler untouched or gets the
    maintenance response, never both. Maintenance responses carry
    Retry-After and X-Maintenance-Mode headers and the configured status code.
    """

    def __init__(
        self,
        app: Callable,
        config: MaintenanceConfig,
        logger: Optional[WardenLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize maintenance middleware.

        Args:
            app: ASGI application
            config: Resolved configuration (see resolve_config)
            logger: Warden logger (built from config.log_level if omitted)
            transport: httpx transport for the maintenance service (tests)
        """
        super().__init__(app)
        self._config = config
        self._logger = logger or WardenLogger(config.log_level, name=config.name)
        self._responder = ContentResponder(config, self._logger, transport=transport)

    @property
    def config(self) -> MaintenanceConfig:
        return self._config

    def select_state(self, request: Request) -> tuple[DispatchState, Optional[BypassMatch]]:
        """Decide how to handle a request.

        Args:
            request: Incoming request

        Returns:
            Tuple of (state, bypass match or None)
        """
        match = evaluate_bypass(self._config, request.url.path, request.headers)
        if match is None:
            return DispatchState.MAINTENANCE, None
        return DispatchState.PASS_THROUGH, match

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Serve the maintenance response or pass the request through."""
        state, match = self.select_state(request)

        if state is DispatchState.PASS_THROUGH:
            record_decision(match.rule.value)
            if match.rule is BypassRule.DISABLED:
                self._logger.debug("maintenance_disabled_pass_through", url=str(request.url))
            else:
                self._logger.debug(
                    "maintenance_bypassed",
                    rule=match.rule.value,
                    matched=match.detail,
                    url=str(request.url),
                )
            return await call_next(request)

        record_decision(DispatchState.MAINTENANCE.value)
        self._logger.info("serving_maintenance_page", method=request.method, url=str(request.url))

        headers = {
            "Retry-After": RETRY_AFTER_SECONDS,
            "X-Maintenance-Mode": "true",
        }
        return await self._responder.respond(request, headers)


def add_maintenance_middleware(
    app: Any,
    settings: WardenSettings | dict[str, Any] | None = None,
    *,
    logger: Optional[WardenLogger] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> MaintenanceConfig:
    """Resolve the configuration and install the middleware.

    Starlette builds its middleware stack on the first request, so the
    configuration is resolved here to make errors surface while the
    application is assembled.

    Args:
        app: FastAPI/Starlette application
        settings: Settings object or option mapping (environment when None)
        logger: Warden logger
        transport: httpx transport for the maintenance service (tests)

    Returns:
        The resolved configuration

    Raises:
        ConfigurationError: The settings cannot produce a working middleware.
    """
    config = resolve_config(settings, logger=logger)
    app.add_middleware(
        MaintenanceMiddleware,
        config=config,
        logger=logger,
        transport=transport,
    )
    return config
