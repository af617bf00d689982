"""Shared fixtures for maintenance warden tests."""

from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI, Request

from maintenance_warden.config import MaintenanceConfig, resolve_config
from maintenance_warden.logging_config import LogLevel, WardenLogger
from maintenance_warden.middleware.maintenance import MaintenanceMiddleware

MAINTENANCE_HTML = "<html><body><h1>Maintenance in Progress</h1></body></html>"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Structlog stand-in that records calls."""
    return MagicMock()


@pytest.fixture
def warden_logger(mock_logger):
    """Debug-level warden logger writing to mock_logger."""
    return WardenLogger(LogLevel.DEBUG, logger=mock_logger, name="test-warden")


@pytest.fixture
def maintenance_file(tmp_path) -> Path:
    """Maintenance page on disk."""
    path = tmp_path / "maintenance.html"
    path.write_text(MAINTENANCE_HTML)
    return path


@pytest.fixture
def backend_requests() -> list[httpx.Request]:
    """Requests received by the fake maintenance service."""
    return []


@pytest.fixture
def backend_transport(backend_requests) -> httpx.MockTransport:
    """Maintenance service answering 200 with a small page."""

    def handler(request: httpx.Request) -> httpx.Response:
        backend_requests.append(request)
        return httpx.Response(
            200,
            headers={"Content-Type": "text/html", "X-Backend": "maintenance"},
            content=b"<html>backend maintenance page</html>",
        )

    return httpx.MockTransport(handler)


def inline_config(**overrides: Any) -> MaintenanceConfig:
    """Resolved config serving MAINTENANCE_HTML inline."""
    options: dict[str, Any] = {"maintenanceContent": MAINTENANCE_HTML}
    options.update(overrides)
    return resolve_config(options)


def create_test_app(
    config: MaintenanceConfig,
    logger: WardenLogger | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    seen: list[Request] | None = None,
) -> FastAPI:
    """FastAPI app with MaintenanceMiddleware and a few endpoints."""
    app = FastAPI()
    app.add_middleware(
        MaintenanceMiddleware,
        config=config,
        logger=logger,
        transport=transport,
    )

    def remember(request: Request) -> None:
        if seen is not None:
            seen.append(request)

    @app.get("/api/v1/test")
    async def test_endpoint(request: Request):
        remember(request)
        return {"status": "ok"}

    @app.post("/api/v1/test")
    async def test_post_endpoint(request: Request):
        remember(request)
        return {"received": (await request.body()).decode()}

    @app.get("/health/live")
    async def liveness_endpoint():
        return {"status": "alive"}

    @app.get("/favicon.ico")
    async def favicon():
        return {"icon": "data"}

    @app.get("/static/favicon.ico")
    async def nested_favicon():
        return {"icon": "nested"}

    return app


@pytest.fixture
def app_factory() -> Callable[..., FastAPI]:
    return create_test_app


@pytest.fixture
def config_factory() -> Callable[..., MaintenanceConfig]:
    return inline_config
