"""FastAPI application entry point.

Small service wrapped in the maintenance middleware, configured from
WARDEN_* environment variables (or a .env file):

    WARDEN_MAINTENANCE_CONTENT="<h1>Back soon</h1>" python -m maintenance_warden.main
"""

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from maintenance_warden.config import WardenSettings, get_settings
from maintenance_warden.logging_config import LogLevel, WardenLogger, configure_logging, get_logger
from maintenance_warden.middleware.maintenance import add_maintenance_middleware


def create_app(settings: WardenSettings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Warden settings (environment when None)

    Returns:
        FastAPI app with the maintenance middleware installed

    Raises:
        ConfigurationError: The maintenance settings are invalid.
    """
    settings = settings or get_settings()

    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    logger = WardenLogger(LogLevel(settings.log_level), logger=get_logger("maintenance_warden"), name=settings.name)

    app = FastAPI(
        title="Maintenance Warden",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"name": "maintenance-warden", "status": "ok"}

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/health/live", tags=["Health"])
    async def liveness_probe() -> dict[str, str]:
        return {"status": "alive"}

    app.mount("/metrics", make_asgi_app())

    config = add_maintenance_middleware(app, settings, logger=logger)
    logger.info(
        "maintenance_middleware_installed",
        enabled=config.enabled,
        source=type(config.source).__name__,
        status_code=config.status_code,
    )
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "maintenance_warden.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        log_level=LogLevel(settings.log_level).name.lower() if settings.log_level else "critical",
    )
