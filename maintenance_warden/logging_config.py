"""Structured logging configuration using structlog.

Features:
- JSON-formatted logs for production
- Console-formatted logs for development
- Level-filtered logger handed to the middleware at construction
"""

import logging
import sys
from enum import IntEnum
from typing import Any

import structlog
from structlog.types import Processor


class LogLevel(IntEnum):
    """Verbosity of the maintenance middleware (0=none, 1=error, 2=info, 3=debug)."""

    NONE = 0
    ERROR = 1
    INFO = 2
    DEBUG = 3


# stdlib level used for the root logger when a LogLevel is configured
_STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.NONE: logging.CRITICAL,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


def configure_logging(
    log_level: LogLevel | int = LogLevel.ERROR,
    json_logs: bool = False,
) -> None:
    """Configure structured logging.

    Args:
        log_level: Warden log level (0-3)
        json_logs: If True, output JSON logs (for production)
    """
    # Shared processors for all loggers
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        # Production: JSON output
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        # Development: colored console output
        shared_processors.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_STDLIB_LEVELS[LogLevel(log_level)])

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (defaults to caller's module)

    Returns:
        Bound logger instance
    """
    return structlog.get_logger(name)


class WardenLogger:
    """Logging collaborator for the maintenance middleware.

    Events below the configured level are dropped here, so the middleware
    never needs to touch process-wide logging state. Every event carries the
    middleware name.

    Usage:
        logger = WardenLogger(LogLevel.INFO, name="maintenance")
        logger.info("maintenance_file_loaded", path="/srv/maintenance.html")
    """

    def __init__(
        self,
        level: LogLevel | int = LogLevel.ERROR,
        logger: Any = None,
        name: str = "maintenance-warden",
    ):
        """Initialize the logger.

        Args:
            level: Highest level that is emitted
            logger: Target with error/info/debug methods (structlog by default)
            name: Middleware instance name bound to every event
        """
        self.level = LogLevel(level)
        self.name = name
        self._logger = logger if logger is not None else get_logger("maintenance_warden")

    def enabled_for(self, level: LogLevel) -> bool:
        return self.level is not LogLevel.NONE and level <= self.level

    def error(self, event: str, **fields: Any) -> None:
        if self.enabled_for(LogLevel.ERROR):
            self._logger.error(event, middleware=self.name, **fields)

    def info(self, event: str, **fields: Any) -> None:
        if self.enabled_for(LogLevel.INFO):
            self._logger.info(event, middleware=self.name, **fields)

    def debug(self, event: str, **fields: Any) -> None:
        if self.enabled_for(LogLevel.DEBUG):
            self._logger.debug(event, middleware=self.name, **fields)
