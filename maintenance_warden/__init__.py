"""Maintenance mode middleware for Starlette and FastAPI applications."""

from maintenance_warden.config import (
    FileSource,
    InlineSource,
    MaintenanceConfig,
    RemoteSource,
    WardenSettings,
    create_config,
    resolve_config,
)
from maintenance_warden.logging_config import LogLevel, WardenLogger
from maintenance_warden.middleware.maintenance import (
    DispatchState,
    MaintenanceMiddleware,
    add_maintenance_middleware,
)
from maintenance_warden.services.bypass import BypassMatch, BypassRule, evaluate_bypass, should_bypass
from maintenance_warden.services.file_cache import FileCache
from maintenance_warden.utils.errors import ConfigurationError, MaintenanceFileError, WardenError

__all__ = [
    # Configuration
    "FileSource",
    "InlineSource",
    "MaintenanceConfig",
    "RemoteSource",
    "WardenSettings",
    "create_config",
    "resolve_config",
    # Middleware
    "DispatchState",
    "MaintenanceMiddleware",
    "add_maintenance_middleware",
    # Bypass
    "BypassMatch",
    "BypassRule",
    "evaluate_bypass",
    "should_bypass",
    # File cache
    "FileCache",
    # Logging
    "LogLevel",
    "WardenLogger",
    # Errors
    "ConfigurationError",
    "MaintenanceFileError",
    "WardenError",
]
