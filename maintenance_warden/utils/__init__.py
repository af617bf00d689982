"""Utility modules."""

from maintenance_warden.utils.errors import (
    ConfigurationError,
    ErrorCode,
    MaintenanceFileError,
    WardenError,
)
from maintenance_warden.utils.rwlock import ReadWriteLock

__all__ = [
    "ConfigurationError",
    "ErrorCode",
    "MaintenanceFileError",
    "ReadWriteLock",
    "WardenError",
]
