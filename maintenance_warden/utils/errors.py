"""Custom exception classes for maintenance warden errors.

Provides structured error handling with error codes and readable messages.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for warden errors."""

    # Configuration errors
    INVALID_OPTION = "INVALID_OPTION"
    NO_CONTENT_SOURCE = "NO_CONTENT_SOURCE"
    MULTIPLE_CONTENT_SOURCES = "MULTIPLE_CONTENT_SOURCES"
    INVALID_SERVICE_URL = "INVALID_SERVICE_URL"
    INVALID_STATUS_CODE = "INVALID_STATUS_CODE"

    # Maintenance file errors
    FILE_UNAVAILABLE = "FILE_UNAVAILABLE"
    FILE_EMPTY = "FILE_EMPTY"
    FILE_NOT_LOADED = "FILE_NOT_LOADED"


class WardenError(Exception):
    """Base exception for maintenance warden errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human readable error message
        details: Additional error details
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class ConfigurationError(WardenError):
    """Raised when the middleware cannot be constructed from its settings."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_OPTION,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class MaintenanceFileError(WardenError):
    """Raised when the maintenance file cannot be (re)loaded."""

    def __init__(
        self,
        path: Path | str,
        message: str,
        code: ErrorCode = ErrorCode.FILE_UNAVAILABLE,
    ):
        self.path = str(path)
        super().__init__(
            code=code,
            message=message,
            details={"path": self.path},
        )
