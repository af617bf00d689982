"""Maintenance warden configuration.

`WardenSettings` is the raw option surface (environment, `.env` file or a
plain mapping of the camelCase option names). `resolve_config` validates it
into the immutable `MaintenanceConfig` the middleware runs on.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Union

import httpx
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from maintenance_warden.logging_config import LogLevel, WardenLogger
from maintenance_warden.services.file_cache import FileCache
from maintenance_warden.utils.errors import ConfigurationError, ErrorCode, MaintenanceFileError

DEFAULT_BYPASS_HEADER = "X-Maintenance-Bypass"
DEFAULT_BYPASS_HEADER_VALUE = "true"
DEFAULT_STATUS_CODE = 503
DEFAULT_CONTENT_TYPE = "text/html; charset=utf-8"
DEFAULT_TIMEOUT_SECONDS = 10

# camelCase option names of the configuration surface -> field names
OPTION_NAMES: dict[str, str] = {
    "maintenanceService": "maintenance_service",
    "maintenanceFilePath": "maintenance_file_path",
    "maintenanceContent": "maintenance_content",
    "bypassHeader": "bypass_header",
    "bypassHeaderValue": "bypass_header_value",
    "enabled": "enabled",
    "statusCode": "status_code",
    "bypassPaths": "bypass_paths",
    "bypassFavicon": "bypass_favicon",
    "logLevel": "log_level",
    "maintenanceTimeout": "maintenance_timeout",
    "contentType": "content_type",
}


class WardenSettings(BaseSettings):
    """Maintenance warden settings.

    Exactly one of maintenance_service, maintenance_file_path and
    maintenance_content must be set. An empty bypass_header_value is legal:
    requests then bypass whenever the bypass header is absent or empty.
    """

    # Content source (exactly one)
    maintenance_service: str = Field(
        default="",
        description="URL of the maintenance service to proxy to",
    )
    maintenance_file_path: str = Field(
        default="",
        description="Path to a static HTML file to serve",
    )
    maintenance_content: str = Field(
        default="",
        description="Literal maintenance page content",
    )

    # Bypass rules
    bypass_header: str = DEFAULT_BYPASS_HEADER
    bypass_header_value: str = DEFAULT_BYPASS_HEADER_VALUE
    bypass_paths: list[str] = Field(
        default_factory=list,
        description="Path prefixes that skip maintenance mode",
    )
    bypass_favicon: bool = True

    # Response
    enabled: bool = True
    status_code: int = DEFAULT_STATUS_CODE
    content_type: str = DEFAULT_CONTENT_TYPE
    maintenance_timeout: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        ge=0,
        description="Timeout for maintenance service requests in seconds",
    )

    # Logging
    log_level: int = Field(
        default=int(LogLevel.ERROR),
        ge=0,
        le=3,
        description="0=none, 1=error, 2=info, 3=debug",
    )
    json_logs: bool = False
    name: str = "maintenance-warden"

    # Server (main.py only)
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    @field_validator("status_code")
    @classmethod
    def validate_status_code(cls, v: int) -> int:
        """0 means default; anything else must be a real HTTP status."""
        if v != 0 and not 100 <= v <= 599:
            raise ValueError("status_code must be 0 (default) or between 100 and 599")
        return v

    model_config = SettingsConfigDict(
        env_prefix="WARDEN_",
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "WardenSettings":
        """Build settings from a mapping of option names.

        Accepts the camelCase option names (maintenanceService, bypassPaths,
        ...) as well as the field names. Unknown keys are ignored. Only the
        mapping and the defaults count: WARDEN_* variables and the .env file
        are not read.

        Raises:
            ConfigurationError: An option has an invalid value.
        """
        values: dict[str, Any] = {}
        for key, value in options.items():
            field_name = OPTION_NAMES.get(key, key)
            if field_name in cls.model_fields:
                values[field_name] = value
        try:
            return _OptionSettings(**values)
        except ValidationError as e:
            raise ConfigurationError(
                f"invalid maintenance options: {e}",
                details={"errors": e.errors(include_url=False)},
            ) from e


class _OptionSettings(WardenSettings):
    """Settings fed only by explicit options."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)


def create_config() -> WardenSettings:
    """Default settings, before any content source is chosen."""
    return WardenSettings()


@lru_cache
def get_settings() -> WardenSettings:
    """Get cached settings instance."""
    return WardenSettings()


# =============================================================================
# Resolved configuration
# =============================================================================


@dataclass(frozen=True)
class FileSource:
    """Serve a file from disk, reloaded when it changes."""

    path: Path
    cache: FileCache


@dataclass(frozen=True)
class InlineSource:
    """Serve a literal string."""

    content: str


@dataclass(frozen=True)
class RemoteSource:
    """Proxy to a maintenance service."""

    url: httpx.URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS


ContentSource = Union[FileSource, InlineSource, RemoteSource]


@dataclass(frozen=True)
class MaintenanceConfig:
    """Validated, immutable middleware configuration."""

    source: ContentSource
    bypass_header_name: str = DEFAULT_BYPASS_HEADER
    bypass_header_value: str = DEFAULT_BYPASS_HEADER_VALUE
    bypass_path_prefixes: tuple[str, ...] = ()
    bypass_favicon: bool = True
    enabled: bool = True
    status_code: int = DEFAULT_STATUS_CODE
    content_type: str = DEFAULT_CONTENT_TYPE
    log_level: LogLevel = LogLevel.ERROR
    name: str = "maintenance-warden"


def _parse_service_url(raw: str) -> httpx.URL:
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise ConfigurationError(
            f"invalid maintenance service URL: {e}",
            code=ErrorCode.INVALID_SERVICE_URL,
            details={"maintenanceService": raw},
        ) from e

    if not url.scheme or not url.host:
        raise ConfigurationError(
            "maintenance service URL must include scheme and host",
            code=ErrorCode.INVALID_SERVICE_URL,
            details={"maintenanceService": raw},
        )
    if url.scheme not in ("http", "https"):
        raise ConfigurationError(
            f"unsupported maintenance service URL scheme: {url.scheme}",
            code=ErrorCode.INVALID_SERVICE_URL,
            details={"maintenanceService": raw},
        )
    return url


def resolve_config(
    settings: WardenSettings | Mapping[str, Any] | None = None,
    logger: WardenLogger | None = None,
) -> MaintenanceConfig:
    """Validate settings into a MaintenanceConfig.

    A configured maintenance file is loaded immediately, so a missing or empty
    file fails here rather than on the first request.

    Args:
        settings: Settings object or option mapping (environment when None)
        logger: Logger for load messages (built from log_level when None)

    Returns:
        Resolved configuration

    Raises:
        ConfigurationError: No content source, more than one content source,
            invalid service URL or unusable maintenance file.
    """
    if settings is None:
        settings = get_settings()
    elif isinstance(settings, Mapping):
        settings = WardenSettings.from_options(settings)

    log_level = LogLevel(settings.log_level)
    if logger is None:
        logger = WardenLogger(log_level, name=settings.name)

    configured = {
        "maintenanceFilePath": settings.maintenance_file_path,
        "maintenanceContent": settings.maintenance_content,
        "maintenanceService": settings.maintenance_service,
    }
    given = [option for option, value in configured.items() if value]
    if not given:
        raise ConfigurationError(
            "either maintenanceService, maintenanceFilePath, or maintenanceContent must be specified",
            code=ErrorCode.NO_CONTENT_SOURCE,
        )
    if len(given) > 1:
        raise ConfigurationError(
            f"only one content source may be specified, got: {', '.join(given)}",
            code=ErrorCode.MULTIPLE_CONTENT_SOURCES,
            details={"options": given},
        )

    source: ContentSource
    if settings.maintenance_file_path:
        cache = FileCache(settings.maintenance_file_path, logger=logger)
        try:
            cache.load()
        except MaintenanceFileError as e:
            raise ConfigurationError(
                f"failed to load maintenance file: {e.message}",
                code=ErrorCode(e.code),
                details=e.details,
            ) from e
        source = FileSource(path=cache.path, cache=cache)
    elif settings.maintenance_content:
        logger.info(
            "maintenance_content_configured",
            size=len(settings.maintenance_content),
        )
        source = InlineSource(content=settings.maintenance_content)
    else:
        timeout = settings.maintenance_timeout or DEFAULT_TIMEOUT_SECONDS
        source = RemoteSource(
            url=_parse_service_url(settings.maintenance_service),
            timeout=float(timeout),
        )

    return MaintenanceConfig(
        source=source,
        bypass_header_name=settings.bypass_header,
        bypass_header_value=settings.bypass_header_value,
        bypass_path_prefixes=tuple(settings.bypass_paths),
        bypass_favicon=settings.bypass_favicon,
        enabled=settings.enabled,
        status_code=settings.status_code or DEFAULT_STATUS_CODE,
        content_type=settings.content_type or DEFAULT_CONTENT_TYPE,
        log_level=log_level,
        name=settings.name,
    )
