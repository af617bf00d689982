"""Bypass rules for maintenance mode.

Rules are checked in a fixed order and the first one that matches wins. Every
rule has the same effect (the request passes through unchanged); the order
only decides which rule gets reported.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

from starlette.requests import Request

if TYPE_CHECKING:
    from maintenance_warden.config import MaintenanceConfig

FAVICON_SUFFIX = "/favicon.ico"


class BypassRule(str, Enum):
    """Reason a request skipped maintenance mode."""

    DISABLED = "disabled"
    FAVICON = "favicon"
    PATH_PREFIX = "path_prefix"
    HEADER = "header"


class BypassMatch(NamedTuple):
    """The rule that fired and what it matched on."""

    rule: BypassRule
    detail: str = ""


def evaluate_bypass(
    config: MaintenanceConfig,
    path: str,
    headers: Mapping[str, str],
) -> BypassMatch | None:
    """Find the first bypass rule matching a request.

    Args:
        config: Resolved middleware configuration
        path: Request path
        headers: Request headers (name lookup as the mapping defines it)

    Returns:
        The matching rule, or None when maintenance mode applies
    """
    if not config.enabled:
        return BypassMatch(BypassRule.DISABLED)

    if config.bypass_favicon and path.endswith(FAVICON_SUFFIX):
        return BypassMatch(BypassRule.FAVICON, path)

    for prefix in config.bypass_path_prefixes:
        if path.startswith(prefix):
            return BypassMatch(BypassRule.PATH_PREFIX, prefix)

    # A missing header reads as "", which matches an empty expected value
    header_value = headers.get(config.bypass_header_name, "")
    if header_value == config.bypass_header_value:
        return BypassMatch(BypassRule.HEADER, header_value)

    return None


def should_bypass(config: MaintenanceConfig, request: Request) -> bool:
    """Check whether a request skips maintenance mode."""
    return evaluate_bypass(config, request.url.path, request.headers) is not None
