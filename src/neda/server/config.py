# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Server configuration using pydantic-settings."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from pydantic import Field

from ..core.config import CoreSettings


def get_package_version() -> str:
    """Get the package version from installed metadata.

    Returns the version from pyproject.toml when installed,
    or a dev fallback when running from source without install.
    """
    try:
        return version("neda-core")
    except PackageNotFoundError:
        return "0.0.0-dev"


class ServerSettings(CoreSettings):
    """Configuration for the NEDA HTTP server.

    Inherits core settings (DB, credentials, logging) and adds HTTP and
    session-token settings. Uses the same ``NEDA_`` environment prefix.
    """

    # Server settings
    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8420, description="Port to bind to")

    # Session tokens (bearer tokens mapping to a principal and scopes)
    token_file: Path = Field(
        default=Path.home() / ".neda" / "tokens.json",
        description="Path to session token storage file",
    )

    # CORS settings
    allowed_origins: list[str] = Field(
        default=[],
        description="Allowed CORS origins. Empty = same-origin only. Set to ['*'] for development.",
    )

    server_name: str = Field(default="neda", description="Server name reported by /health")
    server_version: str = Field(default_factory=get_package_version, description="Server version")


# Global settings instance - lazy loaded
_settings: ServerSettings | None = None


def get_settings() -> ServerSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ServerSettings()
    return _settings


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    global _settings
    _settings = None
