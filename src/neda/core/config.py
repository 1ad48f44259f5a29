"""Core configuration - centralized config for the neda package.

All environment-based configuration should flow through this module.

Usage:
    from neda.core.config import get_config
    config = get_config()

    db_host = config.db_host
    log_level = config.log_level
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    """Core configuration settings for NEDA.

    Settings are read from ``NEDA_``-prefixed environment variables or a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="NEDA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # DATABASE SETTINGS
    # ==========================================================================

    db_host: str = Field(default="localhost", description="Database host")
    db_port: int = Field(default=5432, description="Database port")
    db_name: str = Field(default="neda", description="Database name")
    db_user: str = Field(default="neda", description="Database user")
    db_password: str = Field(default="", description="Database password")

    # Connection pool settings
    db_pool_min: int = Field(default=2, description="Minimum pool connections")
    db_pool_max: int = Field(default=20, description="Maximum pool connections")
    db_pool_timeout: int = Field(
        default=10,
        description="Seconds to wait for a pooled connection before failing",
    )
    db_statement_timeout_ms: int = Field(
        default=15000,
        description="Per-statement timeout applied to every connection (milliseconds)",
    )

    # ==========================================================================
    # CREDENTIAL SETTINGS
    # ==========================================================================

    api_key_prefix: str = Field(default="neda_", description="Prefix for generated public keys")

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
    )
    log_file: str | None = Field(default=None, description="Log file path (optional)")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
