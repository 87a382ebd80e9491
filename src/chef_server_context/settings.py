"""Ambient settings for chef-server-context

These settings control the package's own behavior (logging, HTTP timeouts,
TLS verification). The Chef server configuration itself is always read from
a config file and never from the environment.

Environment Variable Prefix:
- CHEF_CONTEXT_: e.g. CHEF_CONTEXT_LOG_LEVEL=DEBUG
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Valid logging levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ContextSettings(BaseSettings):
    """Process-level settings for logging and the REST client"""

    model_config = SettingsConfigDict(
        env_prefix="CHEF_CONTEXT_",
        case_sensitive=False,
        extra="forbid",
        validate_assignment=True,
    )

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Package log level")

    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Timeout applied to every Chef API request",
    )

    verify_ssl: bool = Field(
        default=True, description="Verify the Chef server's TLS certificate"
    )

    server_api_version: str = Field(
        default="1", description="Value sent as X-Ops-Server-API-Version"
    )

    chef_version: str = Field(
        default="18.0.0", description="Value sent as X-Chef-Version"
    )


_settings_instance: ContextSettings | None = None


def get_settings(reload: bool = False) -> ContextSettings:
    """Get the process-wide settings instance

    Args:
        reload: Rebuild the settings from the environment

    Returns:
        Cached ContextSettings instance
    """
    global _settings_instance

    if _settings_instance is None or reload:
        _settings_instance = ContextSettings()

    return _settings_instance
