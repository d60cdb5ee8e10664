"""
Shared configuration management for the Access Shield services.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with an ``ACCESS_``-prefixed environment
    variable (``ACCESS_LOG_LEVEL``, ``ACCESS_SHIELD_DEBUG``...) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Request handling
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Shield
    shield_debug: bool = Field(default=False)
    shield_fallback_error: str = Field(default="Not Authorised!")
    # Unmapped fields are allowed unless this is "deny"
    shield_default_rule: Literal["allow", "deny"] = Field(default="allow")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
