"""
Configuration management for Overture.

Supports environment variables, .env files, and YAML configuration.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from overture.core.errors import ConfigurationError

DEFAULT_DEBUGGER_HOST = "127.0.0.1"
DEFAULT_DEBUGGER_PORT = 50881
DEBUGGER_PORT_ENV_VAR = "OVERTURE_DEBUGGER_PORT"


class ObservabilitySettings(BaseSettings):
    """Logging and telemetry settings."""

    model_config = SettingsConfigDict(
        env_prefix="OVERTURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Telemetry
    verbose: bool = False
    service_name: str = "overture"
    service_version: str = "1.0.0"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v


class DebuggerSettings(BaseSettings):
    """
    Remote debugger transport settings.

    The port is not read here; resolve_debugger_port() resolves it when the
    debugger is installed.
    """

    model_config = SettingsConfigDict(
        env_prefix="OVERTURE_DEBUGGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = DEFAULT_DEBUGGER_HOST
    wait_connection: bool = False
    wait_connection_timeout: float = 30.0
    replay_buffer_size: int = Field(default=1000, ge=0)


class Settings(BaseSettings):
    """Combined application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    debugger: DebuggerSettings = Field(default_factory=DebuggerSettings)

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


def validate_port(port: int | str, source: str) -> int:
    """
    Validate a TCP port number.

    Args:
        port: Raw port value (an int or a numeric string)
        source: Where the value came from, used in the error message

    Returns:
        The port as an int

    Raises:
        ConfigurationError: If the value is not an integer in 1..65535
    """
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid debugger port {port!r} from {source}: expected an integer"
        ) from None

    if isinstance(port, bool) or not 1 <= value <= 65535:
        raise ConfigurationError(
            f"Invalid debugger port {port!r} from {source}: must be between 1 and 65535"
        )
    return value


def resolve_debugger_port(port: int | None = None) -> int:
    """
    Resolve the remote debugger port.

    Precedence: explicit value, then the OVERTURE_DEBUGGER_PORT environment
    variable, then the default port.
    """
    if port is not None:
        return validate_port(port, "debugger config")

    env_value = os.environ.get(DEBUGGER_PORT_ENV_VAR)
    if env_value is not None and env_value.strip():
        return validate_port(env_value.strip(), f"environment variable {DEBUGGER_PORT_ENV_VAR}")

    return DEFAULT_DEBUGGER_PORT


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
