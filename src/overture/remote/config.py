"""
Connection settings for the remote feature-message transport.
"""

from __future__ import annotations

from dataclasses import dataclass

from overture.core.config import DEFAULT_DEBUGGER_HOST, DEFAULT_DEBUGGER_PORT, validate_port

EVENTS_PATH = "/events"
HEALTH_PATH = "/health"


@dataclass(frozen=True)
class ServerConnectionConfig:
    """Where the remote server listens."""

    host: str = DEFAULT_DEBUGGER_HOST
    port: int = DEFAULT_DEBUGGER_PORT
    replay_buffer_size: int = 1000

    def __post_init__(self) -> None:
        validate_port(self.port, "server connection config")


@dataclass(frozen=True)
class ClientConnectionConfig:
    """Where the remote client connects."""

    host: str = DEFAULT_DEBUGGER_HOST
    port: int = DEFAULT_DEBUGGER_PORT
    scheme: str = "http"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        validate_port(self.port, "client connection config")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def events_url(self) -> str:
        return self.base_url + EVENTS_PATH
