"""
Remote debugger feature.

Streams every pipeline event to debugger clients connected over the network.
The listening port comes from the config, then the OVERTURE_DEBUGGER_PORT
environment variable, then the default port.
"""

from __future__ import annotations

import structlog

from overture.core.config import DebuggerSettings, get_settings, resolve_debugger_port
from overture.pipeline.emitter import install_message_hooks
from overture.pipeline.feature import AgentFeature, FeatureConfig, InterceptContext, StorageKey
from overture.pipeline.pipeline import AgentPipeline
from overture.remote.config import ServerConnectionConfig
from overture.remote.server import FeatureMessageRemoteWriter

logger = structlog.get_logger()


class DebuggerConfig(FeatureConfig):
    """
    Configuration for the debugger feature.

    ``port`` is left unset by default so the environment variable can supply
    it; host and connection waiting default to DebuggerSettings.
    """

    def __init__(self, settings: DebuggerSettings | None = None):
        super().__init__()
        settings = settings or get_settings().debugger
        self.port: int | None = None
        self.host = settings.host
        self.wait_connection = settings.wait_connection
        self.wait_connection_timeout: float | None = settings.wait_connection_timeout
        self.replay_buffer_size = settings.replay_buffer_size

    def set_port(self, port: int) -> None:
        self.port = port

    def set_wait_connection(self, wait: bool, timeout: float | None = None) -> None:
        """Block agent startup until a client connects (or ``timeout`` expires)."""
        self.wait_connection = wait
        self.wait_connection_timeout = timeout


class Debugger:
    """Installed debugger feature."""

    def __init__(self, config: DebuggerConfig, writer: FeatureMessageRemoteWriter):
        self.config = config
        self.writer = writer

    @property
    def port(self) -> int:
        return self.writer.server.config.port


class DebuggerFeature(AgentFeature[DebuggerConfig, Debugger]):
    """Publishes agent events to a remote debugger."""

    key = StorageKey("overture-features-debugger", Debugger)

    def create_initial_config(self) -> DebuggerConfig:
        return DebuggerConfig()

    def install(self, config: DebuggerConfig, pipeline: AgentPipeline) -> None:
        # Raises ConfigurationError on a bad port before anything is registered
        port = resolve_debugger_port(config.port)

        writer = FeatureMessageRemoteWriter(
            ServerConnectionConfig(
                host=config.host,
                port=port,
                replay_buffer_size=config.replay_buffer_size,
            ),
            wait_connection=config.wait_connection,
            wait_connection_timeout=config.wait_connection_timeout,
        )
        config.add_message_processor(writer)

        context = InterceptContext(self, Debugger(config, writer))
        install_message_hooks(pipeline, context, config)

        logger.info("Debugger installed", host=config.host, port=port)
