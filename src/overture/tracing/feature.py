"""
Tracing feature: forwards every pipeline event to trace writers.
"""

from __future__ import annotations

import structlog

from overture.pipeline.emitter import install_message_hooks
from overture.pipeline.feature import AgentFeature, FeatureConfig, InterceptContext, StorageKey
from overture.pipeline.pipeline import AgentPipeline

logger = structlog.get_logger()


class TraceFeatureConfig(FeatureConfig):
    """Configuration for the tracing feature: writers and an optional message filter."""


class Tracing:
    """Installed tracing feature."""

    def __init__(self, config: TraceFeatureConfig):
        self.config = config


class TracingFeature(AgentFeature[TraceFeatureConfig, Tracing]):
    """Writes a line for every agent, strategy, node, LLM and tool event."""

    key = StorageKey("overture-features-tracing", Tracing)

    def create_initial_config(self) -> TraceFeatureConfig:
        return TraceFeatureConfig()

    def install(self, config: TraceFeatureConfig, pipeline: AgentPipeline) -> None:
        if not config.message_processors:
            logger.warning("Tracing installed without message processors")

        context = InterceptContext(self, Tracing(config))
        install_message_hooks(pipeline, context, config)
