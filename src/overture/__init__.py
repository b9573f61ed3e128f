"""
Overture - observability for agent runs

A feature pipeline for agent lifecycle events with a trace log, user
callbacks, OpenTelemetry GenAI spans and a remote debugger.
"""

__version__ = "1.0.0"
__author__ = "Overture Team"

from overture.debugger import DebuggerConfig, DebuggerFeature
from overture.event_handler import EventHandlerConfig, EventHandlerFeature
from overture.observability import OpenTelemetryConfig, OpenTelemetryFeature
from overture.pipeline import AgentFeature, AgentPipeline, FeatureConfig, StorageKey
from overture.tracing import TraceFeatureConfig, TracingFeature

__all__ = [
    "AgentPipeline",
    "AgentFeature",
    "FeatureConfig",
    "StorageKey",
    "TracingFeature",
    "TraceFeatureConfig",
    "EventHandlerFeature",
    "EventHandlerConfig",
    "OpenTelemetryFeature",
    "OpenTelemetryConfig",
    "DebuggerFeature",
    "DebuggerConfig",
]
