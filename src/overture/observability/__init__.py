"""
Observability module for Overture.

GenAI spans, events and attributes, the span registry, and the
OpenTelemetry feature that exports an agent's execution tree.
"""

from overture.observability.adapters import (
    LangfuseSpanAdapter,
    SpanAdapter,
    WeaveSpanAdapter,
)
from overture.observability.attributes import Attribute, GenAIKeys, OvertureKeys
from overture.observability.config import OpenTelemetryConfig
from overture.observability.converter import convert_body_fields
from overture.observability.events import EventBodyField, GenAIAgentEvent
from overture.observability.feature import OpenTelemetry, OpenTelemetryFeature
from overture.observability.processor import SpanProcessor
from overture.observability.registry import SpanRegistry
from overture.observability.spans import (
    CreateAgentSpan,
    ExecuteToolSpan,
    GenAIAgentSpan,
    InferenceSpan,
    InvokeAgentSpan,
    NodeExecuteSpan,
)
from overture.observability.values import (
    HIDDEN_STRING_PLACEHOLDER,
    HiddenString,
    value_string,
)

__all__ = [
    "OpenTelemetry",
    "OpenTelemetryFeature",
    "OpenTelemetryConfig",
    "SpanProcessor",
    "SpanRegistry",
    "SpanAdapter",
    "LangfuseSpanAdapter",
    "WeaveSpanAdapter",
    "Attribute",
    "GenAIKeys",
    "OvertureKeys",
    "EventBodyField",
    "GenAIAgentEvent",
    "convert_body_fields",
    "GenAIAgentSpan",
    "CreateAgentSpan",
    "InvokeAgentSpan",
    "NodeExecuteSpan",
    "InferenceSpan",
    "ExecuteToolSpan",
    "HiddenString",
    "HIDDEN_STRING_PLACEHOLDER",
    "value_string",
]
