"""Trace log feature and writers."""

from overture.tracing.feature import TraceFeatureConfig, Tracing, TracingFeature
from overture.tracing.format import trace_string
from overture.tracing.writers import (
    TraceFeatureMessageFileWriter,
    TraceFeatureMessageLogWriter,
)

__all__ = [
    "Tracing",
    "TracingFeature",
    "TraceFeatureConfig",
    "TraceFeatureMessageLogWriter",
    "TraceFeatureMessageFileWriter",
    "trace_string",
]
