"""
Configuration of the OpenTelemetry feature.
"""

from __future__ import annotations

from typing import Any

import structlog
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter

from overture.core.config import ObservabilitySettings, get_settings
from overture.observability.adapters import SpanAdapter
from overture.pipeline.feature import FeatureConfig

logger = structlog.get_logger()

INSTRUMENTATION_SCOPE = "overture"


class OpenTelemetryConfig(FeatureConfig):
    """
    Configuration for the OpenTelemetry feature.

    Service name, version and verbose mode default to the values in
    ObservabilitySettings (OVERTURE_SERVICE_NAME, OVERTURE_VERBOSE, ...).
    """

    def __init__(self, settings: ObservabilitySettings | None = None):
        super().__init__()
        settings = settings or get_settings().observability
        self.service_name = settings.service_name
        self.service_version = settings.service_version
        self.verbose = settings.verbose

        self._exporters: list[tuple[SpanExporter, bool]] = []
        self._resource_attributes: dict[str, Any] = {}
        self._span_adapters: list[SpanAdapter] = []
        self._tracer_provider: TracerProvider | None = None

    @property
    def span_adapters(self) -> tuple[SpanAdapter, ...]:
        return tuple(self._span_adapters)

    @property
    def span_exporters(self) -> tuple[SpanExporter, ...]:
        return tuple(exporter for exporter, _ in self._exporters)

    def set_service_info(self, name: str, version: str) -> None:
        self.service_name = name
        self.service_version = version

    def set_verbose(self, verbose: bool) -> None:
        """Export sensitive values (message content, tool arguments) unmasked."""
        self.verbose = verbose

    def add_span_exporter(self, exporter: SpanExporter, batch: bool = True) -> None:
        """
        Add an exporter.

        Args:
            exporter: Any OpenTelemetry SDK span exporter
            batch: Export through a BatchSpanProcessor; False exports each span
                synchronously when it ends
        """
        self._exporters.append((exporter, batch))

    def add_resource_attributes(self, attributes: dict[str, Any]) -> None:
        self._resource_attributes.update(attributes)

    def add_span_adapter(self, adapter: SpanAdapter) -> None:
        self._span_adapters.append(adapter)

    def set_tracer_provider(self, provider: TracerProvider) -> None:
        """Use an existing provider instead of building one; exporters are still attached."""
        self._tracer_provider = provider

    def build_tracer_provider(self) -> TracerProvider:
        provider = self._tracer_provider
        if provider is None:
            resource = Resource.create({
                SERVICE_NAME: self.service_name,
                SERVICE_VERSION: self.service_version,
                **self._resource_attributes,
            })
            provider = TracerProvider(resource=resource)

        if not self._exporters:
            logger.debug("No span exporters configured", service=self.service_name)

        for exporter, batch in self._exporters:
            processor = BatchSpanProcessor(exporter) if batch else SimpleSpanProcessor(exporter)
            provider.add_span_processor(processor)
        return provider
