"""
Bridge between GenAI agent spans and an OpenTelemetry tracer.

The processor starts OpenTelemetry spans under their parent's context,
runs the configured adapters and ends spans through the registry, so that
bulk cleanup and explicit ends follow the same path.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable, Sequence, TypeVar

import structlog
from opentelemetry.trace import StatusCode, Tracer, set_span_in_context

from overture.core.errors import SpanAlreadyStartedError
from overture.observability.adapters import SpanAdapter
from overture.observability.attributes import Attribute, to_sdk_attributes
from overture.observability.registry import SpanRegistry
from overture.observability.spans import GenAIAgentSpan

logger = structlog.get_logger()

SpanT = TypeVar("SpanT", bound=GenAIAgentSpan)


class SpanProcessor:
    """Starts and ends spans against a tracer and tracks them in a registry."""

    def __init__(
        self,
        tracer: Tracer,
        verbose: bool = False,
        adapters: Sequence[SpanAdapter] = (),
    ):
        self.tracer = tracer
        self.verbose = verbose
        self.adapters = list(adapters)
        self.registry = SpanRegistry(finisher=self._finish)

    def start_span(self, span: SpanT) -> SpanT:
        """
        Register and start a span.

        If another span is already registered under the same id, that span
        is returned and ``span`` is discarded.
        """
        registered = self.registry.get_or_put_span(span.span_id, lambda: span)
        if registered is not span:
            logger.warning("Span id already registered", span_id=span.span_id)
            return registered  # type: ignore[return-value]

        if span.is_started:
            raise SpanAlreadyStartedError(span.span_id)

        for adapter in self.adapters:
            adapter.on_before_span_started(span)

        parent_otel_span = span.parent.otel_span if span.parent is not None else None
        context = set_span_in_context(parent_otel_span) if parent_otel_span is not None else None
        started_at = time.time_ns()

        otel_span = self.tracer.start_span(
            name=span.name,
            context=context,
            kind=span.kind,
            attributes=to_sdk_attributes(span.attributes, self.verbose),
            start_time=started_at,
        )
        span.mark_started(otel_span, started_at)

        logger.debug("Span started", span_id=span.span_id, kind=span.kind.name)
        return span

    def get_or_start_span(self, span_id: str, factory: Callable[[], SpanT]) -> SpanT:
        """Return the span under ``span_id``, starting a new one if absent."""
        existing = self.registry.get_span(span_id)
        if existing is not None:
            return existing  # type: ignore[return-value]
        return self.start_span(factory())

    def end_span(
        self,
        span: GenAIAgentSpan,
        status: StatusCode = StatusCode.OK,
        description: str | None = None,
        attributes: Iterable[Attribute] = (),
    ) -> bool:
        """
        End a span with a definite status and drop it from the registry.

        Returns:
            True if this call ended the span
        """
        span.add_attributes(attributes)
        try:
            return self._finish(span, status, description)
        finally:
            if self.registry.get_span(span.span_id) is span:
                self.registry.remove_span(span.span_id)

    def end_unfinished_agent_run_spans(self, agent_id: str, run_id: str) -> list[GenAIAgentSpan]:
        return self.registry.end_unfinished_agent_run_spans(agent_id, run_id)

    def end_unfinished_agent_spans(self, agent_id: str) -> list[GenAIAgentSpan]:
        return self.registry.end_unfinished_agent_spans(agent_id)

    def end_unfinished_spans(self) -> list[GenAIAgentSpan]:
        return self.registry.end_unfinished_spans()

    def _finish(
        self,
        span: GenAIAgentSpan,
        status: StatusCode,
        description: str | None = None,
    ) -> bool:
        if span.is_ended:
            logger.warning("Span already ended", span_id=span.span_id)
            return False

        try:
            for adapter in self.adapters:
                adapter.on_before_span_finished(span)
        finally:
            ended = span.end(status, description, verbose=self.verbose)
        return ended
