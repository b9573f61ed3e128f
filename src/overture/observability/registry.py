"""
Registry of active spans keyed by hierarchical span id.

The registry owns every span for the lifetime of an export session and is
the only component that closes orphaned spans. All operations are safe to
call from concurrent agent runs.
"""

from __future__ import annotations

import threading
from typing import Callable, TypeVar

import structlog
from opentelemetry.trace import StatusCode

from overture.core.errors import SpanCleanupError, SpanNotFoundError, SpanTypeMismatchError
from overture.observability.span_ids import (
    agent_run_span_id,
    agent_span_id,
    inference_span_id,
    is_descendant_id,
    node_span_id,
    tool_span_id,
)
from overture.observability.spans import GenAIAgentSpan

logger = structlog.get_logger()

SpanT = TypeVar("SpanT", bound=GenAIAgentSpan)

# Ends a span with the given status; returns True if the span was ended by the call
SpanFinisher = Callable[[GenAIAgentSpan, StatusCode], bool]


def _default_finisher(span: GenAIAgentSpan, status: StatusCode) -> bool:
    return span.end(status)


class SpanRegistry:
    """
    Thread-safe store of spans keyed by span id.

    ``finisher`` is used by the bulk cleanup operations to end a span; the
    span processor passes one that runs adapters before export.
    """

    def __init__(self, finisher: SpanFinisher | None = None):
        self._spans: dict[str, GenAIAgentSpan] = {}
        self._lock = threading.Lock()
        self._finisher = finisher or _default_finisher

    def __len__(self) -> int:
        with self._lock:
            return len(self._spans)

    def __contains__(self, span_id: object) -> bool:
        with self._lock:
            return span_id in self._spans

    @property
    def span_ids(self) -> list[str]:
        with self._lock:
            return list(self._spans)

    def add_span(self, span_id: str, span: GenAIAgentSpan) -> None:
        """Insert a span; a repeated id overwrites the previous span."""
        with self._lock:
            self._spans[span_id] = span

    def get_span(self, span_id: str, span_type: type[SpanT] = GenAIAgentSpan) -> SpanT | None:
        """Return the span if present and of ``span_type``, else None."""
        with self._lock:
            span = self._spans.get(span_id)
        if isinstance(span, span_type):
            return span
        return None

    def get_span_or_raise(
        self,
        span_id: str,
        span_type: type[SpanT] = GenAIAgentSpan,
    ) -> SpanT:
        """
        Return the span registered under ``span_id``.

        Raises:
            SpanNotFoundError: If no span is registered under the id
            SpanTypeMismatchError: If the span is not a ``span_type``
        """
        with self._lock:
            span = self._spans.get(span_id)
        if span is None:
            raise SpanNotFoundError(span_id)
        if not isinstance(span, span_type):
            raise SpanTypeMismatchError(span_id, span_type, type(span))
        return span

    def get_or_put_span(self, span_id: str, factory: Callable[[], SpanT]) -> SpanT:
        """
        Return the span under ``span_id``, creating it with ``factory`` if absent.

        The check and insert happen under one lock, so concurrent callers
        racing on the same id invoke the factory at most once.
        """
        with self._lock:
            span = self._spans.get(span_id)
            if span is None:
                span = factory()
                self._spans[span_id] = span
            return span  # type: ignore[return-value]

    def remove_span(
        self,
        span_id: str,
        span_type: type[SpanT] = GenAIAgentSpan,
    ) -> SpanT | None:
        """Remove and return the span without ending it."""
        with self._lock:
            span = self._spans.get(span_id)
            if not isinstance(span, span_type):
                return None
            del self._spans[span_id]
            return span

    def find_top_most_span(
        self,
        agent_id: str,
        run_id: str | None = None,
        node_name: str | None = None,
        tool_name: str | None = None,
        prompt_id: str | None = None,
    ) -> GenAIAgentSpan | None:
        """
        Return the most specific registered span for the given coordinates.

        Candidates are tried from the deepest id the coordinates describe up
        to the agent span. When both ``tool_name`` and ``prompt_id`` are given
        the tool span is preferred.
        """
        candidates: list[str] = []
        if run_id is not None and node_name is not None:
            if tool_name is not None:
                candidates.append(tool_span_id(agent_id, run_id, node_name, tool_name))
            if prompt_id is not None:
                candidates.append(inference_span_id(agent_id, run_id, node_name, prompt_id))
            candidates.append(node_span_id(agent_id, run_id, node_name))
        if run_id is not None:
            candidates.append(agent_run_span_id(agent_id, run_id))
        candidates.append(agent_span_id(agent_id))

        with self._lock:
            for span_id in candidates:
                span = self._spans.get(span_id)
                if span is not None:
                    return span
        return None

    def end_unfinished_spans(
        self,
        filter: Callable[[str], bool] = lambda span_id: True,
    ) -> list[GenAIAgentSpan]:
        """
        End every open span whose id satisfies ``filter`` with UNSET status.

        Spans are ended deepest-first and removed from the registry. Spans
        that are already ended are left untouched. A span whose finish fails
        is still removed and the remaining targets are still ended.

        Returns:
            The spans ended by this call

        Raises:
            SpanCleanupError: If finishing one or more spans failed
        """
        with self._lock:
            targets = [
                (span_id, span)
                for span_id, span in self._spans.items()
                if not span.is_ended and filter(span_id)
            ]

        ended: list[GenAIAgentSpan] = []
        errors: dict[str, Exception] = {}
        for span_id, span in sorted(targets, key=lambda item: item[0].count("."), reverse=True):
            try:
                if self._finisher(span, StatusCode.UNSET):
                    ended.append(span)
            except Exception as e:
                logger.error("Failed to finish span", span_id=span_id, error=str(e))
                errors[span_id] = e
            finally:
                with self._lock:
                    if self._spans.get(span_id) is span:
                        del self._spans[span_id]

        if ended:
            logger.debug("Ended unfinished spans", count=len(ended))
        if errors:
            raise SpanCleanupError(errors)
        return ended

    def end_unfinished_agent_run_spans(self, agent_id: str, run_id: str) -> list[GenAIAgentSpan]:
        """
        End every open span below the given agent run.

        The agent span and the run span themselves stay open for the
        run-finished or run-error handler to close with a definite status.
        """
        run_id_prefix = agent_run_span_id(agent_id, run_id)
        return self.end_unfinished_spans(lambda span_id: is_descendant_id(span_id, run_id_prefix))

    def end_unfinished_agent_spans(self, agent_id: str) -> list[GenAIAgentSpan]:
        """End every open span below the agent span, leaving the agent span open."""
        agent_prefix = agent_span_id(agent_id)
        return self.end_unfinished_spans(lambda span_id: is_descendant_id(span_id, agent_prefix))
