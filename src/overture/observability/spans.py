"""
GenAI agent spans.

One span class per level of the execution hierarchy. A span collects
attributes and events while it is open and pushes them to its underlying
OpenTelemetry span when it ends.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Iterable

import structlog
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from overture.core.models import LLModel, ToolDescriptor
from overture.observability.attributes import (
    INPUT_VALUE,
    OUTPUT_VALUE,
    Attribute,
    GenAIKeys,
    OperationName,
    OvertureKeys,
    to_sdk_attributes,
)
from overture.observability.converter import event_to_otel_attributes
from overture.observability.events import GenAIAgentEvent
from overture.observability.span_ids import (
    SpanSegment,
    agent_span_id,
    child_span_id,
    is_descendant_id,
)
from overture.observability.values import HiddenString

logger = structlog.get_logger()


class GenAIAgentSpan:
    """Base class for spans in the agent hierarchy."""

    kind: SpanKind = SpanKind.INTERNAL

    def __init__(self, span_id: str, parent: GenAIAgentSpan | None = None):
        if parent is not None and not is_descendant_id(span_id, parent.span_id):
            raise ValueError(
                f"Span id <{span_id}> must extend its parent id <{parent.span_id}>"
            )
        self.span_id = span_id
        self.parent = parent
        self.status = StatusCode.UNSET
        self.status_description: str | None = None
        self.started_at: int | None = None
        self.ended_at: int | None = None
        self.otel_span: Span | None = None

        self._attributes: list[Attribute] = []
        self._events: list[GenAIAgentEvent] = []
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.span_id!r})"

    @property
    def parent_id(self) -> str | None:
        return self.parent.span_id if self.parent is not None else None

    @property
    def name(self) -> str:
        """The id relative to the parent: ``run.<runId>`` for a run span."""
        if self.parent is None:
            return self.span_id
        return self.span_id[len(self.parent.span_id) + 1:]

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    @property
    def is_ended(self) -> bool:
        return self.ended_at is not None

    # Attributes

    @property
    def attributes(self) -> tuple[Attribute, ...]:
        with self._lock:
            return tuple(self._attributes)

    def add_attribute(self, attribute: Attribute) -> None:
        with self._lock:
            self._attributes.append(attribute)

    def add_attributes(self, attributes: Iterable[Attribute]) -> None:
        with self._lock:
            self._attributes.extend(attributes)

    def remove_attribute(self, key: str) -> bool:
        with self._lock:
            before = len(self._attributes)
            self._attributes = [a for a in self._attributes if a.key != key]
            return len(self._attributes) != before

    def get_attribute(self, key: str) -> Attribute | None:
        """Last attribute set under ``key``."""
        with self._lock:
            for attribute in reversed(self._attributes):
                if attribute.key == key:
                    return attribute
        return None

    # Events

    @property
    def events(self) -> tuple[GenAIAgentEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def add_event(self, event: GenAIAgentEvent) -> None:
        with self._lock:
            self._events.append(event)

    def add_events(self, events: Iterable[GenAIAgentEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def remove_event(self, event: GenAIAgentEvent) -> bool:
        with self._lock:
            try:
                self._events.remove(event)
            except ValueError:
                return False
            return True

    # Lifecycle

    def mark_started(self, otel_span: Span | None = None, started_at: int | None = None) -> None:
        with self._lock:
            self.otel_span = otel_span
            self.started_at = started_at if started_at is not None else time.time_ns()

    def end(
        self,
        status: StatusCode = StatusCode.UNSET,
        description: str | None = None,
        verbose: bool = False,
    ) -> bool:
        """
        End the span.

        Pushes the collected attributes and events to the OpenTelemetry span.
        Ending a span twice logs a warning and leaves it untouched.

        Returns:
            True if this call ended the span
        """
        with self._lock:
            if self.ended_at is not None:
                logger.warning(
                    "Span already ended",
                    span_id=self.span_id,
                    status=self.status.name,
                )
                return False
            self.ended_at = time.time_ns()
            self.status = status
            self.status_description = description if status == StatusCode.ERROR else None
            attributes = list(self._attributes)
            events = list(self._events)

        otel_span = self.otel_span
        if otel_span is not None:
            otel_span.set_attributes(to_sdk_attributes(attributes, verbose))
            for event in events:
                otel_span.add_event(event.name, attributes=event_to_otel_attributes(event, verbose))
            otel_span.set_status(Status(status, self.status_description))
            otel_span.end(end_time=self.ended_at)

        logger.debug("Span ended", span_id=self.span_id, status=status.name)
        return True


class CreateAgentSpan(GenAIAgentSpan):
    """Root span: the lifetime of an agent instance."""

    kind = SpanKind.CLIENT

    def __init__(self, agent_id: str, model: LLModel | None = None):
        super().__init__(self.create_id(agent_id))
        self.agent_id = agent_id
        self.add_attributes([
            Attribute(GenAIKeys.OPERATION_NAME, OperationName.CREATE_AGENT),
            Attribute(GenAIKeys.AGENT_ID, agent_id),
        ])
        if model is not None:
            self.add_attributes([
                Attribute(GenAIKeys.SYSTEM, model.provider),
                Attribute(GenAIKeys.REQUEST_MODEL, model.id),
            ])

    @staticmethod
    def create_id(agent_id: str) -> str:
        return agent_span_id(agent_id)


class InvokeAgentSpan(GenAIAgentSpan):
    """A single run of an agent."""

    kind = SpanKind.CLIENT

    def __init__(
        self,
        parent: CreateAgentSpan,
        run_id: str,
        strategy_name: str,
        provider: str | None = None,
    ):
        super().__init__(self.create_id(parent.span_id, run_id), parent)
        self.run_id = run_id
        self.strategy_name = strategy_name
        self.add_attributes([
            Attribute(GenAIKeys.OPERATION_NAME, OperationName.INVOKE_AGENT),
            Attribute(GenAIKeys.AGENT_ID, parent.agent_id),
            Attribute(GenAIKeys.CONVERSATION_ID, run_id),
            Attribute(OvertureKeys.STRATEGY_NAME, strategy_name),
            Attribute(OvertureKeys.AGENT_COMPLETED, False),
        ])
        if provider is not None:
            self.add_attribute(Attribute(GenAIKeys.SYSTEM, provider))

    @staticmethod
    def create_id(parent_id: str, run_id: str) -> str:
        return child_span_id(parent_id, SpanSegment.RUN, run_id)

    def complete(self, result: Any) -> None:
        """Record the run result before ending with OK."""
        self.remove_attribute(OvertureKeys.AGENT_COMPLETED)
        self.add_attributes([
            Attribute(OvertureKeys.AGENT_COMPLETED, True),
            Attribute(OvertureKeys.AGENT_RESULT, HiddenString(result)),
        ])


class NodeExecuteSpan(GenAIAgentSpan):
    """Execution of one strategy node."""

    kind = SpanKind.INTERNAL

    def __init__(self, parent: InvokeAgentSpan, node_name: str):
        super().__init__(self.create_id(parent.span_id, node_name), parent)
        self.run_id = parent.run_id
        self.node_name = node_name
        self.add_attributes([
            Attribute(GenAIKeys.CONVERSATION_ID, parent.run_id),
            Attribute(OvertureKeys.NODE_NAME, node_name),
        ])

    @staticmethod
    def create_id(parent_id: str, node_name: str) -> str:
        return child_span_id(parent_id, SpanSegment.NODE, node_name)


class InferenceSpan(GenAIAgentSpan):
    """One call to a language model."""

    kind = SpanKind.CLIENT

    def __init__(
        self,
        parent: NodeExecuteSpan,
        prompt_id: str,
        model: LLModel,
        temperature: float | None = None,
        tools: Iterable[ToolDescriptor] = (),
    ):
        super().__init__(self.create_id(parent.span_id, prompt_id), parent)
        self.prompt_id = prompt_id
        self.model = model
        self.add_attributes([
            Attribute(GenAIKeys.OPERATION_NAME, OperationName.CHAT),
            Attribute(GenAIKeys.SYSTEM, model.provider),
            Attribute(GenAIKeys.CONVERSATION_ID, parent.run_id),
            Attribute(GenAIKeys.REQUEST_MODEL, model.id),
        ])
        if temperature is not None:
            self.add_attribute(Attribute(GenAIKeys.REQUEST_TEMPERATURE, temperature))
        tool_list = [tool.to_dict() for tool in tools]
        if tool_list:
            self.add_attribute(Attribute(GenAIKeys.REQUEST_TOOLS, tool_list))

    @staticmethod
    def create_id(parent_id: str, prompt_id: str) -> str:
        return child_span_id(parent_id, SpanSegment.LLM, prompt_id)


class ExecuteToolSpan(GenAIAgentSpan):
    """Execution of one tool call."""

    kind = SpanKind.INTERNAL

    def __init__(
        self,
        parent: NodeExecuteSpan,
        tool: ToolDescriptor,
        tool_args: Any,
        tool_call_id: str | None = None,
    ):
        super().__init__(self.create_id(parent.span_id, tool.name), parent)
        self.tool = tool
        self.add_attributes([
            Attribute(GenAIKeys.OPERATION_NAME, OperationName.EXECUTE_TOOL),
            Attribute(GenAIKeys.TOOL_NAME, tool.name),
            Attribute(GenAIKeys.TOOL_DESCRIPTION, tool.description),
            Attribute(INPUT_VALUE, HiddenString(tool_args)),
        ])
        if tool_call_id:
            self.add_attribute(Attribute(GenAIKeys.TOOL_CALL_ID, tool_call_id))

    @staticmethod
    def create_id(parent_id: str, tool_name: str) -> str:
        return child_span_id(parent_id, SpanSegment.TOOL, tool_name)

    def set_result(self, result: Any) -> None:
        self.add_attribute(Attribute(OUTPUT_VALUE, HiddenString(result)))
