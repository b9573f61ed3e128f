"""
Backend-specific span adapters.

Adapters run after the core attributes are attached and before the span is
handed to the exporter. They translate message and choice events into the
index-keyed attributes some tracing backends expect and delete the events
they processed so another adapter does not process them again.
"""

from __future__ import annotations

from overture.core.models import MessageRole
from overture.observability.attributes import Attribute, GenAIKeys
from overture.observability.events import BodyFieldKey, GenAIAgentEvent
from overture.observability.spans import GenAIAgentSpan, InferenceSpan
from overture.observability.values import HiddenString

_ROLE_BY_EVENT_NAME = {
    "gen_ai.system.message": MessageRole.SYSTEM.value,
    "gen_ai.user.message": MessageRole.USER.value,
    "gen_ai.assistant.message": MessageRole.ASSISTANT.value,
    "gen_ai.tool.message": MessageRole.TOOL.value,
    "gen_ai.choice": MessageRole.ASSISTANT.value,
}

CHOICE_EVENT_NAME = "gen_ai.choice"


class SpanAdapter:
    """Hook points invoked by the span processor around a span's lifetime."""

    def on_before_span_started(self, span: GenAIAgentSpan) -> None:
        """Called before the OpenTelemetry span is created."""

    def on_before_span_finished(self, span: GenAIAgentSpan) -> None:
        """Called before the span's attributes and events are exported."""


def indexed_event_attributes(
    prefix: str,
    index: int,
    event: GenAIAgentEvent,
    role: str | None = None,
) -> list[Attribute]:
    """
    Consume an event's body fields into ``<prefix>.<index>.*`` attributes.

    Sensitive values stay wrapped in HiddenString, so they are masked at
    export unless the exporter runs in verbose mode.
    """
    fields = event.consume_body_fields()
    field_role = next((f.value for f in fields if f.key == BodyFieldKey.ROLE), None)
    resolved_role = role or field_role or _ROLE_BY_EVENT_NAME.get(event.name, "")

    attributes = [Attribute(f"{prefix}.{index}.role", resolved_role)]
    for field in fields:
        if field.key in (BodyFieldKey.ROLE, BodyFieldKey.INDEX):
            continue
        key = f"{prefix}.{index}.{field.key}"
        if field.key == BodyFieldKey.ID:
            key = f"{prefix}.{index}.tool_call_id"
        value = HiddenString(field.value) if field.sensitive else field.value
        attributes.append(Attribute(key, value))
    return attributes


def _choice_index(event: GenAIAgentEvent, default: int) -> int:
    for field in event.body_fields:
        if field.key == BodyFieldKey.INDEX and isinstance(field.value, int):
            return field.value
    return default


class IndexedMessageSpanAdapter(SpanAdapter):
    """
    Maps inference span events to ``gen_ai.prompt.N.*`` and
    ``gen_ai.completion.N.*`` attributes.

    Prompt messages are mapped when the span starts, choices when it finishes.
    """

    # Overrides the role recorded on choice events when set
    completion_role: str | None = None

    def on_before_span_started(self, span: GenAIAgentSpan) -> None:
        if not isinstance(span, InferenceSpan):
            return
        prompt_events = [e for e in span.events if e.name != CHOICE_EVENT_NAME]
        for index, event in enumerate(prompt_events):
            span.add_attributes(indexed_event_attributes(GenAIKeys.PROMPT, index, event))
            span.remove_event(event)

    def on_before_span_finished(self, span: GenAIAgentSpan) -> None:
        if not isinstance(span, InferenceSpan):
            return
        choices = [e for e in span.events if e.name == CHOICE_EVENT_NAME]
        for position, event in enumerate(choices):
            index = _choice_index(event, position)
            span.add_attributes(
                indexed_event_attributes(
                    GenAIKeys.COMPLETION, index, event, role=self.completion_role
                )
            )
            span.remove_event(event)


class LangfuseSpanAdapter(IndexedMessageSpanAdapter):
    """Adapter for Langfuse."""


class WeaveSpanAdapter(IndexedMessageSpanAdapter):
    """
    Adapter for W&B Weave.

    Weave renders completions as assistant turns, so every completion is
    reported with the assistant role.
    """

    completion_role = MessageRole.ASSISTANT.value
