"""
GenAI events and their body fields.

An event records something that happened inside a span (a message sent to
the model, a choice returned by it, an exception). Its attributes are always
exported; its body fields carry the payload and are subject to the
sensitivity policy when converted (see converter.py).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

from overture.core.models import AgentError, Message, MessageRole
from overture.observability.attributes import Attribute, GenAIKeys
from overture.observability.values import HiddenString, value_string


class Redaction(str, Enum):
    """How a sensitive field is treated outside verbose mode."""

    OMIT = "omit"
    PLACEHOLDER = "placeholder"


class BodyFieldKey:
    """Body field keys."""

    ROLE = "role"
    CONTENT = "content"
    TOOL_CALLS = "tool_calls"
    INDEX = "index"
    FINISH_REASON = "finish_reason"
    ID = "id"


@dataclass(frozen=True)
class EventBodyField:
    """A named payload value attached to an event."""

    key: str
    value: Any
    sensitive: bool = False
    redaction: Redaction = Redaction.OMIT

    def value_string(self, verbose: bool = False) -> str:
        """Render the value with the shared trace renderer; sensitive values are masked."""
        if self.sensitive and not verbose:
            return value_string(_hide(self.value), verbose)
        return value_string(self.value, verbose)

    def to_attribute(self, verbose: bool = False) -> Attribute | None:
        """
        Convert to an attribute under the sensitivity policy.

        Returns None when the field must be dropped.
        """
        if not self.sensitive:
            return Attribute(key=self.key, value=self.value)
        if verbose:
            return Attribute(key=self.key, value=self.value, verbose=True)
        if self.redaction == Redaction.OMIT:
            return None
        return Attribute(key=self.key, value=_hide(self.value))


def _hide(value: Any) -> Any:
    # Values that already carry HiddenString parts keep their visible structure
    if _contains_hidden(value):
        return value
    return HiddenString(value)


def _contains_hidden(value: Any) -> bool:
    if isinstance(value, HiddenString):
        return True
    if isinstance(value, dict):
        return any(_contains_hidden(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(_contains_hidden(v) for v in value)
    return False


# Body field factories


def role_field(role: MessageRole | str) -> EventBodyField:
    value = role.value if isinstance(role, MessageRole) else str(role)
    return EventBodyField(BodyFieldKey.ROLE, value)


def content_field(content: str) -> EventBodyField:
    return EventBodyField(BodyFieldKey.CONTENT, content, sensitive=True)


def tool_calls_field(calls: Iterable[Message]) -> EventBodyField:
    value = [
        {
            "function": {
                "name": HiddenString(call.tool or ""),
                "arguments": HiddenString(call.content),
            },
            "id": call.id or "",
            "type": "function",
        }
        for call in calls
    ]
    return EventBodyField(
        BodyFieldKey.TOOL_CALLS, value, sensitive=True, redaction=Redaction.PLACEHOLDER
    )


def index_field(index: int) -> EventBodyField:
    return EventBodyField(BodyFieldKey.INDEX, index)


def finish_reason_field(reason: str) -> EventBodyField:
    return EventBodyField(BodyFieldKey.FINISH_REASON, reason)


def id_field(id: str) -> EventBodyField:
    return EventBodyField(BodyFieldKey.ID, id)


class GenAIAgentEvent:
    """
    An event recorded on a span.

    Name and attributes are fixed at construction. Body fields are consumed
    when the event is converted, which makes conversion idempotent.
    """

    def __init__(
        self,
        name: str,
        attributes: Iterable[Attribute] = (),
        body_fields: Iterable[EventBodyField] = (),
    ):
        self.name = name
        self.attributes: tuple[Attribute, ...] = tuple(attributes)
        self._body_fields: list[EventBodyField] = list(body_fields)
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @property
    def body_fields(self) -> tuple[EventBodyField, ...]:
        """Snapshot of the body fields not yet consumed."""
        with self._lock:
            return tuple(self._body_fields)

    def add_body_field(self, field: EventBodyField) -> None:
        with self._lock:
            self._body_fields.append(field)

    def remove_body_field(self, field: EventBodyField) -> bool:
        with self._lock:
            try:
                self._body_fields.remove(field)
            except ValueError:
                return False
            return True

    def consume_body_fields(
        self,
        predicate: Callable[[EventBodyField], bool] | None = None,
    ) -> list[EventBodyField]:
        """Remove and return the body fields matching ``predicate`` (all by default)."""
        with self._lock:
            taken = [f for f in self._body_fields if predicate is None or predicate(f)]
            self._body_fields = [f for f in self._body_fields if f not in taken]
            return taken

    def body_string(self, verbose: bool = False) -> str:
        """
        Render the remaining body fields as a single ``{"key":value}`` string.

        Outside verbose mode, sensitive fields with the OMIT policy are left out.
        """
        fields = [
            f for f in self.body_fields
            if verbose or not (f.sensitive and f.redaction == Redaction.OMIT)
        ]
        items = ",".join(f'"{f.key}":{f.value_string(verbose)}' for f in fields)
        return "{" + items + "}"


def _system_attribute(provider: str) -> Attribute:
    return Attribute(GenAIKeys.SYSTEM, provider)


class SystemMessageEvent(GenAIAgentEvent):
    def __init__(self, provider: str, message: Message):
        fields = []
        if message.role != MessageRole.SYSTEM:
            fields.append(role_field(message.role))
        fields.append(content_field(message.content))
        super().__init__("gen_ai.system.message", [_system_attribute(provider)], fields)


class UserMessageEvent(GenAIAgentEvent):
    def __init__(self, provider: str, message: Message):
        fields = []
        if message.role != MessageRole.USER:
            fields.append(role_field(message.role))
        fields.append(content_field(message.content))
        super().__init__("gen_ai.user.message", [_system_attribute(provider)], fields)


class AssistantMessageEvent(GenAIAgentEvent):
    def __init__(self, provider: str, message: Message):
        fields = []
        if message.role != MessageRole.ASSISTANT:
            fields.append(role_field(message.role))
        if message.is_tool_call:
            fields.append(tool_calls_field([message]))
        else:
            fields.append(content_field(message.content))
        super().__init__("gen_ai.assistant.message", [_system_attribute(provider)], fields)


class ToolMessageEvent(GenAIAgentEvent):
    def __init__(self, provider: str, message: Message):
        fields = []
        if message.id:
            fields.append(id_field(message.id))
        fields.append(content_field(message.content))
        super().__init__("gen_ai.tool.message", [_system_attribute(provider)], fields)


class ChoiceEvent(GenAIAgentEvent):
    """A response returned by the model, numbered by ``index``."""

    def __init__(self, provider: str, message: Message, index: int = 0):
        fields = [index_field(index), role_field(message.role)]
        if message.is_tool_call:
            fields.append(tool_calls_field([message]))
        else:
            fields.append(content_field(message.content))
        if message.finish_reason:
            fields.append(finish_reason_field(message.finish_reason))
        super().__init__("gen_ai.choice", [_system_attribute(provider)], fields)


class ExceptionEvent(GenAIAgentEvent):
    def __init__(self, error: AgentError | BaseException):
        if isinstance(error, BaseException):
            error = AgentError.from_exception(error)
        super().__init__(
            "exception",
            [
                Attribute("exception.type", error.type),
                Attribute("exception.message", error.message),
                Attribute("exception.stacktrace", error.stack_trace),
            ],
        )


def event_from_message(provider: str, message: Message) -> GenAIAgentEvent:
    """Build the event describing a prompt message."""
    if message.role == MessageRole.SYSTEM:
        return SystemMessageEvent(provider, message)
    if message.role == MessageRole.USER:
        return UserMessageEvent(provider, message)
    if message.role == MessageRole.TOOL:
        return ToolMessageEvent(provider, message)
    return AssistantMessageEvent(provider, message)
