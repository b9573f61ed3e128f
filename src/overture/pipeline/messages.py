"""
Feature messages.

Serializable records of pipeline events, sent to message processors (trace
writers, the remote debugger). Every event carries an ``event_id``
discriminator so a stream of them can be decoded back into typed models.
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from overture.core.models import AgentError, Message, Prompt


def _now_ms() -> int:
    return int(time.time() * 1000)


class FeatureMessage(BaseModel):
    """Base class for messages sent to feature message processors."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(default_factory=_now_ms)


class FeatureStringMessage(FeatureMessage):
    """A free-form text message."""

    event_id: Literal["FeatureStringMessage"] = "FeatureStringMessage"
    message: str


class FeatureEvent(FeatureMessage):
    """Base class for lifecycle events."""


# Agent lifecycle


class AgentStartedEvent(FeatureEvent):
    event_id: Literal["AgentStartedEvent"] = "AgentStartedEvent"
    agent_id: str
    run_id: str
    strategy_name: str


class AgentFinishedEvent(FeatureEvent):
    event_id: Literal["AgentFinishedEvent"] = "AgentFinishedEvent"
    agent_id: str
    run_id: str
    result: str | None = None


class AgentRunErrorEvent(FeatureEvent):
    event_id: Literal["AgentRunErrorEvent"] = "AgentRunErrorEvent"
    agent_id: str
    run_id: str
    error: AgentError


class AgentBeforeCloseEvent(FeatureEvent):
    event_id: Literal["AgentBeforeCloseEvent"] = "AgentBeforeCloseEvent"
    agent_id: str


# Strategy lifecycle


class StrategyStartEvent(FeatureEvent):
    event_id: Literal["StrategyStartEvent"] = "StrategyStartEvent"
    run_id: str
    strategy_name: str


class StrategyFinishedEvent(FeatureEvent):
    event_id: Literal["StrategyFinishedEvent"] = "StrategyFinishedEvent"
    run_id: str
    strategy_name: str
    result: str | None = None


# Node lifecycle


class NodeExecutionStartEvent(FeatureEvent):
    event_id: Literal["NodeExecutionStartEvent"] = "NodeExecutionStartEvent"
    run_id: str
    node_name: str
    input: str


class NodeExecutionEndEvent(FeatureEvent):
    event_id: Literal["NodeExecutionEndEvent"] = "NodeExecutionEndEvent"
    run_id: str
    node_name: str
    input: str
    output: str


# LLM call lifecycle


class BeforeLLMCallEvent(FeatureEvent):
    event_id: Literal["BeforeLLMCallEvent"] = "BeforeLLMCallEvent"
    run_id: str
    node_name: str | None = None
    prompt: Prompt
    model: str
    tools: list[str] = Field(default_factory=list)


class AfterLLMCallEvent(FeatureEvent):
    event_id: Literal["AfterLLMCallEvent"] = "AfterLLMCallEvent"
    run_id: str
    node_name: str | None = None
    prompt: Prompt
    model: str
    responses: list[Message] = Field(default_factory=list)


class StartLLMStreamingEvent(FeatureEvent):
    event_id: Literal["StartLLMStreamingEvent"] = "StartLLMStreamingEvent"
    run_id: str
    node_name: str | None = None
    prompt: Prompt
    model: str
    tools: list[str] = Field(default_factory=list)


# Tool call lifecycle


class ToolCallEvent(FeatureEvent):
    event_id: Literal["ToolCallEvent"] = "ToolCallEvent"
    run_id: str
    node_name: str | None = None
    tool_call_id: str | None = None
    tool_name: str
    tool_args: Any = None


class ToolValidationErrorEvent(FeatureEvent):
    event_id: Literal["ToolValidationErrorEvent"] = "ToolValidationErrorEvent"
    run_id: str
    node_name: str | None = None
    tool_call_id: str | None = None
    tool_name: str
    tool_args: Any = None
    error: str


class ToolCallFailureEvent(FeatureEvent):
    event_id: Literal["ToolCallFailureEvent"] = "ToolCallFailureEvent"
    run_id: str
    node_name: str | None = None
    tool_call_id: str | None = None
    tool_name: str
    tool_args: Any = None
    error: AgentError


class ToolCallResultEvent(FeatureEvent):
    event_id: Literal["ToolCallResultEvent"] = "ToolCallResultEvent"
    run_id: str
    node_name: str | None = None
    tool_call_id: str | None = None
    tool_name: str
    tool_args: Any = None
    result: Any = None


AnyFeatureMessage = Annotated[
    Union[
        FeatureStringMessage,
        AgentStartedEvent,
        AgentFinishedEvent,
        AgentRunErrorEvent,
        AgentBeforeCloseEvent,
        StrategyStartEvent,
        StrategyFinishedEvent,
        NodeExecutionStartEvent,
        NodeExecutionEndEvent,
        BeforeLLMCallEvent,
        AfterLLMCallEvent,
        StartLLMStreamingEvent,
        ToolCallEvent,
        ToolValidationErrorEvent,
        ToolCallFailureEvent,
        ToolCallResultEvent,
    ],
    Field(discriminator="event_id"),
]

feature_message_adapter: TypeAdapter[AnyFeatureMessage] = TypeAdapter(AnyFeatureMessage)


def encode_message(message: FeatureMessage) -> str:
    """Serialize a message to JSON."""
    return message.model_dump_json()


def decode_message(data: str | bytes) -> FeatureMessage:
    """Parse a JSON message produced by encode_message()."""
    return feature_message_adapter.validate_json(data)
