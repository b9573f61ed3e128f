"""
Core data models for Overture.

Payload types handed to the pipeline by the execution engine: messages,
prompts, models, tool descriptors and agent errors.
"""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Message roles in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """A message in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""
    # Tool call id, set for tool calls and tool results
    id: str | None = None
    # Tool name, set for tool calls and tool results
    tool: str | None = None
    finish_reason: str | None = None

    @property
    def is_tool_call(self) -> bool:
        """True for an assistant message requesting a tool call."""
        return self.role == MessageRole.ASSISTANT and self.tool is not None

    @classmethod
    def user(cls, content: str) -> "Message":
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, finish_reason: str | None = None) -> "Message":
        """Create an assistant message."""
        return cls(role=MessageRole.ASSISTANT, content=content, finish_reason=finish_reason)

    @classmethod
    def system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def tool_call(cls, id: str | None, tool: str, arguments: str) -> "Message":
        """Create an assistant tool call; content holds the JSON arguments."""
        return cls(role=MessageRole.ASSISTANT, content=arguments, id=id, tool=tool)

    @classmethod
    def tool_result(cls, id: str | None, tool: str, content: str) -> "Message":
        """Create a tool result message."""
        return cls(role=MessageRole.TOOL, content=content, id=id, tool=tool)


class Prompt(BaseModel):
    """A prompt sent to a language model."""

    model_config = ConfigDict(frozen=True)

    id: str
    messages: list[Message] = Field(default_factory=list)
    temperature: float | None = None


class LLModel(BaseModel):
    """A language model identified by provider and model id."""

    model_config = ConfigDict(frozen=True)

    provider: str
    id: str

    @property
    def event_string(self) -> str:
        """Compact form used in trace lines."""
        return f"{self.provider}:{self.id}"


class ToolParameter(BaseModel):
    """A parameter accepted by a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    type: str = "string"


class ToolDescriptor(BaseModel):
    """Description of a tool exposed to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    required_parameters: list[ToolParameter] = Field(default_factory=list)
    optional_parameters: list[ToolParameter] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Compact dict used in telemetry attributes."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [p.name for p in self.required_parameters + self.optional_parameters],
        }


class AgentError(BaseModel):
    """Serializable description of an error raised during an agent run."""

    model_config = ConfigDict(frozen=True)

    message: str
    type: str = "Exception"
    stack_trace: str = ""
    cause: str | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "AgentError":
        """Build an AgentError from a raised exception."""
        cause = error.__cause__ or error.__context__
        return cls(
            message=str(error),
            type=type(error).__name__,
            stack_trace="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            cause=str(cause) if cause is not None else None,
        )
