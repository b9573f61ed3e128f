"""
Event contexts passed to pipeline handlers.

Each hook builds one context from the identifiers and payload supplied by
the execution engine. ``feature`` is filled in per handler with the feature
that registered it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from overture.core.models import LLModel, Message, Prompt, ToolDescriptor


@dataclass(frozen=True)
class HookContext:
    feature: Any = field(default=None, kw_only=True)


# Agent lifecycle


@dataclass(frozen=True)
class AgentStartContext(HookContext):
    agent_id: str
    run_id: str
    strategy_name: str
    model: LLModel | None = None


@dataclass(frozen=True)
class AgentFinishedContext(HookContext):
    agent_id: str
    run_id: str
    strategy_name: str
    result: Any = None


@dataclass(frozen=True)
class AgentRunErrorContext(HookContext):
    agent_id: str
    run_id: str
    strategy_name: str
    error: BaseException


@dataclass(frozen=True)
class AgentBeforeCloseContext(HookContext):
    agent_id: str


@dataclass(frozen=True)
class AgentEnvironmentContext(HookContext):
    agent_id: str
    strategy_name: str


# Strategy lifecycle


@dataclass(frozen=True)
class StrategyStartContext(HookContext):
    agent_id: str
    run_id: str
    strategy_name: str


@dataclass(frozen=True)
class StrategyFinishedContext(HookContext):
    agent_id: str
    run_id: str
    strategy_name: str
    result: Any = None


# Node lifecycle


@dataclass(frozen=True)
class NodeBeforeContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    input: Any = None


@dataclass(frozen=True)
class NodeAfterContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    input: Any = None
    output: Any = None


# LLM call lifecycle


@dataclass(frozen=True)
class LLMCallContext(HookContext):
    """Context of before-LLM-call and start-LLM-streaming hooks."""

    agent_id: str
    run_id: str
    node_name: str
    prompt: Prompt
    model: LLModel
    tools: tuple[ToolDescriptor, ...] = ()


@dataclass(frozen=True)
class AfterLLMCallContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    prompt: Prompt
    model: LLModel
    tools: tuple[ToolDescriptor, ...] = ()
    responses: tuple[Message, ...] = ()


# Tool call lifecycle


@dataclass(frozen=True)
class ToolCallContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    tool_call_id: str | None
    tool: ToolDescriptor
    tool_args: Any = None


@dataclass(frozen=True)
class ToolValidationErrorContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    tool_call_id: str | None
    tool: ToolDescriptor
    tool_args: Any = None
    error: str = ""


@dataclass(frozen=True)
class ToolCallFailureContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    tool_call_id: str | None
    tool: ToolDescriptor
    tool_args: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class ToolCallResultContext(HookContext):
    agent_id: str
    run_id: str
    node_name: str
    tool_call_id: str | None
    tool: ToolDescriptor
    tool_args: Any = None
    result: Any = None
