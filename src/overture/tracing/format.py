"""
One-line text rendering of feature messages.

trace_string() covers every event type; unknown feature events fall back
to ``Feature event`` and anything else to ``Feature message``. Payloads are
rendered with the shared value renderer so trace lines match span and
debugger output.
"""

from __future__ import annotations

from functools import singledispatch
from typing import Any

from overture.observability.values import value_string
from overture.pipeline import messages as msg


def _v(value: Any) -> str:
    return value_string(value, verbose=True)


def _tools(tools: list[str]) -> str:
    return "[" + ", ".join(tools) + "]"


@singledispatch
def trace_string(message: Any) -> str:
    """Render a feature message as a single trace line."""
    return "Feature message"


@trace_string.register
def _(message: msg.FeatureEvent) -> str:
    return "Feature event"


@trace_string.register
def _(message: msg.FeatureStringMessage) -> str:
    return f"Feature string message (message: {message.message})"


# Agent lifecycle


@trace_string.register
def _(message: msg.AgentStartedEvent) -> str:
    return (
        f"{message.event_id} (agent id: {message.agent_id}, run id: {message.run_id}, "
        f"strategy: {message.strategy_name})"
    )


@trace_string.register
def _(message: msg.AgentFinishedEvent) -> str:
    return (
        f"{message.event_id} (agent id: {message.agent_id}, run id: {message.run_id}, "
        f"result: {message.result})"
    )


@trace_string.register
def _(message: msg.AgentRunErrorEvent) -> str:
    return (
        f"{message.event_id} (agent id: {message.agent_id}, run id: {message.run_id}, "
        f"error: {message.error.message})"
    )


@trace_string.register
def _(message: msg.AgentBeforeCloseEvent) -> str:
    return f"{message.event_id} (agent id: {message.agent_id})"


# Strategy lifecycle


@trace_string.register
def _(message: msg.StrategyStartEvent) -> str:
    return f"{message.event_id} (run id: {message.run_id}, strategy: {message.strategy_name})"


@trace_string.register
def _(message: msg.StrategyFinishedEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, strategy: {message.strategy_name}, "
        f"result: {message.result})"
    )


# Node lifecycle


@trace_string.register
def _(message: msg.NodeExecutionStartEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, node: {message.node_name}, "
        f"input: {message.input})"
    )


@trace_string.register
def _(message: msg.NodeExecutionEndEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, node: {message.node_name}, "
        f"input: {message.input}, output: {message.output})"
    )


# LLM call lifecycle


@trace_string.register
def _(message: msg.BeforeLLMCallEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, prompt: {_v(message.prompt)}, "
        f"model: {message.model}, tools: {_tools(message.tools)})"
    )


@trace_string.register
def _(message: msg.AfterLLMCallEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, prompt: {_v(message.prompt)}, "
        f"model: {message.model}, responses: {_v(message.responses)})"
    )


@trace_string.register
def _(message: msg.StartLLMStreamingEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, prompt: {_v(message.prompt)}, "
        f"model: {message.model}, tools: {_tools(message.tools)})"
    )


# Tool call lifecycle


@trace_string.register
def _(message: msg.ToolCallEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, tool: {message.tool_name}, "
        f"tool args: {_v(message.tool_args)})"
    )


@trace_string.register
def _(message: msg.ToolValidationErrorEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, tool: {message.tool_name}, "
        f"tool args: {_v(message.tool_args)}, validation error: {message.error})"
    )


@trace_string.register
def _(message: msg.ToolCallFailureEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, tool: {message.tool_name}, "
        f"tool args: {_v(message.tool_args)}, error: {message.error.message})"
    )


@trace_string.register
def _(message: msg.ToolCallResultEvent) -> str:
    return (
        f"{message.event_id} (run id: {message.run_id}, tool: {message.tool_name}, "
        f"tool args: {_v(message.tool_args)}, result: {_v(message.result)})"
    )
