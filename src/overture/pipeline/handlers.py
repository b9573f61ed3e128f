"""
Handler families.

Each family groups the hook slots of one lifecycle (agent, strategy, node,
LLM call, tool call). A feature owns at most one handler object per family
and at most one handler per slot.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class BoundHandler:
    """A handler together with the feature that registered it."""

    feature: Any
    feature_impl: Any
    fn: Callable[..., Any]

    async def __call__(self, *args: Any) -> Any:
        result = self.fn(self.feature_impl, *args)
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass
class AgentHandlers:
    before_agent_started: BoundHandler | None = None
    agent_finished: BoundHandler | None = None
    agent_run_error: BoundHandler | None = None
    agent_before_closed: BoundHandler | None = None
    environment_transformer: BoundHandler | None = None


@dataclass
class StrategyHandlers:
    strategy_started: BoundHandler | None = None
    strategy_finished: BoundHandler | None = None


@dataclass
class NodeHandlers:
    before_node: BoundHandler | None = None
    after_node: BoundHandler | None = None


@dataclass
class LLMCallHandlers:
    before_llm_call: BoundHandler | None = None
    after_llm_call: BoundHandler | None = None
    start_llm_streaming: BoundHandler | None = None


@dataclass
class ToolCallHandlers:
    tool_call: BoundHandler | None = None
    tool_validation_error: BoundHandler | None = None
    tool_call_failure: BoundHandler | None = None
    tool_call_result: BoundHandler | None = None
