"""
Event handler feature: user callbacks for pipeline hooks.

Callbacks are kept in an ordered list per hook. Registering a callback
appends it; every callback of a hook runs, in registration order, each time
the hook fires. Callbacks receive the hook's event context and may be plain
functions or coroutines.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable

import structlog

from overture.pipeline import contexts as ctx
from overture.pipeline.feature import AgentFeature, FeatureConfig, InterceptContext, StorageKey
from overture.pipeline.pipeline import AgentPipeline

logger = structlog.get_logger()

Callback = Callable[[Any], Any]

HOOKS = (
    "before_agent_started",
    "agent_finished",
    "agent_run_error",
    "agent_before_closed",
    "strategy_started",
    "strategy_finished",
    "before_node",
    "after_node",
    "before_llm_call",
    "after_llm_call",
    "start_llm_streaming",
    "tool_call",
    "tool_validation_error",
    "tool_call_failure",
    "tool_call_result",
)


class EventHandlerConfig(FeatureConfig):
    """Ordered callback lists, one per hook."""

    def __init__(self) -> None:
        super().__init__()
        self._callbacks: dict[str, list[Callback]] = {hook: [] for hook in HOOKS}

    def callbacks(self, hook: str) -> tuple[Callback, ...]:
        if hook not in self._callbacks:
            raise ValueError(f"Unknown hook: {hook}. Must be one of {HOOKS}")
        return tuple(self._callbacks[hook])

    def add_handler(self, hook: str, callback: Callback) -> None:
        """Append ``callback`` to the list of ``hook``."""
        if hook not in self._callbacks:
            raise ValueError(f"Unknown hook: {hook}. Must be one of {HOOKS}")
        self._callbacks[hook].append(callback)

    # Agent lifecycle

    def on_before_agent_started(self, callback: Callable[[ctx.AgentStartContext], Any]) -> None:
        self.add_handler("before_agent_started", callback)

    def on_agent_finished(self, callback: Callable[[ctx.AgentFinishedContext], Any]) -> None:
        self.add_handler("agent_finished", callback)

    def on_agent_run_error(self, callback: Callable[[ctx.AgentRunErrorContext], Any]) -> None:
        self.add_handler("agent_run_error", callback)

    def on_agent_before_closed(
        self, callback: Callable[[ctx.AgentBeforeCloseContext], Any]
    ) -> None:
        self.add_handler("agent_before_closed", callback)

    # Strategy lifecycle

    def on_strategy_started(self, callback: Callable[[ctx.StrategyStartContext], Any]) -> None:
        self.add_handler("strategy_started", callback)

    def on_strategy_finished(
        self, callback: Callable[[ctx.StrategyFinishedContext], Any]
    ) -> None:
        self.add_handler("strategy_finished", callback)

    # Node lifecycle

    def on_before_node(self, callback: Callable[[ctx.NodeBeforeContext], Any]) -> None:
        self.add_handler("before_node", callback)

    def on_after_node(self, callback: Callable[[ctx.NodeAfterContext], Any]) -> None:
        self.add_handler("after_node", callback)

    # LLM call lifecycle

    def on_before_llm_call(self, callback: Callable[[ctx.LLMCallContext], Any]) -> None:
        self.add_handler("before_llm_call", callback)

    def on_after_llm_call(self, callback: Callable[[ctx.AfterLLMCallContext], Any]) -> None:
        self.add_handler("after_llm_call", callback)

    def on_start_llm_streaming(self, callback: Callable[[ctx.LLMCallContext], Any]) -> None:
        self.add_handler("start_llm_streaming", callback)

    # Tool call lifecycle

    def on_tool_call(self, callback: Callable[[ctx.ToolCallContext], Any]) -> None:
        self.add_handler("tool_call", callback)

    def on_tool_validation_error(
        self, callback: Callable[[ctx.ToolValidationErrorContext], Any]
    ) -> None:
        self.add_handler("tool_validation_error", callback)

    def on_tool_call_failure(
        self, callback: Callable[[ctx.ToolCallFailureContext], Any]
    ) -> None:
        self.add_handler("tool_call_failure", callback)

    def on_tool_call_result(self, callback: Callable[[ctx.ToolCallResultContext], Any]) -> None:
        self.add_handler("tool_call_result", callback)


class EventHandler:
    """Installed event handler feature."""

    def __init__(self, config: EventHandlerConfig):
        self.config = config

    async def run_callbacks(self, hook: str, event: Any) -> None:
        for callback in self.config.callbacks(hook):
            result = callback(event)
            if inspect.isawaitable(result):
                await result


class EventHandlerFeature(AgentFeature[EventHandlerConfig, EventHandler]):
    """Runs user callbacks on pipeline hooks."""

    key = StorageKey("overture-features-event-handler", EventHandler)

    def create_initial_config(self) -> EventHandlerConfig:
        return EventHandlerConfig()

    def install(self, config: EventHandlerConfig, pipeline: AgentPipeline) -> None:
        context = InterceptContext(self, EventHandler(config))

        registered = 0
        for hook in HOOKS:
            if not config.callbacks(hook):
                continue
            intercept = getattr(pipeline, f"intercept_{hook}")
            intercept(context, _hook_handler(hook))
            registered += 1

        logger.debug("Event handler installed", hooks=registered)


def _hook_handler(hook: str) -> Callable[[EventHandler, Any], Any]:
    async def handle(feature: EventHandler, event: Any) -> None:
        await feature.run_callbacks(hook, event)

    return handle
