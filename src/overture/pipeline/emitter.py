"""
Turning pipeline hooks into feature messages.

Features that only forward events to their message processors (the trace
log, the remote debugger) register these handlers instead of writing their
own.
"""

from __future__ import annotations

from typing import Any

import structlog

from overture.core.models import AgentError
from overture.observability.values import value_string
from overture.pipeline import contexts as ctx
from overture.pipeline import messages as msg
from overture.pipeline.feature import FeatureConfig, InterceptContext
from overture.pipeline.pipeline import AgentPipeline

logger = structlog.get_logger()


def _text(value: Any) -> str:
    return value_string(value, verbose=True)


def _optional_text(value: Any) -> str | None:
    return None if value is None else _text(value)


async def emit_message(config: FeatureConfig, message: msg.FeatureMessage) -> None:
    """Send a message to every open processor of ``config`` that accepts it."""
    if not config.accepts(message):
        return
    for processor in config.message_processors:
        if not processor.is_open:
            logger.debug(
                "Skipping closed message processor",
                processor=type(processor).__name__,
                event_id=getattr(message, "event_id", None),
            )
            continue
        await processor.process_message(message)


def install_message_hooks(
    pipeline: AgentPipeline,
    context: InterceptContext[Any],
    config: FeatureConfig,
) -> None:
    """Register a handler on every hook that emits the matching feature event."""

    async def emit(message: msg.FeatureMessage) -> None:
        await emit_message(config, message)

    # Agent lifecycle

    async def before_agent_started(_: Any, event: ctx.AgentStartContext) -> None:
        await emit(msg.AgentStartedEvent(
            agent_id=event.agent_id,
            run_id=event.run_id,
            strategy_name=event.strategy_name,
        ))

    async def agent_finished(_: Any, event: ctx.AgentFinishedContext) -> None:
        await emit(msg.AgentFinishedEvent(
            agent_id=event.agent_id,
            run_id=event.run_id,
            result=_optional_text(event.result),
        ))

    async def agent_run_error(_: Any, event: ctx.AgentRunErrorContext) -> None:
        await emit(msg.AgentRunErrorEvent(
            agent_id=event.agent_id,
            run_id=event.run_id,
            error=AgentError.from_exception(event.error),
        ))

    async def agent_before_closed(_: Any, event: ctx.AgentBeforeCloseContext) -> None:
        await emit(msg.AgentBeforeCloseEvent(agent_id=event.agent_id))

    pipeline.intercept_before_agent_started(context, before_agent_started)
    pipeline.intercept_agent_finished(context, agent_finished)
    pipeline.intercept_agent_run_error(context, agent_run_error)
    pipeline.intercept_agent_before_closed(context, agent_before_closed)

    # Strategy lifecycle

    async def strategy_started(_: Any, event: ctx.StrategyStartContext) -> None:
        await emit(msg.StrategyStartEvent(
            run_id=event.run_id,
            strategy_name=event.strategy_name,
        ))

    async def strategy_finished(_: Any, event: ctx.StrategyFinishedContext) -> None:
        await emit(msg.StrategyFinishedEvent(
            run_id=event.run_id,
            strategy_name=event.strategy_name,
            result=_optional_text(event.result),
        ))

    pipeline.intercept_strategy_started(context, strategy_started)
    pipeline.intercept_strategy_finished(context, strategy_finished)

    # Node lifecycle

    async def before_node(_: Any, event: ctx.NodeBeforeContext) -> None:
        await emit(msg.NodeExecutionStartEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            input=_text(event.input),
        ))

    async def after_node(_: Any, event: ctx.NodeAfterContext) -> None:
        await emit(msg.NodeExecutionEndEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            input=_text(event.input),
            output=_text(event.output),
        ))

    pipeline.intercept_before_node(context, before_node)
    pipeline.intercept_after_node(context, after_node)

    # LLM call lifecycle

    async def before_llm_call(_: Any, event: ctx.LLMCallContext) -> None:
        await emit(msg.BeforeLLMCallEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            prompt=event.prompt,
            model=event.model.event_string,
            tools=[tool.name for tool in event.tools],
        ))

    async def after_llm_call(_: Any, event: ctx.AfterLLMCallContext) -> None:
        await emit(msg.AfterLLMCallEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            prompt=event.prompt,
            model=event.model.event_string,
            responses=list(event.responses),
        ))

    async def start_llm_streaming(_: Any, event: ctx.LLMCallContext) -> None:
        await emit(msg.StartLLMStreamingEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            prompt=event.prompt,
            model=event.model.event_string,
            tools=[tool.name for tool in event.tools],
        ))

    pipeline.intercept_before_llm_call(context, before_llm_call)
    pipeline.intercept_after_llm_call(context, after_llm_call)
    pipeline.intercept_start_llm_streaming(context, start_llm_streaming)

    # Tool call lifecycle

    async def tool_call(_: Any, event: ctx.ToolCallContext) -> None:
        await emit(msg.ToolCallEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            tool_call_id=event.tool_call_id,
            tool_name=event.tool.name,
            tool_args=event.tool_args,
        ))

    async def tool_validation_error(_: Any, event: ctx.ToolValidationErrorContext) -> None:
        await emit(msg.ToolValidationErrorEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            tool_call_id=event.tool_call_id,
            tool_name=event.tool.name,
            tool_args=event.tool_args,
            error=event.error,
        ))

    async def tool_call_failure(_: Any, event: ctx.ToolCallFailureContext) -> None:
        error = event.error if event.error is not None else RuntimeError("Unknown tool failure")
        await emit(msg.ToolCallFailureEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            tool_call_id=event.tool_call_id,
            tool_name=event.tool.name,
            tool_args=event.tool_args,
            error=AgentError.from_exception(error),
        ))

    async def tool_call_result(_: Any, event: ctx.ToolCallResultContext) -> None:
        await emit(msg.ToolCallResultEvent(
            run_id=event.run_id,
            node_name=event.node_name,
            tool_call_id=event.tool_call_id,
            tool_name=event.tool.name,
            tool_args=event.tool_args,
            result=event.result,
        ))

    pipeline.intercept_tool_call(context, tool_call)
    pipeline.intercept_tool_validation_error(context, tool_validation_error)
    pipeline.intercept_tool_call_failure(context, tool_call_failure)
    pipeline.intercept_tool_call_result(context, tool_call_result)
