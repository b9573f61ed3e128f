"""
OpenTelemetry feature.

Maps pipeline hooks to GenAI spans:

- before agent started: agent span (created once per agent) and run span
- node hooks: node span under the run span
- LLM call hooks: inference span under the node span
- tool call hooks: tool span under the node span
- agent finished / run error: close everything under the run, then the run
  span with OK or ERROR
- agent before closed: close everything under the agent, then the agent span
"""

from __future__ import annotations

from typing import Any

import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode

from overture.observability.attributes import Attribute, GenAIKeys, OvertureKeys
from overture.observability.config import INSTRUMENTATION_SCOPE, OpenTelemetryConfig
from overture.observability.events import ChoiceEvent, ExceptionEvent, event_from_message
from overture.observability.processor import SpanProcessor
from overture.observability.registry import SpanRegistry
from overture.observability.span_ids import (
    agent_run_span_id,
    agent_span_id,
    inference_span_id,
    node_span_id,
    tool_span_id,
)
from overture.observability.spans import (
    CreateAgentSpan,
    ExecuteToolSpan,
    InferenceSpan,
    InvokeAgentSpan,
    NodeExecuteSpan,
)
from overture.pipeline import contexts as ctx
from overture.pipeline.feature import AgentFeature, InterceptContext, StorageKey
from overture.pipeline.pipeline import AgentPipeline

logger = structlog.get_logger()


class OpenTelemetry:
    """Installed OpenTelemetry feature: owns the tracer provider and spans."""

    def __init__(
        self,
        config: OpenTelemetryConfig,
        tracer_provider: TracerProvider,
        processor: SpanProcessor,
    ):
        self.config = config
        self.tracer_provider = tracer_provider
        self.processor = processor

    @property
    def registry(self) -> SpanRegistry:
        return self.processor.registry

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.tracer_provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        """End every span still open and shut the provider down."""
        self.processor.end_unfinished_spans()
        self.tracer_provider.shutdown()

    # Agent lifecycle

    def on_before_agent_started(self, event: ctx.AgentStartContext) -> None:
        agent_span = self.processor.get_or_start_span(
            agent_span_id(event.agent_id),
            lambda: CreateAgentSpan(event.agent_id, event.model),
        )
        provider = event.model.provider if event.model is not None else None
        self.processor.start_span(
            InvokeAgentSpan(agent_span, event.run_id, event.strategy_name, provider)
        )

    def on_agent_finished(self, event: ctx.AgentFinishedContext) -> None:
        self.processor.end_unfinished_agent_run_spans(event.agent_id, event.run_id)

        run_span = self.registry.get_span_or_raise(
            agent_run_span_id(event.agent_id, event.run_id), InvokeAgentSpan
        )
        run_span.complete(event.result)
        self.processor.end_span(run_span, StatusCode.OK)

    def on_agent_run_error(self, event: ctx.AgentRunErrorContext) -> None:
        self.processor.end_unfinished_agent_run_spans(event.agent_id, event.run_id)

        run_span = self.registry.get_span_or_raise(
            agent_run_span_id(event.agent_id, event.run_id), InvokeAgentSpan
        )
        run_span.add_event(ExceptionEvent(event.error))
        self.processor.end_span(
            run_span,
            StatusCode.ERROR,
            description=str(event.error),
            attributes=[Attribute(GenAIKeys.ERROR_TYPE, type(event.error).__name__)],
        )

    def on_agent_before_closed(self, event: ctx.AgentBeforeCloseContext) -> None:
        self.processor.end_unfinished_agent_spans(event.agent_id)

        agent_span = self.registry.get_span(agent_span_id(event.agent_id), CreateAgentSpan)
        if agent_span is not None:
            self.processor.end_span(agent_span, StatusCode.OK)
        self.force_flush()

    # Node lifecycle

    def on_before_node(self, event: ctx.NodeBeforeContext) -> None:
        run_span = self.registry.get_span_or_raise(
            agent_run_span_id(event.agent_id, event.run_id), InvokeAgentSpan
        )
        self.processor.start_span(NodeExecuteSpan(run_span, event.node_name))

    def on_after_node(self, event: ctx.NodeAfterContext) -> None:
        node_span = self.registry.get_span_or_raise(
            node_span_id(event.agent_id, event.run_id, event.node_name), NodeExecuteSpan
        )
        self.processor.end_span(node_span, StatusCode.OK)

    # LLM call lifecycle

    def on_before_llm_call(self, event: ctx.LLMCallContext) -> None:
        node_span = self.registry.get_span_or_raise(
            node_span_id(event.agent_id, event.run_id, event.node_name), NodeExecuteSpan
        )
        span = InferenceSpan(
            node_span,
            event.prompt.id,
            event.model,
            temperature=event.prompt.temperature,
            tools=event.tools,
        )
        span.add_events(
            event_from_message(event.model.provider, message)
            for message in event.prompt.messages
        )
        self.processor.start_span(span)

    def on_after_llm_call(self, event: ctx.AfterLLMCallContext) -> None:
        span = self.registry.get_span_or_raise(
            inference_span_id(event.agent_id, event.run_id, event.node_name, event.prompt.id),
            InferenceSpan,
        )
        span.add_events(
            ChoiceEvent(event.model.provider, response, index)
            for index, response in enumerate(event.responses)
        )
        finish_reasons = [r.finish_reason for r in event.responses if r.finish_reason]
        attributes = [Attribute(GenAIKeys.RESPONSE_MODEL, event.model.id)]
        if finish_reasons:
            attributes.append(Attribute(GenAIKeys.RESPONSE_FINISH_REASONS, finish_reasons))
        self.processor.end_span(span, StatusCode.OK, attributes=attributes)

    # Tool call lifecycle

    def _tool_span(self, event: Any) -> ExecuteToolSpan:
        return self.registry.get_span_or_raise(
            tool_span_id(event.agent_id, event.run_id, event.node_name, event.tool.name),
            ExecuteToolSpan,
        )

    def on_tool_call(self, event: ctx.ToolCallContext) -> None:
        node_span = self.registry.get_span_or_raise(
            node_span_id(event.agent_id, event.run_id, event.node_name), NodeExecuteSpan
        )
        self.processor.start_span(
            ExecuteToolSpan(node_span, event.tool, event.tool_args, event.tool_call_id)
        )

    def on_tool_validation_error(self, event: ctx.ToolValidationErrorContext) -> None:
        span = self._tool_span(event)
        self.processor.end_span(
            span,
            StatusCode.ERROR,
            description=event.error,
            attributes=[
                Attribute(GenAIKeys.ERROR_TYPE, "validation_error"),
                Attribute(OvertureKeys.ERROR_MESSAGE, event.error),
            ],
        )

    def on_tool_call_failure(self, event: ctx.ToolCallFailureContext) -> None:
        span = self._tool_span(event)
        attributes = []
        if event.error is not None:
            span.add_event(ExceptionEvent(event.error))
            attributes.append(Attribute(GenAIKeys.ERROR_TYPE, type(event.error).__name__))
        self.processor.end_span(
            span,
            StatusCode.ERROR,
            description=str(event.error) if event.error is not None else None,
            attributes=attributes,
        )

    def on_tool_call_result(self, event: ctx.ToolCallResultContext) -> None:
        span = self._tool_span(event)
        span.set_result(event.result)
        self.processor.end_span(span, StatusCode.OK)


class OpenTelemetryFeature(AgentFeature[OpenTelemetryConfig, OpenTelemetry]):
    """Exports the agent's execution as OpenTelemetry GenAI spans."""

    key = StorageKey("overture-features-opentelemetry", OpenTelemetry)

    def create_initial_config(self) -> OpenTelemetryConfig:
        return OpenTelemetryConfig()

    def install(self, config: OpenTelemetryConfig, pipeline: AgentPipeline) -> None:
        tracer_provider = config.build_tracer_provider()
        tracer = tracer_provider.get_tracer(INSTRUMENTATION_SCOPE, config.service_version)
        processor = SpanProcessor(tracer, verbose=config.verbose, adapters=config.span_adapters)
        feature = OpenTelemetry(config, tracer_provider, processor)
        context = InterceptContext(self, feature)

        pipeline.intercept_before_agent_started(context, OpenTelemetry.on_before_agent_started)
        pipeline.intercept_agent_finished(context, OpenTelemetry.on_agent_finished)
        pipeline.intercept_agent_run_error(context, OpenTelemetry.on_agent_run_error)
        pipeline.intercept_agent_before_closed(context, OpenTelemetry.on_agent_before_closed)

        pipeline.intercept_before_node(context, OpenTelemetry.on_before_node)
        pipeline.intercept_after_node(context, OpenTelemetry.on_after_node)

        pipeline.intercept_before_llm_call(context, OpenTelemetry.on_before_llm_call)
        pipeline.intercept_after_llm_call(context, OpenTelemetry.on_after_llm_call)

        pipeline.intercept_tool_call(context, OpenTelemetry.on_tool_call)
        pipeline.intercept_tool_validation_error(context, OpenTelemetry.on_tool_validation_error)
        pipeline.intercept_tool_call_failure(context, OpenTelemetry.on_tool_call_failure)
        pipeline.intercept_tool_call_result(context, OpenTelemetry.on_tool_call_result)

        logger.info(
            "OpenTelemetry feature installed",
            service=config.service_name,
            verbose=config.verbose,
            exporters=len(config.span_exporters),
        )
