#!/usr/bin/env python3
"""
Basic usage examples for Overture.

Drives a pipeline by hand the way an execution engine would, with the
trace log, user callbacks and OpenTelemetry export installed.
"""

import asyncio

from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from overture import (
    AgentPipeline,
    EventHandlerFeature,
    OpenTelemetryFeature,
    TracingFeature,
)
from overture.core.models import LLModel, Message, Prompt, ToolDescriptor
from overture.observability import LangfuseSpanAdapter
from overture.tracing import TraceFeatureMessageLogWriter
from overture.utils.logging import get_logger, setup_logging

MODEL = LLModel(provider="openai", id="gpt-4o")
WEATHER = ToolDescriptor(name="weather", description="Current weather for a city")


def build_pipeline() -> AgentPipeline:
    """Install the tracing, callback and OpenTelemetry features."""
    pipeline = AgentPipeline()

    logger = get_logger("overture.trace")
    pipeline.install(
        TracingFeature(),
        lambda config: config.add_message_processor(TraceFeatureMessageLogWriter(logger)),
    )

    def configure_events(config):
        config.on_tool_call_result(
            lambda event: print(f"  -> {event.tool.name} returned {event.result!r}")
        )

    pipeline.install(EventHandlerFeature(), configure_events)

    def configure_telemetry(config):
        config.set_service_info("weather-agent", "0.1.0")
        config.add_span_exporter(ConsoleSpanExporter(), batch=False)
        config.add_span_adapter(LangfuseSpanAdapter())

    pipeline.install(OpenTelemetryFeature(), configure_telemetry)
    return pipeline


async def simulated_run():
    """Report one agent run with an LLM call and a tool call."""
    print("\n=== Simulated Agent Run ===\n")

    pipeline = build_pipeline()
    await pipeline.prepare_features()

    prompt = Prompt(
        id="prompt-1",
        messages=[
            Message.system("You answer weather questions."),
            Message.user("What's the weather in Lisbon?"),
        ],
        temperature=0.3,
    )

    await pipeline.on_before_agent_started("weather-agent", "run-1", "single_run", MODEL)
    await pipeline.on_strategy_started("weather-agent", "run-1", "single_run")

    await pipeline.on_before_node("weather-agent", "run-1", "call_llm", prompt.messages[-1].content)
    await pipeline.on_before_llm_call("weather-agent", "run-1", "call_llm", prompt, MODEL, [WEATHER])
    await pipeline.on_after_llm_call(
        "weather-agent", "run-1", "call_llm", prompt, MODEL,
        [Message.tool_call("call-1", "weather", '{"city": "Lisbon"}')],
    )
    await pipeline.on_tool_call(
        "weather-agent", "run-1", "call_llm", "call-1", WEATHER, {"city": "Lisbon"}
    )
    await pipeline.on_tool_call_result(
        "weather-agent", "run-1", "call_llm", "call-1", WEATHER, {"city": "Lisbon"}, "21C, sunny"
    )
    await pipeline.on_after_node("weather-agent", "run-1", "call_llm", "Lisbon", "21C, sunny")

    await pipeline.on_strategy_finished("weather-agent", "run-1", "single_run", "21C, sunny")
    await pipeline.on_agent_finished("weather-agent", "run-1", "single_run", "21C, sunny")
    await pipeline.on_agent_before_closed("weather-agent")

    await pipeline.close()


async def failed_run():
    """A run that fails mid-node: open spans are closed before the run span."""
    print("\n=== Failed Agent Run ===\n")

    pipeline = build_pipeline()
    await pipeline.prepare_features()

    await pipeline.on_before_agent_started("weather-agent", "run-2", "single_run", MODEL)
    await pipeline.on_before_node("weather-agent", "run-2", "call_llm")
    await pipeline.on_agent_run_error(
        "weather-agent", "run-2", "single_run", TimeoutError("model did not respond")
    )
    await pipeline.on_agent_before_closed("weather-agent")

    await pipeline.close()


async def main():
    setup_logging(level="INFO", json_format=False)
    await simulated_run()
    await failed_run()


if __name__ == "__main__":
    asyncio.run(main())
