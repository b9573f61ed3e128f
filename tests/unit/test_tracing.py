"""Tests for the tracing feature and trace writers."""

import pytest

from overture.core.errors import ConfigurationError
from overture.core.models import AgentError, LLModel, Message, Prompt, ToolDescriptor
from overture.pipeline import messages as msg
from overture.pipeline.pipeline import AgentPipeline
from overture.pipeline.processor import FeatureMessageProcessor
from overture.tracing import (
    TraceFeatureMessageFileWriter,
    TraceFeatureMessageLogWriter,
    TracingFeature,
    trace_string,
)

MODEL = LLModel(provider="openai", id="gpt-4o")
SEARCH = ToolDescriptor(name="search")


class FakeLogger:
    def __init__(self):
        self.lines = []

    def info(self, line):
        self.lines.append(("info", line))

    def debug(self, line):
        self.lines.append(("debug", line))


class CollectingProcessor(FeatureMessageProcessor):
    def __init__(self):
        super().__init__()
        self.messages = []

    async def process_message(self, message):
        self.messages.append(message)


class TestTraceString:
    """Tests for trace line formatting."""

    def test_agent_started(self):
        line = trace_string(msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="Z"))
        assert line == "AgentStartedEvent (agent id: X, run id: Y, strategy: Z)"

    def test_agent_run_error(self):
        event = msg.AgentRunErrorEvent(
            agent_id="X", run_id="Y", error=AgentError(message="boom")
        )
        assert trace_string(event) == "AgentRunErrorEvent (agent id: X, run id: Y, error: boom)"

    def test_node_events(self):
        start = msg.NodeExecutionStartEvent(run_id="Y", node_name="N", input="in")
        end = msg.NodeExecutionEndEvent(run_id="Y", node_name="N", input="in", output="out")

        assert trace_string(start) == "NodeExecutionStartEvent (run id: Y, node: N, input: in)"
        assert trace_string(end) == (
            "NodeExecutionEndEvent (run id: Y, node: N, input: in, output: out)"
        )

    def test_tool_call_renders_args(self):
        event = msg.ToolCallEvent(run_id="Y", tool_name="search", tool_args={"q": "x", "n": 2})
        assert trace_string(event) == (
            'ToolCallEvent (run id: Y, tool: search, tool args: {"q":"x","n":2})'
        )

    def test_llm_call_lists_tools(self):
        event = msg.BeforeLLMCallEvent(
            run_id="Y",
            prompt=Prompt(id="p", messages=[Message.user("hi")]),
            model="openai:gpt-4o",
            tools=["search", "calc"],
        )
        line = trace_string(event)
        assert line.startswith("BeforeLLMCallEvent (run id: Y, prompt: {")
        assert line.endswith("model: openai:gpt-4o, tools: [search, calc])")

    def test_string_message(self):
        line = trace_string(msg.FeatureStringMessage(message="hello"))
        assert line == "Feature string message (message: hello)"

    def test_fallbacks(self):
        class CustomEvent(msg.FeatureEvent):
            pass

        assert trace_string(CustomEvent()) == "Feature event"
        assert trace_string(msg.FeatureMessage()) == "Feature message"


class TestLogWriter:
    """Tests for TraceFeatureMessageLogWriter."""

    @pytest.mark.asyncio
    async def test_writes_through_injected_logger(self):
        logger = FakeLogger()
        writer = TraceFeatureMessageLogWriter(logger)

        await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))

        assert logger.lines == [("info", "AgentBeforeCloseEvent (agent id: X)")]

    @pytest.mark.asyncio
    async def test_level_and_custom_format(self):
        logger = FakeLogger()
        writer = TraceFeatureMessageLogWriter(
            logger, level="DEBUG", format=lambda m: f"custom {m.event_id}"
        )

        await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))

        assert logger.lines == [("debug", "custom AgentBeforeCloseEvent")]

    def test_invalid_level(self):
        with pytest.raises(ConfigurationError):
            TraceFeatureMessageLogWriter(FakeLogger(), level="verbose")


class TestFileWriter:
    """Tests for TraceFeatureMessageFileWriter."""

    @pytest.mark.asyncio
    async def test_writes_one_line_per_message(self, tmp_path):
        path = tmp_path / "traces" / "run.log"
        writer = TraceFeatureMessageFileWriter(path)

        async with writer:
            await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))
            await writer.process_message(msg.FeatureStringMessage(message="done"))

        assert path.read_text().splitlines() == [
            "AgentBeforeCloseEvent (agent id: X)",
            "Feature string message (message: done)",
        ]

    @pytest.mark.asyncio
    async def test_truncate(self, tmp_path):
        path = tmp_path / "run.log"
        path.write_text("old\n")

        async with TraceFeatureMessageFileWriter(path, append=False) as writer:
            await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))

        assert path.read_text() == "AgentBeforeCloseEvent (agent id: X)\n"

    @pytest.mark.asyncio
    async def test_write_before_open_fails(self, tmp_path):
        writer = TraceFeatureMessageFileWriter(tmp_path / "run.log")
        with pytest.raises(RuntimeError):
            await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))


class TestTracingFeature:
    """Tests for the tracing feature installed on a pipeline."""

    @pytest.mark.asyncio
    async def test_full_run(self):
        processor = CollectingProcessor()
        pipeline = AgentPipeline()
        pipeline.install(TracingFeature(), lambda c: c.add_message_processor(processor))
        await pipeline.prepare_features()

        prompt = Prompt(id="p1", messages=[Message.user("hi")])
        await pipeline.on_before_agent_started("X", "Y", "default", MODEL)
        await pipeline.on_strategy_started("X", "Y", "default")
        await pipeline.on_before_node("X", "Y", "N", "input")
        await pipeline.on_before_llm_call("X", "Y", "N", prompt, MODEL, [SEARCH])
        await pipeline.on_after_llm_call("X", "Y", "N", prompt, MODEL, [Message.assistant("ok")])
        await pipeline.on_tool_call("X", "Y", "N", "c1", SEARCH, {"q": "x"})
        await pipeline.on_tool_call_result("X", "Y", "N", "c1", SEARCH, {"q": "x"}, "found")
        await pipeline.on_after_node("X", "Y", "N", "input", "output")
        await pipeline.on_strategy_finished("X", "Y", "default", "done")
        await pipeline.on_agent_finished("X", "Y", "default", "done")
        await pipeline.on_agent_before_closed("X")
        await pipeline.close()

        assert [m.event_id for m in processor.messages] == [
            "AgentStartedEvent",
            "StrategyStartEvent",
            "NodeExecutionStartEvent",
            "BeforeLLMCallEvent",
            "AfterLLMCallEvent",
            "ToolCallEvent",
            "ToolCallResultEvent",
            "NodeExecutionEndEvent",
            "StrategyFinishedEvent",
            "AgentFinishedEvent",
            "AgentBeforeCloseEvent",
        ]
        before_llm = processor.messages[3]
        assert before_llm.model == "openai:gpt-4o"
        assert before_llm.tools == ["search"]
        assert before_llm.node_name == "N"
        assert processor.messages[-2].result == '"done"'

    @pytest.mark.asyncio
    async def test_payloads_share_one_renderer(self):
        processor = CollectingProcessor()
        pipeline = AgentPipeline()
        pipeline.install(TracingFeature(), lambda c: c.add_message_processor(processor))
        await pipeline.prepare_features()

        await pipeline.on_before_node("X", "Y", "N", "hello")
        await pipeline.on_tool_call("X", "Y", "N", "c1", SEARCH, "hello")
        await pipeline.on_after_node("X", "Y", "N", "hello", {"answer": 42})

        node_start, tool_call, node_end = (trace_string(m) for m in processor.messages)
        assert node_start == 'NodeExecutionStartEvent (run id: Y, node: N, input: "hello")'
        assert tool_call == 'ToolCallEvent (run id: Y, tool: search, tool args: "hello")'
        assert node_end == (
            'NodeExecutionEndEvent (run id: Y, node: N, input: "hello", output: {"answer":42})'
        )

    @pytest.mark.asyncio
    async def test_errors_are_serialized(self):
        processor = CollectingProcessor()
        pipeline = AgentPipeline()
        pipeline.install(TracingFeature(), lambda c: c.add_message_processor(processor))
        await pipeline.prepare_features()

        await pipeline.on_agent_run_error("X", "Y", "default", ValueError("bad input"))
        await pipeline.on_tool_call_failure("X", "Y", "N", None, SEARCH, {}, TimeoutError("slow"))

        run_error, tool_failure = processor.messages
        assert run_error.error.type == "ValueError"
        assert run_error.error.message == "bad input"
        assert tool_failure.error.type == "TimeoutError"

    @pytest.mark.asyncio
    async def test_message_filter(self):
        processor = CollectingProcessor()

        def configure(config):
            config.add_message_processor(processor)
            config.message_filter = lambda m: isinstance(m, msg.AgentStartedEvent)

        pipeline = AgentPipeline()
        pipeline.install(TracingFeature(), configure)
        await pipeline.prepare_features()

        await pipeline.on_before_agent_started("X", "Y", "default")
        await pipeline.on_before_node("X", "Y", "N")

        assert [m.event_id for m in processor.messages] == ["AgentStartedEvent"]

    @pytest.mark.asyncio
    async def test_closed_processor_is_skipped(self):
        processor = CollectingProcessor()
        pipeline = AgentPipeline()
        pipeline.install(TracingFeature(), lambda c: c.add_message_processor(processor))

        await pipeline.on_before_agent_started("X", "Y", "default")

        assert processor.messages == []
