"""Tests for the remote transport and the debugger feature."""

import asyncio
import socket

import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from overture.core.config import DEBUGGER_PORT_ENV_VAR, DEFAULT_DEBUGGER_PORT, get_settings
from overture.core.errors import ConfigurationError
from overture.core.models import AgentError, Prompt
from overture.debugger import Debugger, DebuggerFeature
from overture.observability import OpenTelemetryFeature
from overture.pipeline import messages as msg
from overture.pipeline.messages import decode_message, encode_message
from overture.pipeline.pipeline import AgentPipeline
from overture.remote import (
    ClientConnectionConfig,
    ExecutionTreeBuilder,
    FeatureMessageRemoteClient,
    FeatureMessageRemoteServer,
    FeatureMessageRemoteWriter,
    NodeStatus,
    ServerConnectionConfig,
    parse_sse_stream,
)
from overture.tracing import TracingFeature


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def lines_of(text):
    for line in text.split("\n"):
        yield line


async def collect(iterator):
    return [item async for item in iterator]


class TestMessages:
    """Tests for feature message serialization."""

    def test_decode_restores_type(self):
        event = msg.ToolCallFailureEvent(
            run_id="Y",
            tool_name="search",
            tool_args={"q": 1},
            error=AgentError(message="boom", type="IOError"),
        )

        decoded = decode_message(encode_message(event))

        assert isinstance(decoded, msg.ToolCallFailureEvent)
        assert decoded.error.type == "IOError"
        assert decoded.timestamp == event.timestamp

    def test_unknown_event_id(self):
        with pytest.raises(ValueError):
            decode_message('{"event_id": "Nope", "timestamp": 1}')


class TestConnectionConfig:
    """Tests for connection configs."""

    def test_client_urls(self):
        config = ClientConnectionConfig(host="localhost", port=9000)
        assert config.base_url == "http://localhost:9000"
        assert config.events_url == "http://localhost:9000/events"

    def test_invalid_port(self):
        with pytest.raises(ConfigurationError):
            ServerConnectionConfig(port=0)


class TestSSEParsing:
    """Tests for parse_sse_stream."""

    @pytest.mark.asyncio
    async def test_parses_data_lines(self):
        first = encode_message(msg.AgentBeforeCloseEvent(agent_id="X"))
        second = encode_message(msg.FeatureStringMessage(message="hi"))
        text = f"data: {first}\n\n: ping\n\nevent: message\ndata: {second}\n\n"

        messages = await collect(parse_sse_stream(lines_of(text)))

        assert [type(m) for m in messages] == [msg.AgentBeforeCloseEvent, msg.FeatureStringMessage]

    @pytest.mark.asyncio
    async def test_handles_crlf_and_trailing_event(self):
        data = encode_message(msg.AgentBeforeCloseEvent(agent_id="X"))
        lines = [f"data: {data}\r\n"]

        async def source():
            for line in lines:
                yield line

        messages = await collect(parse_sse_stream(source()))
        assert messages[0].agent_id == "X"


class TestExecutionTreeBuilder:
    """Tests for client-side tree reconstruction."""

    def run_messages(self):
        prompt = Prompt(id="p1")
        return [
            msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="default"),
            msg.NodeExecutionStartEvent(run_id="Y", node_name="N", input="in"),
            msg.BeforeLLMCallEvent(run_id="Y", node_name="N", prompt=prompt, model="openai:gpt-4o"),
            msg.AfterLLMCallEvent(run_id="Y", node_name="N", prompt=prompt, model="openai:gpt-4o"),
            msg.ToolCallEvent(run_id="Y", node_name="N", tool_name="search"),
            msg.ToolCallResultEvent(run_id="Y", node_name="N", tool_name="search", result="ok"),
            msg.NodeExecutionEndEvent(run_id="Y", node_name="N", input="in", output="out"),
            msg.AgentFinishedEvent(agent_id="X", run_id="Y", result="done"),
        ]

    def test_hierarchy_uses_span_ids(self):
        builder = ExecutionTreeBuilder()
        builder.apply_all(self.run_messages())

        assert set(builder.nodes) == {
            "agent.X",
            "agent.X.run.Y",
            "agent.X.run.Y.node.N",
            "agent.X.run.Y.node.N.llm.p1",
            "agent.X.run.Y.node.N.tool.search",
        }
        node = builder.get("agent.X.run.Y.node.N")
        assert [c.name for c in builder.children(node)] == ["p1", "search"]
        assert builder.get("agent.X.run.Y").status is NodeStatus.OK
        assert builder.get("agent.X.run.Y.node.N.tool.search").detail == '"ok"'

    def test_run_error_marks_open_nodes_unfinished(self):
        builder = ExecutionTreeBuilder()
        builder.apply_all([
            msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="default"),
            msg.NodeExecutionStartEvent(run_id="Y", node_name="N", input=""),
            msg.ToolCallEvent(run_id="Y", node_name="N", tool_name="search"),
            msg.AgentRunErrorEvent(agent_id="X", run_id="Y", error=AgentError(message="boom")),
        ])

        assert builder.get("agent.X.run.Y.node.N").status is NodeStatus.UNFINISHED
        assert builder.get("agent.X.run.Y.node.N.tool.search").status is NodeStatus.UNFINISHED
        run = builder.get("agent.X.run.Y")
        assert run.status is NodeStatus.ERROR
        assert run.detail == "boom"
        assert builder.get("agent.X").status is NodeStatus.RUNNING

    def test_tool_without_node_attaches_to_run(self):
        builder = ExecutionTreeBuilder()
        builder.apply_all([
            msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="default"),
            msg.ToolCallEvent(run_id="Y", tool_name="search"),
        ])

        assert builder.get("agent.X.run.Y.tool.search").parent_id == "agent.X.run.Y"

    def test_tool_result_uses_value_renderer(self):
        builder = ExecutionTreeBuilder()
        builder.apply_all([
            msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="default"),
            msg.ToolCallEvent(run_id="Y", tool_name="search"),
            msg.ToolCallResultEvent(run_id="Y", tool_name="search", result={"hits": [1, 2]}),
        ])

        assert builder.get("agent.X.run.Y.tool.search").detail == '{"hits":[1,2]}'

    def test_unknown_run_is_ignored(self):
        builder = ExecutionTreeBuilder()
        builder.apply(msg.NodeExecutionStartEvent(run_id="missing", node_name="N", input=""))
        assert builder.nodes == {}

    def test_to_dict(self):
        builder = ExecutionTreeBuilder()
        builder.apply_all(self.run_messages())

        (root,) = builder.to_dict()
        assert root["id"] == "agent.X"
        assert root["children"][0]["type"] == "run"
        assert root["children"][0]["children"][0]["name"] == "N"


class TestRemoteServer:
    """Tests for the remote server."""

    def test_health(self):
        server = FeatureMessageRemoteServer(ServerConnectionConfig(port=free_port()))
        client = TestClient(server.app)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "subscribers": 0, "buffered_messages": 0}

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_replay(self):
        server = FeatureMessageRemoteServer(ServerConnectionConfig(replay_buffer_size=2))
        for agent_id in ("a", "b", "c"):
            await server.broadcast(msg.AgentBeforeCloseEvent(agent_id=agent_id))

        queue = server.subscribe()

        replayed = [decode_message(queue.get_nowait()).agent_id for _ in range(queue.qsize())]
        assert replayed == ["b", "c"]
        await server.wait_for_connection(timeout=0.1)

    @pytest.mark.asyncio
    async def test_wait_for_connection_times_out(self):
        server = FeatureMessageRemoteServer()
        with pytest.raises(asyncio.TimeoutError):
            await server.wait_for_connection(timeout=0.01)

    @pytest.mark.asyncio
    async def test_stream_end_to_end(self):
        port = free_port()
        writer = FeatureMessageRemoteWriter(ServerConnectionConfig(port=port))
        await writer.initialize()

        try:
            await writer.process_message(msg.AgentStartedEvent(agent_id="X", run_id="Y", strategy_name="s"))

            client = FeatureMessageRemoteClient(ClientConnectionConfig(port=port))
            health = await client.health_check()
            assert health["status"] == "ok"

            received = asyncio.create_task(collect(client.events()))
            await writer.server.wait_for_connection(timeout=5)
            await writer.process_message(msg.AgentBeforeCloseEvent(agent_id="X"))
        finally:
            await writer.close()

        messages = await asyncio.wait_for(received, timeout=5)
        await client.close()

        assert [m.event_id for m in messages] == ["AgentStartedEvent", "AgentBeforeCloseEvent"]
        assert not writer.is_open


class TestRemoteClient:
    """Tests for the remote client against a mocked transport."""

    @pytest.mark.asyncio
    async def test_events_from_stream(self):
        body = "".join(
            f"data: {encode_message(msg.AgentBeforeCloseEvent(agent_id=a))}\n\n" for a in "xy"
        )

        def handler(request):
            assert request.url.path == "/events"
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = FeatureMessageRemoteClient(ClientConnectionConfig(), http_client=http_client)

        messages = await collect(client.events())
        await http_client.aclose()

        assert [m.agent_id for m in messages] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_http_error(self):
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        client = FeatureMessageRemoteClient(http_client=http_client)

        with pytest.raises(httpx.HTTPStatusError):
            await client.health_check()
        await http_client.aclose()


class TestDebuggerFeature:
    """Tests for the debugger feature installation."""

    @pytest.fixture(autouse=True)
    def clear_settings_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_port_from_config(self, monkeypatch):
        monkeypatch.setenv(DEBUGGER_PORT_ENV_VAR, "6000")
        pipeline = AgentPipeline()
        pipeline.install(DebuggerFeature(), lambda config: config.set_port(7000))

        debugger = pipeline.feature_or_raise(DebuggerFeature.key)
        assert isinstance(debugger, Debugger)
        assert debugger.port == 7000

    def test_port_from_env(self, monkeypatch):
        monkeypatch.setenv(DEBUGGER_PORT_ENV_VAR, "6000")
        pipeline = AgentPipeline()
        pipeline.install(DebuggerFeature())

        assert pipeline.feature_or_raise(DebuggerFeature.key).port == 6000

    def test_default_port(self, monkeypatch):
        monkeypatch.delenv(DEBUGGER_PORT_ENV_VAR, raising=False)
        pipeline = AgentPipeline()
        config = pipeline.install(DebuggerFeature())

        assert pipeline.feature_or_raise(DebuggerFeature.key).port == DEFAULT_DEBUGGER_PORT
        assert len(config.message_processors) == 1
        assert isinstance(config.message_processors[0], FeatureMessageRemoteWriter)

    def test_invalid_port_fails_at_install(self, monkeypatch):
        monkeypatch.setenv(DEBUGGER_PORT_ENV_VAR, "not-a-port")
        pipeline = AgentPipeline()

        with pytest.raises(ConfigurationError, match=DEBUGGER_PORT_ENV_VAR):
            pipeline.install(DebuggerFeature())

        assert pipeline.registered_features == {}
        assert pipeline.feature(DebuggerFeature.key) is None

    @pytest.mark.parametrize("value", ["not-a-port", "70000"])
    def test_invalid_env_port_message_names_variable(self, monkeypatch, value):
        monkeypatch.setenv(DEBUGGER_PORT_ENV_VAR, value)
        pipeline = AgentPipeline()

        with pytest.raises(ConfigurationError) as exc_info:
            pipeline.install(DebuggerFeature())

        message = str(exc_info.value)
        assert f"environment variable {DEBUGGER_PORT_ENV_VAR}" in message
        assert "validation error" not in message

    def test_other_features_ignore_debugger_port(self, monkeypatch):
        monkeypatch.setenv(DEBUGGER_PORT_ENV_VAR, "not-a-port")
        pipeline = AgentPipeline()

        pipeline.install(
            OpenTelemetryFeature(),
            lambda config: config.add_span_exporter(InMemorySpanExporter(), batch=False),
        )
        pipeline.install(TracingFeature())

        assert pipeline.feature(OpenTelemetryFeature.key) is not None
        assert pipeline.feature(TracingFeature.key) is not None
