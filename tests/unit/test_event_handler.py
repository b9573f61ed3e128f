"""Tests for the event handler feature."""

import pytest

from overture.core.models import ToolDescriptor
from overture.event_handler import HOOKS, EventHandler, EventHandlerConfig, EventHandlerFeature
from overture.pipeline import contexts as ctx
from overture.pipeline.pipeline import AgentPipeline


class TestEventHandlerConfig:
    """Tests for callback registration."""

    def test_callbacks_are_ordered(self):
        config = EventHandlerConfig()
        first = lambda event: None  # noqa: E731
        second = lambda event: None  # noqa: E731

        config.on_before_node(first)
        config.on_before_node(second)

        assert config.callbacks("before_node") == (first, second)
        assert config.callbacks("after_node") == ()

    def test_unknown_hook(self):
        config = EventHandlerConfig()
        with pytest.raises(ValueError):
            config.add_handler("on_everything", lambda event: None)

    def test_every_hook_has_a_registration_method(self):
        config = EventHandlerConfig()
        for hook in HOOKS:
            getattr(config, f"on_{hook}")(lambda event: None)
            assert len(config.callbacks(hook)) == 1


class TestEventHandlerFeature:
    """Tests for the installed feature."""

    @pytest.mark.asyncio
    async def test_all_callbacks_run_in_order(self):
        calls = []

        async def async_callback(event):
            calls.append(("async", event.node_name))

        def configure(config):
            config.on_before_node(lambda event: calls.append(("first", event.node_name)))
            config.on_before_node(async_callback)

        pipeline = AgentPipeline()
        pipeline.install(EventHandlerFeature(), configure)

        await pipeline.on_before_node("agent", "run", "plan")

        assert calls == [("first", "plan"), ("async", "plan")]

    @pytest.mark.asyncio
    async def test_callback_receives_context(self):
        received = []
        pipeline = AgentPipeline()
        pipeline.install(
            EventHandlerFeature(),
            lambda config: config.on_tool_call_result(received.append),
        )

        tool = ToolDescriptor(name="search")
        await pipeline.on_tool_call_result("agent", "run", "node", "c1", tool, {"q": 1}, "found")

        event = received[0]
        assert isinstance(event, ctx.ToolCallResultContext)
        assert event.result == "found"
        assert event.tool.name == "search"

    @pytest.mark.asyncio
    async def test_callback_error_propagates(self):
        def fail(event):
            raise RuntimeError("callback failed")

        pipeline = AgentPipeline()
        pipeline.install(EventHandlerFeature(), lambda config: config.on_agent_finished(fail))

        with pytest.raises(RuntimeError, match="callback failed"):
            await pipeline.on_agent_finished("agent", "run", "strategy", None)

    def test_only_non_empty_hooks_are_registered(self):
        pipeline = AgentPipeline()
        pipeline.install(
            EventHandlerFeature(),
            lambda config: config.on_strategy_started(lambda event: None),
        )

        assert pipeline._strategy_handlers
        assert not pipeline._node_handlers
        assert isinstance(pipeline.feature(EventHandlerFeature.key), EventHandler)
