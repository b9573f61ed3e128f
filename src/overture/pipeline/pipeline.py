"""
Agent feature pipeline.

The pipeline is the single point where the execution engine reports
lifecycle events. Features install themselves by registering handlers for
the hooks they care about; each ``on_*`` call then runs every registered
handler for that hook, one after another.

Handler maps are plain dicts, which keep insertion order. A feature's entry
in a family map is created the first time it intercepts a hook of that
family, which happens during its own ``install``. Dispatch therefore follows
feature installation order.

Handlers receive ``(feature_impl, context)`` and may be plain functions or
coroutines. Exceptions raised by a handler propagate to the caller.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import replace
from typing import Any, Callable, Iterable, TypeVar

import structlog

from overture.core.errors import FeatureCloseError
from overture.core.models import LLModel, Message, Prompt, ToolDescriptor
from overture.pipeline.contexts import (
    AfterLLMCallContext,
    AgentBeforeCloseContext,
    AgentEnvironmentContext,
    AgentFinishedContext,
    AgentRunErrorContext,
    AgentStartContext,
    HookContext,
    LLMCallContext,
    NodeAfterContext,
    NodeBeforeContext,
    StrategyFinishedContext,
    StrategyStartContext,
    ToolCallContext,
    ToolCallFailureContext,
    ToolCallResultContext,
    ToolValidationErrorContext,
)
from overture.pipeline.feature import (
    AgentFeature,
    FeatureConfig,
    FeatureStorage,
    InterceptContext,
    StorageKey,
)
from overture.pipeline.handlers import (
    AgentHandlers,
    BoundHandler,
    LLMCallHandlers,
    NodeHandlers,
    StrategyHandlers,
    ToolCallHandlers,
)
from overture.pipeline.processor import FeatureMessageProcessor

logger = structlog.get_logger()

# Upper bound on message processors initialized at the same time
FEATURE_PREPARE_CONCURRENCY = 5

ConfigT = TypeVar("ConfigT", bound=FeatureConfig)
FeatureT = TypeVar("FeatureT")
FamilyT = TypeVar("FamilyT")

Handler = Callable[[Any, Any], Any]
EnvironmentTransformer = Callable[[Any, AgentEnvironmentContext, Any], Any]


class AgentPipeline:
    """Registry of feature handlers for one agent instance."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._configs = FeatureStorage()
        self._feature_impls = FeatureStorage()

        self._agent_handlers: dict[StorageKey[Any], AgentHandlers] = {}
        self._strategy_handlers: dict[StorageKey[Any], StrategyHandlers] = {}
        self._node_handlers: dict[StorageKey[Any], NodeHandlers] = {}
        self._llm_call_handlers: dict[StorageKey[Any], LLMCallHandlers] = {}
        self._tool_call_handlers: dict[StorageKey[Any], ToolCallHandlers] = {}

    # Installation

    def install(
        self,
        feature: AgentFeature[ConfigT, FeatureT],
        configure: Callable[[ConfigT], None] | None = None,
    ) -> ConfigT:
        """
        Install a feature.

        Creates the feature's configuration, applies ``configure`` to it, lets
        the feature register its handlers and stores the configuration under
        the feature's key. Installing the same feature again replaces the
        stored configuration and the handlers it re-registers.

        Returns:
            The applied configuration
        """
        config = feature.create_initial_config()
        if configure is not None:
            configure(config)

        feature.install(config, self)
        self._configs.set(feature.key, config)

        logger.debug(
            "Feature installed",
            feature=feature.key.name,
            processors=len(config.message_processors),
        )
        return config

    @property
    def registered_features(self) -> dict[StorageKey[Any], FeatureConfig]:
        """Installed features and their configuration, in installation order."""
        return dict(self._configs.items())

    def feature(self, key: StorageKey[FeatureT]) -> FeatureT | None:
        """Return the feature instance installed under ``key``, if any."""
        return self._feature_impls.get(key)

    def feature_or_raise(self, key: StorageKey[FeatureT]) -> FeatureT:
        return self._feature_impls.get_or_raise(key)

    # Message processors

    @property
    def message_processors(self) -> list[FeatureMessageProcessor]:
        processors: list[FeatureMessageProcessor] = []
        for config in self._configs.values():
            processors.extend(config.message_processors)
        return processors

    async def prepare_features(self) -> None:
        """Initialize every installed feature's message processors."""
        semaphore = asyncio.Semaphore(FEATURE_PREPARE_CONCURRENCY)

        async def initialize(processor: FeatureMessageProcessor) -> None:
            async with semaphore:
                await processor.initialize()

        processors = self.message_processors
        await asyncio.gather(*(initialize(p) for p in processors))
        logger.debug("Features prepared", processors=len(processors))

    async def close_features_stream_providers(self) -> None:
        """
        Close every message processor.

        A processor failing to close does not stop the others from closing;
        the failures are raised together once all processors were visited.

        Raises:
            FeatureCloseError: If one or more processors failed to close
        """
        errors: list[BaseException] = []
        for processor in self.message_processors:
            try:
                await processor.close()
            except Exception as e:
                logger.error(
                    "Failed to close message processor",
                    processor=type(processor).__name__,
                    error=str(e),
                )
                errors.append(e)

        if errors:
            raise FeatureCloseError(errors)

    async def close(self) -> None:
        """Close all message processors and release every handler."""
        try:
            await self.close_features_stream_providers()
        finally:
            with self._lock:
                self._agent_handlers.clear()
                self._strategy_handlers.clear()
                self._node_handlers.clear()
                self._llm_call_handlers.clear()
                self._tool_call_handlers.clear()
            self._configs.clear()
            self._feature_impls.clear()

    # Registration helpers

    def _intercept(
        self,
        handlers: dict[StorageKey[Any], FamilyT],
        family: Callable[[], FamilyT],
        context: InterceptContext[Any],
        slot: str,
        fn: Callable[..., Any],
    ) -> None:
        bound = BoundHandler(context.feature, context.feature_impl, fn)
        key = context.feature.key
        with self._lock:
            existing = handlers.get(key)
            if existing is None:
                existing = handlers[key] = family()
            setattr(existing, slot, bound)
        self._feature_impls.set(key, context.feature_impl)

    def _handlers_for(
        self,
        handlers: dict[StorageKey[Any], Any],
        slot: str,
    ) -> list[BoundHandler]:
        with self._lock:
            families = list(handlers.values())
        return [h for h in (getattr(f, slot) for f in families) if h is not None]

    async def _dispatch(
        self,
        handlers: dict[StorageKey[Any], Any],
        slot: str,
        context: HookContext,
    ) -> None:
        for handler in self._handlers_for(handlers, slot):
            await handler(replace(context, feature=handler.feature))

    # Agent lifecycle

    def intercept_before_agent_started(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._agent_handlers, AgentHandlers, context, "before_agent_started", handler)

    def intercept_agent_finished(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._agent_handlers, AgentHandlers, context, "agent_finished", handler)

    def intercept_agent_run_error(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._agent_handlers, AgentHandlers, context, "agent_run_error", handler)

    def intercept_agent_before_closed(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._agent_handlers, AgentHandlers, context, "agent_before_closed", handler)

    def intercept_environment_created(
        self, context: InterceptContext[FeatureT], transformer: EnvironmentTransformer
    ) -> None:
        """Register a transformer applied to the agent's tool environment."""
        self._intercept(
            self._agent_handlers, AgentHandlers, context, "environment_transformer", transformer
        )

    async def on_before_agent_started(
        self,
        agent_id: str,
        run_id: str,
        strategy_name: str,
        model: LLModel | None = None,
    ) -> None:
        context = AgentStartContext(agent_id, run_id, strategy_name, model)
        await self._dispatch(self._agent_handlers, "before_agent_started", context)

    async def on_agent_finished(
        self,
        agent_id: str,
        run_id: str,
        strategy_name: str,
        result: Any = None,
    ) -> None:
        context = AgentFinishedContext(agent_id, run_id, strategy_name, result)
        await self._dispatch(self._agent_handlers, "agent_finished", context)

    async def on_agent_run_error(
        self,
        agent_id: str,
        run_id: str,
        strategy_name: str,
        error: BaseException,
    ) -> None:
        context = AgentRunErrorContext(agent_id, run_id, strategy_name, error)
        await self._dispatch(self._agent_handlers, "agent_run_error", context)

    async def on_agent_before_closed(self, agent_id: str) -> None:
        context = AgentBeforeCloseContext(agent_id)
        await self._dispatch(self._agent_handlers, "agent_before_closed", context)

    async def transform_environment(
        self,
        agent_id: str,
        strategy_name: str,
        environment: Any,
    ) -> Any:
        """Pass the environment through every registered transformer in order."""
        context = AgentEnvironmentContext(agent_id, strategy_name)
        for handler in self._handlers_for(self._agent_handlers, "environment_transformer"):
            environment = await handler(replace(context, feature=handler.feature), environment)
        return environment

    # Strategy lifecycle

    def intercept_strategy_started(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._strategy_handlers, StrategyHandlers, context, "strategy_started", handler)

    def intercept_strategy_finished(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._strategy_handlers, StrategyHandlers, context, "strategy_finished", handler)

    async def on_strategy_started(self, agent_id: str, run_id: str, strategy_name: str) -> None:
        context = StrategyStartContext(agent_id, run_id, strategy_name)
        await self._dispatch(self._strategy_handlers, "strategy_started", context)

    async def on_strategy_finished(
        self,
        agent_id: str,
        run_id: str,
        strategy_name: str,
        result: Any = None,
    ) -> None:
        context = StrategyFinishedContext(agent_id, run_id, strategy_name, result)
        await self._dispatch(self._strategy_handlers, "strategy_finished", context)

    # Node lifecycle

    def intercept_before_node(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._node_handlers, NodeHandlers, context, "before_node", handler)

    def intercept_after_node(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._node_handlers, NodeHandlers, context, "after_node", handler)

    async def on_before_node(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        input: Any = None,
    ) -> None:
        context = NodeBeforeContext(agent_id, run_id, node_name, input)
        await self._dispatch(self._node_handlers, "before_node", context)

    async def on_after_node(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        input: Any = None,
        output: Any = None,
    ) -> None:
        context = NodeAfterContext(agent_id, run_id, node_name, input, output)
        await self._dispatch(self._node_handlers, "after_node", context)

    # LLM call lifecycle

    def intercept_before_llm_call(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._llm_call_handlers, LLMCallHandlers, context, "before_llm_call", handler)

    def intercept_after_llm_call(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._llm_call_handlers, LLMCallHandlers, context, "after_llm_call", handler)

    def intercept_start_llm_streaming(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(
            self._llm_call_handlers, LLMCallHandlers, context, "start_llm_streaming", handler
        )

    async def on_before_llm_call(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        prompt: Prompt,
        model: LLModel,
        tools: Iterable[ToolDescriptor] = (),
    ) -> None:
        context = LLMCallContext(agent_id, run_id, node_name, prompt, model, tuple(tools))
        await self._dispatch(self._llm_call_handlers, "before_llm_call", context)

    async def on_after_llm_call(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        prompt: Prompt,
        model: LLModel,
        responses: Iterable[Message],
        tools: Iterable[ToolDescriptor] = (),
    ) -> None:
        context = AfterLLMCallContext(
            agent_id, run_id, node_name, prompt, model, tuple(tools), tuple(responses)
        )
        await self._dispatch(self._llm_call_handlers, "after_llm_call", context)

    async def on_start_llm_streaming(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        prompt: Prompt,
        model: LLModel,
        tools: Iterable[ToolDescriptor] = (),
    ) -> None:
        context = LLMCallContext(agent_id, run_id, node_name, prompt, model, tuple(tools))
        await self._dispatch(self._llm_call_handlers, "start_llm_streaming", context)

    # Tool call lifecycle

    def intercept_tool_call(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(self._tool_call_handlers, ToolCallHandlers, context, "tool_call", handler)

    def intercept_tool_validation_error(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(
            self._tool_call_handlers, ToolCallHandlers, context, "tool_validation_error", handler
        )

    def intercept_tool_call_failure(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(
            self._tool_call_handlers, ToolCallHandlers, context, "tool_call_failure", handler
        )

    def intercept_tool_call_result(
        self, context: InterceptContext[FeatureT], handler: Handler
    ) -> None:
        self._intercept(
            self._tool_call_handlers, ToolCallHandlers, context, "tool_call_result", handler
        )

    async def on_tool_call(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        tool_call_id: str | None,
        tool: ToolDescriptor,
        tool_args: Any = None,
    ) -> None:
        context = ToolCallContext(agent_id, run_id, node_name, tool_call_id, tool, tool_args)
        await self._dispatch(self._tool_call_handlers, "tool_call", context)

    async def on_tool_validation_error(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        tool_call_id: str | None,
        tool: ToolDescriptor,
        tool_args: Any,
        error: str,
    ) -> None:
        context = ToolValidationErrorContext(
            agent_id, run_id, node_name, tool_call_id, tool, tool_args, error
        )
        await self._dispatch(self._tool_call_handlers, "tool_validation_error", context)

    async def on_tool_call_failure(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        tool_call_id: str | None,
        tool: ToolDescriptor,
        tool_args: Any,
        error: BaseException,
    ) -> None:
        context = ToolCallFailureContext(
            agent_id, run_id, node_name, tool_call_id, tool, tool_args, error
        )
        await self._dispatch(self._tool_call_handlers, "tool_call_failure", context)

    async def on_tool_call_result(
        self,
        agent_id: str,
        run_id: str,
        node_name: str,
        tool_call_id: str | None,
        tool: ToolDescriptor,
        tool_args: Any,
        result: Any,
    ) -> None:
        context = ToolCallResultContext(
            agent_id, run_id, node_name, tool_call_id, tool, tool_args, result
        )
        await self._dispatch(self._tool_call_handlers, "tool_call_result", context)
