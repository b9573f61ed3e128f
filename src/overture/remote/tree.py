"""
Execution tree reconstruction.

Rebuilds the agent → run → node → tool/LLM hierarchy from a stream of
feature messages, using the same span ids the OpenTelemetry feature uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import structlog

from overture.observability.span_ids import (
    SpanSegment,
    agent_run_span_id,
    agent_span_id,
    child_span_id,
    is_descendant_id,
)
from overture.observability.values import value_string
from overture.pipeline import messages as m

logger = structlog.get_logger()


class NodeStatus(str, Enum):
    RUNNING = "running"
    OK = "ok"
    ERROR = "error"
    UNFINISHED = "unfinished"


@dataclass
class ExecutionNode:
    """One level of the execution tree."""

    span_id: str
    segment: SpanSegment
    name: str
    parent_id: str | None = None
    status: NodeStatus = NodeStatus.RUNNING
    detail: str | None = None
    started_at: int | None = None
    ended_at: int | None = None
    children: list[str] = field(default_factory=list)

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return self.ended_at - self.started_at


class ExecutionTreeBuilder:
    """
    Accumulates feature messages into an execution tree.

    Messages that reference a run the builder has not seen start for are
    logged and ignored.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, ExecutionNode] = {}
        self._run_agents: dict[str, str] = {}

    @property
    def roots(self) -> list[ExecutionNode]:
        return [node for node in self.nodes.values() if node.parent_id is None]

    def get(self, span_id: str) -> ExecutionNode | None:
        return self.nodes.get(span_id)

    def children(self, node: ExecutionNode) -> list[ExecutionNode]:
        return [self.nodes[child_id] for child_id in node.children]

    def apply_all(self, messages: Iterable[m.FeatureMessage]) -> None:
        for message in messages:
            self.apply(message)

    def apply(self, message: m.FeatureMessage) -> None:
        """Update the tree with one message."""
        ts = message.timestamp

        if isinstance(message, m.AgentStartedEvent):
            self._run_agents[message.run_id] = message.agent_id
            agent_id = agent_span_id(message.agent_id)
            self._open(agent_id, None, SpanSegment.AGENT, message.agent_id, ts)
            run = self._open(
                agent_run_span_id(message.agent_id, message.run_id),
                agent_id,
                SpanSegment.RUN,
                message.run_id,
                ts,
            )
            run.detail = message.strategy_name

        elif isinstance(message, m.AgentFinishedEvent):
            run_id = agent_run_span_id(message.agent_id, message.run_id)
            self._close_descendants(run_id, ts)
            self._close(run_id, NodeStatus.OK, ts, message.result)

        elif isinstance(message, m.AgentRunErrorEvent):
            run_id = agent_run_span_id(message.agent_id, message.run_id)
            self._close_descendants(run_id, ts)
            self._close(run_id, NodeStatus.ERROR, ts, message.error.message)

        elif isinstance(message, m.AgentBeforeCloseEvent):
            agent_id = agent_span_id(message.agent_id)
            self._close_descendants(agent_id, ts)
            self._close(agent_id, NodeStatus.OK, ts)

        elif isinstance(message, m.NodeExecutionStartEvent):
            run_id = self._run_span_id(message.run_id)
            if run_id is not None:
                node = self._open(
                    child_span_id(run_id, SpanSegment.NODE, message.node_name),
                    run_id,
                    SpanSegment.NODE,
                    message.node_name,
                    ts,
                )
                node.detail = message.input

        elif isinstance(message, m.NodeExecutionEndEvent):
            run_id = self._run_span_id(message.run_id)
            if run_id is not None:
                node_id = child_span_id(run_id, SpanSegment.NODE, message.node_name)
                self._close(node_id, NodeStatus.OK, ts, message.output)

        elif isinstance(message, (m.BeforeLLMCallEvent, m.StartLLMStreamingEvent)):
            parent_id = self._parent_span_id(message.run_id, message.node_name)
            if parent_id is not None:
                llm = self._open(
                    child_span_id(parent_id, SpanSegment.LLM, message.prompt.id),
                    parent_id,
                    SpanSegment.LLM,
                    message.prompt.id,
                    ts,
                )
                llm.detail = message.model

        elif isinstance(message, m.AfterLLMCallEvent):
            parent_id = self._parent_span_id(message.run_id, message.node_name)
            if parent_id is not None:
                llm_id = child_span_id(parent_id, SpanSegment.LLM, message.prompt.id)
                self._close(llm_id, NodeStatus.OK, ts)

        elif isinstance(message, m.ToolCallEvent):
            parent_id = self._parent_span_id(message.run_id, message.node_name)
            if parent_id is not None:
                self._open(
                    child_span_id(parent_id, SpanSegment.TOOL, message.tool_name),
                    parent_id,
                    SpanSegment.TOOL,
                    message.tool_name,
                    ts,
                )

        elif isinstance(message, m.ToolCallResultEvent):
            self._close_tool(message, NodeStatus.OK, ts, _short(message.result))

        elif isinstance(message, m.ToolValidationErrorEvent):
            self._close_tool(message, NodeStatus.ERROR, ts, message.error)

        elif isinstance(message, m.ToolCallFailureEvent):
            self._close_tool(message, NodeStatus.ERROR, ts, message.error.message)

    def to_dict(self, node: ExecutionNode | None = None) -> Any:
        """Nested dict view of the tree (a list of roots when ``node`` is None)."""
        if node is None:
            return [self.to_dict(root) for root in self.roots]
        return {
            "id": node.span_id,
            "type": node.segment.value,
            "name": node.name,
            "status": node.status.value,
            "detail": node.detail,
            "duration_ms": node.duration_ms,
            "children": [self.to_dict(child) for child in self.children(node)],
        }

    def _run_span_id(self, run_id: str) -> str | None:
        agent_id = self._run_agents.get(run_id)
        if agent_id is None:
            logger.warning("Event for unknown run ignored", run_id=run_id)
            return None
        return agent_run_span_id(agent_id, run_id)

    def _parent_span_id(self, run_id: str, node_name: str | None) -> str | None:
        run_span_id = self._run_span_id(run_id)
        if run_span_id is None or node_name is None:
            return run_span_id
        return child_span_id(run_span_id, SpanSegment.NODE, node_name)

    def _open(
        self,
        span_id: str,
        parent_id: str | None,
        segment: SpanSegment,
        name: str,
        ts: int,
    ) -> ExecutionNode:
        node = self.nodes.get(span_id)
        if node is None:
            node = ExecutionNode(span_id, segment, name, parent_id=parent_id, started_at=ts)
            self.nodes[span_id] = node
            if parent_id is not None and parent_id in self.nodes:
                self.nodes[parent_id].children.append(span_id)
        else:
            # Re-entered node (loops in a strategy graph)
            node.status = NodeStatus.RUNNING
            node.started_at = ts
            node.ended_at = None
        return node

    def _close(
        self, span_id: str, status: NodeStatus, ts: int, detail: str | None = None
    ) -> None:
        node = self.nodes.get(span_id)
        if node is None:
            logger.warning("End event for unknown span ignored", span_id=span_id)
            return
        node.status = status
        node.ended_at = ts
        if detail is not None:
            node.detail = detail

    def _close_tool(self, message: Any, status: NodeStatus, ts: int, detail: str | None) -> None:
        parent_id = self._parent_span_id(message.run_id, message.node_name)
        if parent_id is not None:
            tool_id = child_span_id(parent_id, SpanSegment.TOOL, message.tool_name)
            self._close(tool_id, status, ts, detail)

    def _close_descendants(self, ancestor_id: str, ts: int) -> None:
        for span_id, node in self.nodes.items():
            if node.status is NodeStatus.RUNNING and is_descendant_id(span_id, ancestor_id):
                node.status = NodeStatus.UNFINISHED
                node.ended_at = ts


def _short(value: Any, limit: int = 200) -> str | None:
    if value is None:
        return None
    text = value_string(value, verbose=True)
    return text if len(text) <= limit else text[: limit - 3] + "..."
