"""
Span id construction.

A span id is a dotted path: each level appends ``.<segment>.<value>`` to its
parent's id, so the hierarchy can be read back from the id alone::

    agent.<agentId>
    agent.<agentId>.run.<runId>
    agent.<agentId>.run.<runId>.node.<nodeName>
    agent.<agentId>.run.<runId>.node.<nodeName>.tool.<toolName>
    agent.<agentId>.run.<runId>.node.<nodeName>.llm.<promptId>
"""

from __future__ import annotations

from enum import Enum


class SpanSegment(str, Enum):
    """Typed id segments, one per hierarchy level."""

    AGENT = "agent"
    RUN = "run"
    NODE = "node"
    TOOL = "tool"
    LLM = "llm"


def child_span_id(parent_id: str | None, segment: SpanSegment, value: str) -> str:
    """Append a typed segment to a parent id (or start a root id)."""
    part = f"{SpanSegment(segment).value}.{value}"
    return part if parent_id is None else f"{parent_id}.{part}"


def agent_span_id(agent_id: str) -> str:
    return child_span_id(None, SpanSegment.AGENT, agent_id)


def agent_run_span_id(agent_id: str, run_id: str) -> str:
    return child_span_id(agent_span_id(agent_id), SpanSegment.RUN, run_id)


def node_span_id(agent_id: str, run_id: str, node_name: str) -> str:
    return child_span_id(agent_run_span_id(agent_id, run_id), SpanSegment.NODE, node_name)


def tool_span_id(agent_id: str, run_id: str, node_name: str, tool_name: str) -> str:
    return child_span_id(node_span_id(agent_id, run_id, node_name), SpanSegment.TOOL, tool_name)


def inference_span_id(agent_id: str, run_id: str, node_name: str, prompt_id: str) -> str:
    return child_span_id(node_span_id(agent_id, run_id, node_name), SpanSegment.LLM, prompt_id)


def is_descendant_id(span_id: str, ancestor_id: str) -> bool:
    """True when ``span_id`` lies strictly below ``ancestor_id``."""
    return span_id.startswith(ancestor_id + ".")
