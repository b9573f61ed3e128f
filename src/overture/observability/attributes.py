"""
Span attributes and attribute keys.

Keys follow the OpenTelemetry GenAI semantic conventions (``gen_ai.*``);
engine-specific concepts live under the ``overture.*`` namespace.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from overture.observability.values import HiddenString, reveal, value_string


class GenAIKeys:
    """GenAI semantic convention attribute keys."""

    OPERATION_NAME = "gen_ai.operation.name"
    SYSTEM = "gen_ai.system"
    CONVERSATION_ID = "gen_ai.conversation.id"

    AGENT_ID = "gen_ai.agent.id"
    AGENT_NAME = "gen_ai.agent.name"

    REQUEST_MODEL = "gen_ai.request.model"
    REQUEST_TEMPERATURE = "gen_ai.request.temperature"
    REQUEST_TOOLS = "gen_ai.tool.definitions"

    RESPONSE_MODEL = "gen_ai.response.model"
    RESPONSE_FINISH_REASONS = "gen_ai.response.finish_reasons"

    TOOL_NAME = "gen_ai.tool.name"
    TOOL_DESCRIPTION = "gen_ai.tool.description"
    TOOL_CALL_ID = "gen_ai.tool.call.id"

    ERROR_TYPE = "error.type"

    PROMPT = "gen_ai.prompt"
    COMPLETION = "gen_ai.completion"


class OvertureKeys:
    """Engine-specific attribute keys."""

    NODE_NAME = "overture.node.name"
    STRATEGY_NAME = "overture.strategy.name"
    AGENT_RESULT = "overture.agent.result"
    AGENT_COMPLETED = "overture.agent.completed"
    ERROR_MESSAGE = "overture.error.message"


class OperationName:
    """Values of gen_ai.operation.name."""

    CREATE_AGENT = "create_agent"
    INVOKE_AGENT = "invoke_agent"
    CHAT = "chat"
    EXECUTE_TOOL = "execute_tool"


# Keys used by tracing UIs for tool input and output
INPUT_VALUE = "input.value"
OUTPUT_VALUE = "output.value"

_PRIMITIVES = (str, bool, int, float)


@dataclass(frozen=True)
class Attribute:
    """
    A rendered key/value pair ready for export.

    ``value`` may contain HiddenString parts; they are resolved at export time
    against the exporter's verbose flag. ``verbose=True`` forces the hidden
    parts of this attribute to be revealed regardless of that flag.
    """

    key: str
    value: Any
    verbose: bool = False

    def sdk_value(self, verbose: bool = False) -> str | bool | int | float | list:
        """Convert to a value the OpenTelemetry SDK accepts."""
        return to_sdk_value(self.value, verbose or self.verbose)


def to_sdk_value(value: Any, verbose: bool) -> str | bool | int | float | list:
    """
    Convert an arbitrary value to an OpenTelemetry attribute value.

    Primitives pass through, homogeneous sequences of primitives become lists,
    everything else is rendered with value_string().
    """
    if isinstance(value, HiddenString):
        resolved = reveal(value, verbose)
        if isinstance(resolved, _PRIMITIVES):
            return resolved
        return value_string(resolved, verbose)

    if isinstance(value, _PRIMITIVES):
        return value

    if isinstance(value, (list, tuple)) and value:
        first = type(value[0])
        if first in _PRIMITIVES and all(type(v) is first for v in value):
            return list(value)

    return value_string(value, verbose)


def to_sdk_attributes(
    attributes: Sequence[Attribute],
    verbose: bool = False,
) -> dict[str, str | bool | int | float | list]:
    """Convert attributes to an OpenTelemetry attribute mapping; later keys win."""
    return {attr.key: attr.sdk_value(verbose) for attr in attributes}
