"""
Rendering of values for traces, logs and debugger output.

value_string() is the single renderer used by every writer, so a value
looks the same in a span attribute, a trace log line and a debugger event.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

HIDDEN_STRING_PLACEHOLDER = "HIDDEN:non-empty"


class HiddenString:
    """
    Wrapper for a sensitive value.

    Renders as a placeholder unless verbose rendering is requested.
    """

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"HiddenString({HIDDEN_STRING_PLACEHOLDER})"

    def __str__(self) -> str:
        return HIDDEN_STRING_PLACEHOLDER

    def __eq__(self, other: object) -> bool:
        return isinstance(other, HiddenString) and other.value == self.value

    def __hash__(self) -> int:
        return hash(("HiddenString", repr(self.value)))

    def reveal(self, verbose: bool) -> Any:
        """Return the wrapped value in verbose mode, the placeholder otherwise."""
        return self.value if verbose else HIDDEN_STRING_PLACEHOLDER


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def value_string(value: Any, verbose: bool = False) -> str:
    """
    Render a value for a trace.

    Strings are quoted, numbers and booleans use their literal form, lists
    become ``[a,b]`` and mappings become ``{"k":v}``. A HiddenString renders
    as a quoted placeholder unless ``verbose`` is set, in which case the
    wrapped value is rendered instead.
    """
    if isinstance(value, HiddenString):
        if not verbose:
            return _quote(HIDDEN_STRING_PLACEHOLDER)
        return value_string(value.value, verbose)

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value_string(value.value, verbose)
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, BaseModel):
        return value_string(value.model_dump(mode="json"), verbose)
    if isinstance(value, Mapping):
        items = ",".join(
            f"{_quote(str(k))}:{value_string(v, verbose)}" for k, v in value.items()
        )
        return "{" + items + "}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ",".join(value_string(v, verbose) for v in value) + "]"

    return str(value)


def reveal(value: Any, verbose: bool) -> Any:
    """
    Resolve HiddenString wrappers inside a value without rendering it.

    Containers are rebuilt with their hidden members replaced by either the
    wrapped value (verbose) or the placeholder.
    """
    if isinstance(value, HiddenString):
        return reveal(value.value, verbose) if verbose else HIDDEN_STRING_PLACEHOLDER
    if isinstance(value, Mapping):
        return {k: reveal(v, verbose) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [reveal(v, verbose) for v in value]
    return value
