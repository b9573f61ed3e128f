"""Core configuration, models and errors."""

from overture.core.config import (
    DebuggerSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
    reload_settings,
    resolve_debugger_port,
)
from overture.core.errors import (
    ConfigurationError,
    FeatureCloseError,
    FeatureNotFoundError,
    FeatureTypeMismatchError,
    OvertureError,
    SpanAlreadyStartedError,
    SpanCleanupError,
    SpanNotFoundError,
    SpanTypeMismatchError,
)
from overture.core.models import (
    AgentError,
    LLModel,
    Message,
    MessageRole,
    Prompt,
    ToolDescriptor,
    ToolParameter,
)

__all__ = [
    "Settings",
    "ObservabilitySettings",
    "DebuggerSettings",
    "get_settings",
    "reload_settings",
    "resolve_debugger_port",
    "OvertureError",
    "ConfigurationError",
    "SpanNotFoundError",
    "SpanTypeMismatchError",
    "SpanAlreadyStartedError",
    "SpanCleanupError",
    "FeatureNotFoundError",
    "FeatureTypeMismatchError",
    "FeatureCloseError",
    "AgentError",
    "LLModel",
    "Message",
    "MessageRole",
    "Prompt",
    "ToolDescriptor",
    "ToolParameter",
]
