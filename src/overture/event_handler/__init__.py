"""User callback feature."""

from overture.event_handler.feature import (
    HOOKS,
    EventHandler,
    EventHandlerConfig,
    EventHandlerFeature,
)

__all__ = [
    "EventHandler",
    "EventHandlerConfig",
    "EventHandlerFeature",
    "HOOKS",
]
