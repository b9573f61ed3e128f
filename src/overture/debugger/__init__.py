"""Remote debugger feature."""

from overture.debugger.feature import Debugger, DebuggerConfig, DebuggerFeature

__all__ = ["Debugger", "DebuggerConfig", "DebuggerFeature"]
