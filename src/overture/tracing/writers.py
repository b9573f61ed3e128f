"""
Trace writers: message processors that write one line per feature message.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import IO, Any, Callable

from overture.core.errors import ConfigurationError
from overture.pipeline.messages import FeatureMessage
from overture.pipeline.processor import FeatureMessageProcessor
from overture.tracing.format import trace_string

MessageFormat = Callable[[FeatureMessage], str]

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class TraceFeatureMessageLogWriter(FeatureMessageProcessor):
    """
    Writes trace lines to a logger.

    Args:
        logger: A structlog (or stdlib-compatible) logger
        level: Method name used for each line (``info``, ``debug``, ...)
        format: Replaces trace_string() when given
    """

    def __init__(
        self,
        logger: Any,
        level: str = "info",
        format: MessageFormat | None = None,
    ):
        super().__init__()
        level = level.lower()
        if level not in _LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid trace log level: {level}. Must be one of {_LOG_LEVELS}"
            )
        self.logger = logger
        self.level = level
        self.format = format or trace_string

    async def process_message(self, message: FeatureMessage) -> None:
        getattr(self.logger, self.level)(self.format(message))


class TraceFeatureMessageFileWriter(FeatureMessageProcessor):
    """
    Appends trace lines to a file.

    The file is opened on initialize() and closed on close(); writes run in
    the default executor.
    """

    def __init__(
        self,
        path: str | Path,
        format: MessageFormat | None = None,
        append: bool = True,
    ):
        super().__init__()
        self.path = Path(path)
        self.format = format or trace_string
        self.append = append
        self._file: IO[str] | None = None
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._open)
        await super().initialize()

    async def process_message(self, message: FeatureMessage) -> None:
        line = self.format(message)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self._write_line(line))

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close)
        await super().close()

    def _open(self) -> None:
        with self._lock:
            if self._file is not None:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a" if self.append else "w", encoding="utf-8")

    def _write_line(self, line: str) -> None:
        with self._lock:
            if self._file is None:
                raise RuntimeError(f"Trace file writer for {self.path} is not open")
            self._file.write(line + "\n")
            self._file.flush()

    def _close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
