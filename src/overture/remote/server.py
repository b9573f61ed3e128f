"""
Remote feature-message server.

Serves feature messages to debugger clients over Server-Sent Events. The
server runs inside the agent's event loop as a background uvicorn task.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI
from sse_starlette.sse import EventSourceResponse

from overture import __version__
from overture.pipeline.messages import FeatureMessage, encode_message
from overture.pipeline.processor import FeatureMessageProcessor
from overture.remote.config import EVENTS_PATH, HEALTH_PATH, ServerConnectionConfig

logger = structlog.get_logger()


class FeatureMessageRemoteServer:
    """
    SSE server broadcasting feature messages.

    Each subscriber gets its own queue. Messages are also kept in a bounded
    replay buffer so a client connecting late still receives the events
    sent before it connected.
    """

    def __init__(self, config: ServerConnectionConfig | None = None):
        self.config = config or ServerConnectionConfig()
        self._subscribers: set[asyncio.Queue[str | None]] = set()
        self._history: deque[str] = deque(maxlen=self.config.replay_buffer_size)
        self._connected = asyncio.Event()
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None
        self.app = self.create_app()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def create_app(self) -> FastAPI:
        """Create the FastAPI application serving the event stream."""
        app = FastAPI(
            title="Overture Debugger",
            description="Feature message stream of a running agent",
            version=__version__,
            docs_url=None,
            redoc_url=None,
        )

        @app.get(HEALTH_PATH)
        async def health() -> dict[str, Any]:
            return {
                "status": "ok",
                "subscribers": self.subscriber_count,
                "buffered_messages": len(self._history),
            }

        @app.get(EVENTS_PATH)
        async def events() -> EventSourceResponse:
            queue = self.subscribe()

            async def generate() -> AsyncIterator[dict[str, str]]:
                try:
                    while True:
                        data = await queue.get()
                        if data is None:
                            break
                        yield {"data": data}
                finally:
                    self.unsubscribe(queue)

            return EventSourceResponse(generate())

        return app

    def subscribe(self) -> asyncio.Queue[str | None]:
        """Register a subscriber queue pre-filled with the replay buffer."""
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        for data in self._history:
            queue.put_nowait(data)
        self._subscribers.add(queue)
        self._connected.set()
        logger.info("Debugger client connected", subscribers=self.subscriber_count)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[str | None]) -> None:
        self._subscribers.discard(queue)
        logger.info("Debugger client disconnected", subscribers=self.subscriber_count)

    async def broadcast(self, message: FeatureMessage) -> None:
        """Send a message to every subscriber and remember it for late subscribers."""
        data = encode_message(message)
        self._history.append(data)
        for queue in list(self._subscribers):
            queue.put_nowait(data)

    async def wait_for_connection(self, timeout: float | None = None) -> None:
        """
        Wait until at least one client has subscribed.

        Raises:
            asyncio.TimeoutError: If no client connects within ``timeout`` seconds
        """
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def start(self) -> None:
        """Start serving in a background task and wait until the socket is bound."""
        if self.is_running:
            return

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="warning",
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())

        while not self._server.started:
            if self._task.done():
                self._task.result()
                raise ConnectionError(
                    f"Debugger server failed to start on {self.config.host}:{self.config.port}"
                )
            await asyncio.sleep(0.05)

        logger.info("Debugger server started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        """End every subscriber stream and shut the server down."""
        for queue in list(self._subscribers):
            queue.put_nowait(None)

        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            await self._task
        self._server = None
        self._task = None
        logger.info("Debugger server stopped", port=self.config.port)


class FeatureMessageRemoteWriter(FeatureMessageProcessor):
    """Message processor publishing feature messages through a remote server."""

    def __init__(
        self,
        connection_config: ServerConnectionConfig | None = None,
        wait_connection: bool = False,
        wait_connection_timeout: float | None = None,
        server: FeatureMessageRemoteServer | None = None,
    ):
        super().__init__()
        self.server = server or FeatureMessageRemoteServer(connection_config)
        self.wait_connection = wait_connection
        self.wait_connection_timeout = wait_connection_timeout

    async def initialize(self) -> None:
        await self.server.start()
        if self.wait_connection:
            logger.info(
                "Waiting for debugger client",
                port=self.server.config.port,
                timeout=self.wait_connection_timeout,
            )
            await self.server.wait_for_connection(self.wait_connection_timeout)
        await super().initialize()

    async def process_message(self, message: FeatureMessage) -> None:
        await self.server.broadcast(message)

    async def close(self) -> None:
        try:
            await self.server.stop()
        finally:
            await super().close()
