"""
Remote feature-message client.

Connects to a debugger server and decodes its Server-Sent Events stream
back into feature messages.
"""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator

import httpx
import structlog

from overture.pipeline.messages import FeatureMessage, decode_message
from overture.remote.config import HEALTH_PATH, ClientConnectionConfig

logger = structlog.get_logger()


async def parse_sse_stream(lines: AsyncIterable[str]) -> AsyncIterator[FeatureMessage]:
    """
    Decode SSE lines into feature messages.

    ``data:`` lines of one event are joined with newlines; a blank line ends
    the event. Comment lines (keep-alive pings) and other fields are ignored.
    """
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield decode_message("\n".join(data_lines))
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)

    if data_lines:
        yield decode_message("\n".join(data_lines))


class FeatureMessageRemoteClient:
    """Client reading the feature-message stream of a debugger server."""

    def __init__(
        self,
        config: ClientConnectionConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ClientConnectionConfig()
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout, read=None),
            )
        return self._http_client

    async def health_check(self) -> dict[str, Any]:
        client = await self._get_http_client()
        response = await client.get(self.config.base_url + HEALTH_PATH)
        response.raise_for_status()
        return response.json()

    async def events(self) -> AsyncIterator[FeatureMessage]:
        """Yield feature messages until the server ends the stream."""
        client = await self._get_http_client()
        logger.info("Connecting to debugger", url=self.config.events_url)

        async with client.stream(
            "GET",
            self.config.events_url,
            headers={"Accept": "text/event-stream"},
        ) as response:
            response.raise_for_status()
            async for message in parse_sse_stream(response.aiter_lines()):
                yield message

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "FeatureMessageRemoteClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
