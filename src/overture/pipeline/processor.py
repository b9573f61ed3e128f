"""
Feature message processors.

A processor receives the feature messages produced by a feature and sends
them somewhere: a log, a file, a network connection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from overture.pipeline.messages import FeatureMessage


class FeatureMessageProcessor(ABC):
    """
    Base class for message processors.

    Processors are opened by the pipeline's prepare step and closed when the
    agent is closed. Messages are only delivered to open processors.
    """

    def __init__(self) -> None:
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def initialize(self) -> None:
        """Open the processor; subclasses acquire their resources here."""
        self._is_open = True

    @abstractmethod
    async def process_message(self, message: FeatureMessage) -> None:
        """Handle one message."""

    async def close(self) -> None:
        """Close the processor and release its resources."""
        self._is_open = False

    async def __aenter__(self) -> "FeatureMessageProcessor":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
