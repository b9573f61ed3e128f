"""
Feature definitions: storage keys, feature descriptors and configuration.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterator, TypeVar

from overture.core.errors import FeatureNotFoundError, FeatureTypeMismatchError
from overture.pipeline.messages import FeatureMessage
from overture.pipeline.processor import FeatureMessageProcessor

if TYPE_CHECKING:
    from overture.pipeline.pipeline import AgentPipeline

T = TypeVar("T")
ConfigT = TypeVar("ConfigT", bound="FeatureConfig")
FeatureT = TypeVar("FeatureT")


@dataclass(frozen=True)
class StorageKey(Generic[T]):
    """
    Process-wide unique key for a feature.

    Keys compare by name. ``type`` is the runtime type of the value stored
    under the key and is checked once when the value is read back.
    """

    name: str
    type: type[T] = field(default=object, compare=False)  # type: ignore[assignment]

    def __str__(self) -> str:
        return self.name


class FeatureStorage:
    """Map from storage key to value with a typed accessor."""

    def __init__(self) -> None:
        self._values: dict[StorageKey[Any], Any] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[StorageKey[Any]]:
        with self._lock:
            return iter(list(self._values))

    def set(self, key: StorageKey[T], value: T) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, key: StorageKey[T]) -> T | None:
        """
        Return the value under ``key``, or None if absent.

        Raises:
            FeatureTypeMismatchError: If the value is not an instance of key.type
        """
        with self._lock:
            value = self._values.get(key)
        if value is None:
            return None
        if not isinstance(value, key.type):
            raise FeatureTypeMismatchError(key.name, key.type, type(value))
        return value

    def get_or_raise(self, key: StorageKey[T]) -> T:
        value = self.get(key)
        if value is None:
            raise FeatureNotFoundError(key.name)
        return value

    def remove(self, key: StorageKey[T]) -> T | None:
        with self._lock:
            return self._values.pop(key, None)

    def values(self) -> list[Any]:
        with self._lock:
            return list(self._values.values())

    def items(self) -> list[tuple[StorageKey[Any], Any]]:
        with self._lock:
            return list(self._values.items())

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


MessageFilter = Callable[[FeatureMessage], bool]


class FeatureConfig:
    """
    Base configuration shared by all features.

    Holds the message processors that receive the feature's messages and an
    optional filter deciding which messages reach them.
    """

    def __init__(self) -> None:
        self._message_processors: list[FeatureMessageProcessor] = []
        self.message_filter: MessageFilter | None = None

    @property
    def message_processors(self) -> tuple[FeatureMessageProcessor, ...]:
        return tuple(self._message_processors)

    def add_message_processor(self, processor: FeatureMessageProcessor) -> None:
        self._message_processors.append(processor)

    def accepts(self, message: FeatureMessage) -> bool:
        return self.message_filter is None or self.message_filter(message)


class AgentFeature(ABC, Generic[ConfigT, FeatureT]):
    """
    Descriptor of an installable feature.

    Subclasses define a unique ``key``, build the initial configuration and
    register their handlers on the pipeline in ``install``.
    """

    key: StorageKey[FeatureT]

    @abstractmethod
    def create_initial_config(self) -> ConfigT:
        """Create the configuration passed to the user's configure callback."""

    @abstractmethod
    def install(self, config: ConfigT, pipeline: AgentPipeline) -> None:
        """Register the feature's handlers on the pipeline."""


@dataclass(frozen=True)
class InterceptContext(Generic[FeatureT]):
    """The feature registering a handler and the instance handlers run against."""

    feature: AgentFeature[Any, FeatureT]
    feature_impl: FeatureT
