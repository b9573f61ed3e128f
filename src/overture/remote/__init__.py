"""Remote transport for feature messages."""

from overture.remote.client import FeatureMessageRemoteClient, parse_sse_stream
from overture.remote.config import (
    EVENTS_PATH,
    HEALTH_PATH,
    ClientConnectionConfig,
    ServerConnectionConfig,
)
from overture.remote.server import FeatureMessageRemoteServer, FeatureMessageRemoteWriter
from overture.remote.tree import ExecutionNode, ExecutionTreeBuilder, NodeStatus

__all__ = [
    "ClientConnectionConfig",
    "EVENTS_PATH",
    "ExecutionNode",
    "ExecutionTreeBuilder",
    "FeatureMessageRemoteClient",
    "FeatureMessageRemoteServer",
    "FeatureMessageRemoteWriter",
    "HEALTH_PATH",
    "NodeStatus",
    "ServerConnectionConfig",
    "parse_sse_stream",
]
