"""
Feature pipeline for Overture.

Features register handlers for the agent's lifecycle hooks; the execution
engine reports events through the pipeline, which fans them out.
"""

from overture.pipeline.feature import (
    AgentFeature,
    FeatureConfig,
    FeatureStorage,
    InterceptContext,
    StorageKey,
)
from overture.pipeline.messages import (
    FeatureEvent,
    FeatureMessage,
    FeatureStringMessage,
    decode_message,
    encode_message,
)
from overture.pipeline.pipeline import FEATURE_PREPARE_CONCURRENCY, AgentPipeline
from overture.pipeline.processor import FeatureMessageProcessor

__all__ = [
    "AgentPipeline",
    "AgentFeature",
    "FeatureConfig",
    "FeatureStorage",
    "InterceptContext",
    "StorageKey",
    "FeatureMessageProcessor",
    "FeatureMessage",
    "FeatureEvent",
    "FeatureStringMessage",
    "encode_message",
    "decode_message",
    "FEATURE_PREPARE_CONCURRENCY",
]
