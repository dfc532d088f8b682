"""Storage tiers for checkpoints: Redis cache over a relational durable store."""

from .base import BaseCheckpointCache, BaseCheckpointRepository
from .codec import CheckpointCodec, ENCODING_JSON, ENCODING_ZLIB
from .cache import RedisCheckpointCache
from .durable import SQLCheckpointRepository

__all__ = [
    "BaseCheckpointCache",
    "BaseCheckpointRepository",
    "CheckpointCodec",
    "ENCODING_JSON",
    "ENCODING_ZLIB",
    "RedisCheckpointCache",
    "SQLCheckpointRepository",
]
