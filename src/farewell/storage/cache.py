"""Redis-based cache tier for recently written checkpoints."""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ..config.store_config import StoreConfig
from ..exceptions import CheckpointCacheError
from ..models.checkpoint_models import CheckpointRecord, ThreadRef
from .base import BaseCheckpointCache
from .codec import CheckpointCodec

logger = logging.getLogger(__name__)


class RedisCheckpointCache(BaseCheckpointCache):
    """Redis cache of encoded checkpoints with a bounded TTL."""

    def __init__(self, config: StoreConfig, client: Optional[Redis] = None):
        """
        Initialize the cache tier.

        Args:
            config: Store configuration
            client: Pre-built Redis client (a pool is created from
                ``config.redis_url`` when omitted)
        """
        self.config = config
        self.ttl = config.cache_ttl_seconds
        self.prefix = config.cache_key_prefix
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = client
        self._owns_client = client is None

    async def _get_redis(self) -> Redis:
        """
        Get Redis client with connection pooling and retry logic.

        Returns:
            Redis async client
        """
        if self._redis is None:
            self._pool = ConnectionPool.from_url(
                self.config.redis_url,
                max_connections=self.config.connection_pool_size,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

            max_retries = 3
            for attempt in range(max_retries):
                try:
                    await self._redis.ping()
                    logger.info("Redis connection established successfully")
                    break
                except (RedisConnectionError, RedisError) as e:
                    if attempt == max_retries - 1:
                        logger.error(
                            f"Failed to connect to Redis after {max_retries} attempts: {e}"
                        )
                        self._redis = None
                        raise CheckpointCacheError(f"Redis unavailable: {e}") from e
                    logger.warning(
                        f"Redis connection attempt {attempt + 1} failed, retrying..."
                    )
                    await asyncio.sleep(1)

        return self._redis

    def make_key(self, ref: ThreadRef) -> str:
        """
        Generate the Redis key for a checkpoint.

        Pattern: {prefix}:checkpoint:{thread_id}:{checkpoint_ns}:{checkpoint_id}

        Address parts are percent-encoded so a ``:`` inside one part cannot
        shift it into the next.
        """
        thread_id, checkpoint_ns, checkpoint_id = (
            quote(part or "", safe="")
            for part in (ref.thread_id, ref.checkpoint_ns, ref.checkpoint_id)
        )
        return f"{self.prefix}:checkpoint:{thread_id}:{checkpoint_ns}:{checkpoint_id}"

    async def get(self, ref: ThreadRef) -> Optional[CheckpointRecord]:
        redis = await self._get_redis()
        key = self.make_key(ref)

        try:
            data = await redis.get(key)
        except RedisError as e:
            logger.error(f"Failed to read cached checkpoint {ref.checkpoint_id}: {e}")
            raise CheckpointCacheError(f"Cache read failed for {key}") from e

        if data is None:
            logger.debug(f"Cache miss for {key}")
            return None

        logger.debug(f"Cache hit for {key}")
        return CheckpointCodec().load_record(data)

    async def set(self, record: CheckpointRecord) -> None:
        redis = await self._get_redis()
        key = self.make_key(record.ref)

        try:
            await redis.setex(key, self.ttl, CheckpointCodec.dump_record(record))
            logger.debug(f"Cached checkpoint {record.checkpoint_id} with TTL {self.ttl}s")
        except RedisError as e:
            logger.error(f"Failed to cache checkpoint {record.checkpoint_id}: {e}")
            raise CheckpointCacheError(f"Cache write failed for {key}") from e

    async def delete(self, ref: ThreadRef) -> bool:
        redis = await self._get_redis()
        key = self.make_key(ref)

        try:
            result = await redis.delete(key)
            return result > 0
        except RedisError as e:
            logger.error(f"Failed to evict checkpoint {ref.checkpoint_id}: {e}")
            raise CheckpointCacheError(f"Cache delete failed for {key}") from e

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            if self._pool is not None:
                await self._pool.disconnect()
            logger.info("Redis connection closed")
        self._redis = None
        self._pool = None
