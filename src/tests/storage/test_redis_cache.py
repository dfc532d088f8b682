"""Unit tests for the Redis checkpoint cache."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from farewell.config.store_config import StoreConfig
from farewell.exceptions import CheckpointCacheError, CheckpointDecodeError
from farewell.models.checkpoint_models import ThreadRef
from farewell.storage.cache import RedisCheckpointCache
from farewell.storage.codec import CheckpointCodec


@pytest.fixture
def mock_config():
    """Create mock store config."""
    config = MagicMock(spec=StoreConfig)
    config.redis_url = "redis://localhost:6379/0"
    config.connection_pool_size = 10
    config.cache_key_prefix = "funeral_planning"
    config.cache_ttl_seconds = 3600
    return config


@pytest.fixture
def record(make_checkpoint, make_metadata):
    """Encoded checkpoint for thread-1."""
    return CheckpointCodec().encode(
        ThreadRef(thread_id="thread-1", checkpoint_ns="planning"),
        make_checkpoint("venue_selection"),
        make_metadata("venue_selection"),
    )


@pytest.mark.asyncio
class TestRedisCheckpointCache:
    """Test suite for RedisCheckpointCache."""

    async def test_init(self, mock_config):
        """Test initialization."""
        cache = RedisCheckpointCache(config=mock_config)
        assert cache.ttl == 3600
        assert cache.prefix == "funeral_planning"
        assert cache._redis is None

    async def test_make_key(self, mock_config):
        """Test key naming convention."""
        cache = RedisCheckpointCache(config=mock_config)
        ref = ThreadRef(thread_id="thread-1", checkpoint_ns="planning", checkpoint_id="cp-9")

        assert cache.make_key(ref) == "funeral_planning:checkpoint:thread-1:planning:cp-9"

    async def test_make_key_default_namespace(self, mock_config):
        cache = RedisCheckpointCache(config=mock_config)
        ref = ThreadRef(thread_id="thread-1", checkpoint_id="cp-9")

        assert cache.make_key(ref) == "funeral_planning:checkpoint:thread-1::cp-9"

    async def test_make_key_escapes_separators(self, mock_config):
        """Colons inside a part stay inside that part."""
        cache = RedisCheckpointCache(config=mock_config)
        first = ThreadRef(thread_id="a:b", checkpoint_ns="", checkpoint_id="same")
        second = ThreadRef(thread_id="a", checkpoint_ns="b:", checkpoint_id="same")

        assert cache.make_key(first) == "funeral_planning:checkpoint:a%3Ab::same"
        assert cache.make_key(first) != cache.make_key(second)

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_set_uses_ttl(self, mock_pool_class, mock_redis_class, mock_config, record):
        """Test caching with TTL."""
        mock_redis = AsyncMock()
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)
        await cache.set(record)

        mock_pool_class.from_url.assert_called_once_with(
            "redis://localhost:6379/0", max_connections=10, decode_responses=True
        )
        mock_redis.setex.assert_called_once()
        key, ttl, payload = mock_redis.setex.call_args[0]
        assert key == cache.make_key(record.ref)
        assert ttl == 3600
        assert CheckpointCodec().load_record(payload) == record

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_get_hit(self, mock_pool_class, mock_redis_class, mock_config, record):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=CheckpointCodec.dump_record(record))
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)
        result = await cache.get(record.ref)

        assert result == record

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_get_miss(self, mock_pool_class, mock_redis_class, mock_config, record):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=None)
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        assert await cache.get(record.ref) is None

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_get_corrupted_entry(self, mock_pool_class, mock_redis_class, mock_config, record):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value="{not json")
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        with pytest.raises(CheckpointDecodeError):
            await cache.get(record.ref)

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_delete(self, mock_pool_class, mock_redis_class, mock_config, record):
        mock_redis = AsyncMock()
        mock_redis.delete = AsyncMock(side_effect=[1, 0])
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        assert await cache.delete(record.ref) is True
        assert await cache.delete(record.ref) is False

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_command_errors_are_wrapped(
        self, mock_pool_class, mock_redis_class, mock_config, record
    ):
        mock_redis = AsyncMock()
        mock_redis.setex = AsyncMock(side_effect=RedisError("READONLY"))
        mock_redis.get = AsyncMock(side_effect=RedisError("READONLY"))
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        with pytest.raises(CheckpointCacheError):
            await cache.set(record)
        with pytest.raises(CheckpointCacheError):
            await cache.get(record.ref)

    @patch("farewell.storage.cache.asyncio.sleep", new_callable=AsyncMock)
    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_connection_retry(
        self, mock_pool_class, mock_redis_class, mock_sleep, mock_config, record
    ):
        """Ping is retried before giving up."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        with pytest.raises(CheckpointCacheError):
            await cache.get(record.ref)

        assert mock_redis.ping.await_count == 3
        assert mock_sleep.await_count == 2
        assert cache._redis is None

    @patch("farewell.storage.cache.asyncio.sleep", new_callable=AsyncMock)
    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_connection_recovers(
        self, mock_pool_class, mock_redis_class, mock_sleep, mock_config, record
    ):
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(side_effect=[RedisConnectionError("refused"), True])
        mock_redis.get = AsyncMock(return_value=None)
        mock_redis_class.return_value = mock_redis

        cache = RedisCheckpointCache(config=mock_config)

        assert await cache.get(record.ref) is None
        assert mock_redis.ping.await_count == 2

    @patch("farewell.storage.cache.Redis")
    @patch("farewell.storage.cache.ConnectionPool")
    async def test_close(self, mock_pool_class, mock_redis_class, mock_config, record):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=None)
        mock_redis_class.return_value = mock_redis
        mock_pool = MagicMock()
        mock_pool.disconnect = AsyncMock()
        mock_pool_class.from_url.return_value = mock_pool

        cache = RedisCheckpointCache(config=mock_config)
        await cache.get(record.ref)
        await cache.close()

        mock_redis.aclose.assert_awaited_once()
        mock_pool.disconnect.assert_awaited_once()
        assert cache._redis is None

    async def test_close_keeps_injected_client(self, mock_config, fake_redis):
        """A client passed in by the caller is not closed."""
        cache = RedisCheckpointCache(config=mock_config, client=fake_redis)
        await cache.close()

        assert fake_redis.closed is False
