"""Shared fixtures for the farewell test suite."""

import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from farewell.config.store_config import StoreConfig
from farewell.models.checkpoint_models import Checkpoint, CheckpointMetadata
from farewell.models.state_models import PlanningState, utc_now
from farewell.services.checkpoint_service import create_checkpoint_store


class FakeRedis:
    """In-process stand-in for ``redis.asyncio.Redis`` (string values, TTLs)."""

    def __init__(self):
        self.data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        if key not in self.data:
            return False
        _, expires_at = self.data[key]
        if expires_at is not None and expires_at <= time.monotonic():
            del self.data[key]
            return False
        return True

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data[key][0] if self._alive(key) else None

    async def set(self, key: str, value: str) -> bool:
        self._check()
        self.data[key] = (value, None)
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.data[key] = (value, time.monotonic() + ttl)
        return True

    async def ttl(self, key: str) -> int:
        self._check()
        if not self._alive(key):
            return -2
        _, expires_at = self.data[key]
        if expires_at is None:
            return -1
        return int(expires_at - time.monotonic())

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.data[key]
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int = 100):
        self._check()
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix) and self._alive(key):
                yield key

    async def flushall(self) -> bool:
        self.data.clear()
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis():
    """Redis test double shared by cache-backed fixtures."""
    return FakeRedis()


@pytest.fixture
def store_config(tmp_path):
    """Store configuration backed by a SQLite file in the test directory."""
    return StoreConfig(
        redis_url="redis://localhost:6379/15",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'data' / 'checkpoints.db'}",
        table_name="test_checkpoints",
        cache_key_prefix="test_planning",
        cache_ttl_seconds=60,
        enable_compression=True,
        max_checkpoints=1000,
        retention_seconds=24 * 60 * 60,
        cleanup_interval_seconds=3600.0,
    )


@pytest_asyncio.fixture
async def store(store_config, fake_redis):
    """Tiered store over SQLite and the Redis test double."""
    checkpoint_store = create_checkpoint_store(store_config, cache_client=fake_redis)
    await checkpoint_store.setup()
    yield checkpoint_store
    await checkpoint_store.close()


@pytest.fixture
def make_checkpoint():
    """Factory for checkpoints with a given stage and timestamp."""

    def _make(
        stage: str = "initial",
        timestamp: Optional[datetime] = None,
        parent_id: Optional[str] = None,
        version: int = 1,
        **state_values: Any,
    ) -> Checkpoint:
        ts = timestamp or utc_now()
        state = PlanningState(planning_stage=stage, timestamp=ts, **state_values)
        return Checkpoint(
            parent_id=parent_id,
            version=version,
            timestamp=ts,
            channel_values=state,
            channel_versions={"planning_stage": version},
        )

    return _make


@pytest.fixture
def make_metadata():
    """Factory for checkpoint metadata."""

    def _make(stage: str = "initial", **values: Any) -> CheckpointMetadata:
        values.setdefault("workflow_id", "wf-1")
        values.setdefault("family_id", "family-1")
        return CheckpointMetadata(stage=stage, **values)

    return _make


@pytest.fixture
def base_time():
    """A fixed recent instant to build ordered timestamps from."""
    return utc_now().replace(microsecond=0) - timedelta(hours=1)
