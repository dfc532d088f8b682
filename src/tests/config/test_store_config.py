"""Tests for checkpoint store configuration."""

import pytest

from farewell.config.store_config import StoreConfig

ENV_VARS = [
    "REDIS_URL",
    "CONNECTION_POOL_SIZE",
    "CHECKPOINT_KEY_PREFIX",
    "CHECKPOINT_CACHE_TTL",
    "CHECKPOINT_DATABASE_URL",
    "CHECKPOINT_TABLE",
    "CHECKPOINT_COMPRESSION",
    "CHECKPOINT_MAX_PER_THREAD",
    "CHECKPOINT_RETENTION_SECONDS",
    "CHECKPOINT_CLEANUP_INTERVAL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = StoreConfig()

    assert config.redis_url == "redis://localhost:6379/0"
    assert config.cache_key_prefix == "funeral_planning"
    assert config.cache_ttl_seconds == 3600
    assert config.database_url == "sqlite+aiosqlite:///data/checkpoints.db"
    assert config.table_name == "funeral_checkpoints"
    assert config.enable_compression is True
    assert config.max_checkpoints == 1000
    assert config.retention_seconds == 86400
    assert config.cleanup_interval_seconds == 86400.0


def test_environment_overrides(clean_env):
    clean_env.setenv("REDIS_URL", "redis://cache:6380/2")
    clean_env.setenv("CHECKPOINT_CACHE_TTL", "120")
    clean_env.setenv("CHECKPOINT_COMPRESSION", "false")
    clean_env.setenv("CHECKPOINT_MAX_PER_THREAD", "25")
    clean_env.setenv("CHECKPOINT_DATABASE_URL", "postgresql+asyncpg://db/planning")

    config = StoreConfig()

    assert config.redis_url == "redis://cache:6380/2"
    assert config.cache_ttl_seconds == 120
    assert config.enable_compression is False
    assert config.max_checkpoints == 25
    assert config.database_url == "postgresql+asyncpg://db/planning"


@pytest.mark.parametrize("raw", ["1", "TRUE", "yes", " on "])
def test_compression_flag_truthy(clean_env, raw):
    clean_env.setenv("CHECKPOINT_COMPRESSION", raw)

    assert StoreConfig().enable_compression is True


def test_explicit_values_win(clean_env):
    clean_env.setenv("CHECKPOINT_CACHE_TTL", "120")

    assert StoreConfig(cache_ttl_seconds=5).cache_ttl_seconds == 5
