"""Checkpoint store configuration with environment variable loading."""

import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class StoreConfig(BaseModel):
    """Configuration for the tiered checkpoint store."""

    # Redis (cache tier)
    redis_url: str = Field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        description="Redis connection URL",
    )
    connection_pool_size: int = Field(
        default_factory=lambda: int(os.getenv("CONNECTION_POOL_SIZE", "10")),
        description="Connection pool size for Redis",
    )
    cache_key_prefix: str = Field(
        default_factory=lambda: os.getenv("CHECKPOINT_KEY_PREFIX", "funeral_planning"),
        description="Prefix for every cache key",
    )
    cache_ttl_seconds: int = Field(
        default_factory=lambda: int(os.getenv("CHECKPOINT_CACHE_TTL", "3600")),
        description="TTL for cached checkpoints (seconds)",
    )

    # Relational database (durable tier)
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "CHECKPOINT_DATABASE_URL", "sqlite+aiosqlite:///data/checkpoints.db"
        ),
        description="Async SQLAlchemy URL for the durable tier",
    )
    table_name: str = Field(
        default_factory=lambda: os.getenv("CHECKPOINT_TABLE", "funeral_checkpoints"),
        description="Table holding checkpoint rows",
    )
    checkpoint_type: str = Field(
        default="funeral_planning",
        description="Value written to the row type column",
    )

    # Encoding
    enable_compression: bool = Field(
        default_factory=lambda: _env_bool("CHECKPOINT_COMPRESSION", "true"),
        description="Compress channel values before durable storage",
    )

    # Retention
    max_checkpoints: int = Field(
        default_factory=lambda: int(os.getenv("CHECKPOINT_MAX_PER_THREAD", "1000")),
        description="Checkpoints kept per thread/namespace by the sweeper",
    )
    retention_seconds: int = Field(
        default_factory=lambda: int(
            os.getenv("CHECKPOINT_RETENTION_SECONDS", str(24 * 60 * 60))
        ),
        description="Checkpoints older than this are removed by the sweeper",
    )
    cleanup_interval_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("CHECKPOINT_CLEANUP_INTERVAL", str(24 * 60 * 60))
        ),
        description="Delay between retention sweeps",
    )
