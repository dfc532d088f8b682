"""Tiered checkpoint store: durable SQL source of truth behind a Redis cache."""

import asyncio
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from ..config.store_config import StoreConfig
from ..exceptions import (
    CheckpointDecodeError,
    CheckpointNotFoundError,
    CheckpointStorageError,
    CheckpointValidationError,
)
from ..models.checkpoint_models import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    CheckpointStatistics,
    CheckpointTuple,
    CleanupReport,
    ThreadRef,
)
from ..storage.base import BaseCheckpointCache, BaseCheckpointRepository
from ..storage.cache import RedisCheckpointCache
from ..storage.codec import CheckpointCodec
from ..storage.durable import SQLCheckpointRepository
from .retention_service import RetentionSweeper

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _validate_ref(ref: ThreadRef, require_checkpoint_id: bool = False) -> None:
    if not isinstance(ref, ThreadRef):
        raise CheckpointValidationError(f"Expected a ThreadRef, got {type(ref).__name__}")
    if not isinstance(ref.thread_id, str) or not ref.thread_id.strip():
        raise CheckpointValidationError("thread_id is required")
    if require_checkpoint_id and not ref.checkpoint_id:
        raise CheckpointValidationError(
            f"checkpoint_id is required for thread {ref.thread_id}"
        )


class TieredCheckpointStore:
    """
    Checkpoint store with write-through caching.

    Writes go to the durable tier first and populate the cache only once the
    durable write succeeded. Exact-id reads are served from the cache with a
    durable fallback and backfill; "latest" resolution, listing and statistics
    always use the durable tier.

    Concurrent puts of the same address are last-write-wins at the durable tier.
    """

    def __init__(
        self,
        config: StoreConfig,
        cache: BaseCheckpointCache,
        repository: BaseCheckpointRepository,
    ):
        """
        Initialize the store.

        Args:
            config: Store configuration
            cache: Cache tier
            repository: Durable tier
        """
        self.config = config
        self.cache = cache
        self.repository = repository
        self.codec = CheckpointCodec(
            enable_compression=config.enable_compression,
            checkpoint_type=config.checkpoint_type,
        )
        self._sweeper: Optional[RetentionSweeper] = None

    async def setup(self) -> None:
        """Create the durable schema. Safe to call repeatedly."""
        await self.repository.setup()

    async def put(
        self,
        ref: ThreadRef,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: Optional[Dict[str, int]] = None,
    ) -> ThreadRef:
        """
        Persist a checkpoint.

        Args:
            ref: Thread address (any checkpoint id on it is ignored)
            checkpoint: Snapshot to store
            metadata: Metadata stored in the same row
            new_versions: Channel versions written by this transition

        Returns:
            Address carrying the stored checkpoint id

        Raises:
            CheckpointValidationError: Missing thread id (nothing is written)
            CheckpointStorageError: Durable write failed (cache untouched)
            CheckpointCacheError: Cache write failed after the durable write
        """
        _validate_ref(ref)
        if not checkpoint.id:
            raise CheckpointValidationError("checkpoint id is required")

        if new_versions:
            checkpoint = checkpoint.model_copy(
                update={"channel_versions": {**checkpoint.channel_versions, **new_versions}}
            )

        record = self.codec.encode(ref, checkpoint, metadata)
        await self.repository.upsert(record)
        await self.cache.set(record)

        logger.info(
            f"Saved checkpoint {checkpoint.id} for {ref.thread_id} "
            f"(stage: {record.stage}, version: {checkpoint.version})"
        )
        return record.ref

    async def get(self, ref: ThreadRef) -> Optional[CheckpointTuple]:
        """
        Load a checkpoint.

        Args:
            ref: Address; without a checkpoint id the latest checkpoint of the
                thread is returned

        Returns:
            Checkpoint tuple if found
        """
        _validate_ref(ref)

        if not ref.checkpoint_id:
            record = await self.repository.fetch_latest(ref.thread_id, ref.checkpoint_ns)
            return self.codec.decode(record) if record else None

        record = await self.cache.get(ref)
        if record is not None:
            return self.codec.decode(record)

        record = await self.repository.fetch(ref)
        if record is None:
            return None

        result = self.codec.decode(record)
        await self.cache.set(record)
        return result

    async def list(
        self,
        ref: ThreadRef,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CheckpointTuple]:
        """
        List checkpoints of one thread, most recent first.

        Args:
            ref: Thread address
            filter: Metadata key/value pairs that must all match
            before: Only checkpoints strictly older than this checkpoint id
            limit: Maximum results

        Returns:
            Matching checkpoint tuples
        """
        _validate_ref(ref)

        before_ts = None
        if before is not None:
            anchor = await self.repository.fetch(ref.with_checkpoint(before))
            if anchor is None:
                raise CheckpointNotFoundError(
                    f"Checkpoint {before} not found for thread {ref.thread_id}"
                )
            before_ts = anchor.checkpoint_ts

        records = await self.repository.query(ref.thread_id, ref.checkpoint_ns, before_ts)

        results: List[CheckpointTuple] = []
        for record in records:
            if limit is not None and len(results) >= limit:
                break
            item = self.codec.decode(record)
            if filter and not item.metadata.matches(filter):
                continue
            results.append(item)

        logger.debug(f"Listed {len(results)} checkpoints for {ref.thread_id}")
        return results

    async def delete(self, ref: ThreadRef) -> bool:
        """
        Delete a checkpoint from both tiers.

        Returns:
            True if the durable tier held the checkpoint
        """
        _validate_ref(ref, require_checkpoint_id=True)

        deleted = await self.repository.delete(ref)
        await self.cache.delete(ref)

        if deleted:
            logger.info(f"Deleted checkpoint {ref.checkpoint_id} for {ref.thread_id}")
        return deleted

    async def cleanup(self) -> CleanupReport:
        """
        Apply the retention policy to every thread.

        Checkpoints older than the retention window go first, then each thread
        is trimmed to ``max_checkpoints`` keeping the most recent. Cached copies
        of swept checkpoints age out through their TTL.

        Returns:
            Sweep report
        """
        report = CleanupReport()
        cutoff = report.started_at - timedelta(seconds=self.config.retention_seconds)

        for thread_id, checkpoint_ns in await self.repository.list_threads():
            report.threads_swept += 1
            try:
                report.expired_deleted += await self.repository.delete_older_than(
                    thread_id, checkpoint_ns, cutoff
                )
                report.overflow_deleted += await self.repository.delete_beyond_rank(
                    thread_id, checkpoint_ns, self.config.max_checkpoints
                )
            except CheckpointStorageError as e:
                key = f"{thread_id}:{checkpoint_ns}" if checkpoint_ns else thread_id
                logger.warning(f"Retention sweep failed for thread {key}: {e}")
                report.failed_threads[key] = str(e)

        logger.info(
            f"Retention sweep removed {report.total_deleted} checkpoints "
            f"across {report.threads_swept} threads"
        )
        return report

    async def get_statistics(self, thread_id: Optional[str] = None) -> CheckpointStatistics:
        """Aggregate counts from the durable tier."""
        return await self.repository.statistics(thread_id)

    async def export_checkpoints(self, thread_id: str, destination: PathLike) -> int:
        """
        Write a thread's full history to a JSON-lines file.

        Args:
            thread_id: Thread to export (all namespaces)
            destination: Output file path

        Returns:
            Number of checkpoints exported
        """
        _validate_ref(ThreadRef(thread_id=thread_id))

        lines = []
        for record in await self.repository.fetch_thread(thread_id):
            item = self.codec.decode(record)
            lines.append(
                json.dumps(
                    {
                        "thread_id": item.ref.thread_id,
                        "checkpoint_ns": item.ref.checkpoint_ns,
                        "checkpoint": item.checkpoint.model_dump(mode="json"),
                        "metadata": item.metadata.model_dump(mode="json"),
                    }
                )
            )

        path = Path(destination)
        await asyncio.to_thread(path.write_text, "".join(f"{line}\n" for line in lines), "utf-8")

        logger.info(f"Exported {len(lines)} checkpoints for {thread_id} to {path}")
        return len(lines)

    async def import_checkpoints(self, source: PathLike, mark_imported: bool = True) -> int:
        """
        Load checkpoints written by ``export_checkpoints``.

        Args:
            source: JSON-lines file path
            mark_imported: Record ``source="import"`` in the metadata

        Returns:
            Number of checkpoints imported

        Raises:
            CheckpointDecodeError: If a line is malformed (earlier lines stay imported)
        """
        path = Path(source)
        text = await asyncio.to_thread(path.read_text, "utf-8")

        count = 0
        for line_no, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
                ref = ThreadRef(
                    thread_id=entry["thread_id"],
                    checkpoint_ns=entry.get("checkpoint_ns", ""),
                )
                checkpoint = Checkpoint.model_validate(entry["checkpoint"])
                metadata = CheckpointMetadata.model_validate(entry["metadata"])
            except (ValueError, KeyError, TypeError, ValidationError) as e:
                raise CheckpointDecodeError(f"{path}:{line_no}: malformed checkpoint entry") from e

            if mark_imported:
                metadata = metadata.model_copy(update={"source": CheckpointSource.IMPORT})
            await self.put(ref, checkpoint, metadata)
            count += 1

        logger.info(f"Imported {count} checkpoints from {path}")
        return count

    def start_retention(self, interval_seconds: Optional[float] = None) -> RetentionSweeper:
        """Start the background retention sweeper owned by this store."""
        if self._sweeper is None:
            self._sweeper = RetentionSweeper(
                self,
                interval_seconds or self.config.cleanup_interval_seconds,
            )
        self._sweeper.start()
        return self._sweeper

    async def close(self) -> None:
        """Stop the sweeper and release both tiers."""
        if self._sweeper is not None:
            await self._sweeper.stop()
            self._sweeper = None
        await self.cache.close()
        await self.repository.close()
        logger.info("Checkpoint store closed")


def create_checkpoint_store(
    config: Optional[StoreConfig] = None,
    cache_client: Optional[Redis] = None,
    engine: Optional[AsyncEngine] = None,
) -> TieredCheckpointStore:
    """
    Factory function to create the tiered checkpoint store.

    Args:
        config: Store configuration (read from the environment when omitted)
        cache_client: Existing Redis client to reuse
        engine: Existing async SQLAlchemy engine to reuse

    Returns:
        Store instance; call ``setup()`` before first use
    """
    config = config or StoreConfig()
    store = TieredCheckpointStore(
        config=config,
        cache=RedisCheckpointCache(config, client=cache_client),
        repository=SQLCheckpointRepository(config, engine=engine),
    )
    logger.info(f"Created checkpoint store (table: {config.table_name})")
    return store
