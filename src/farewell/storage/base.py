"""Abstract base classes for the checkpoint storage tiers."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from ..models.checkpoint_models import (
    CheckpointRecord,
    CheckpointStatistics,
    ThreadRef,
)


class BaseCheckpointCache(ABC):
    """Fast, lossy tier holding encoded checkpoints by exact address."""

    @abstractmethod
    async def get(self, ref: ThreadRef) -> Optional[CheckpointRecord]:
        """
        Look up a checkpoint by its full address.

        Args:
            ref: Address with a checkpoint id

        Returns:
            Cached record if present
        """
        pass

    @abstractmethod
    async def set(self, record: CheckpointRecord) -> None:
        """
        Cache a record with the configured TTL.

        Args:
            record: Encoded checkpoint
        """
        pass

    @abstractmethod
    async def delete(self, ref: ThreadRef) -> bool:
        """
        Remove a cached checkpoint.

        Returns:
            True if a key was removed
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        pass


class BaseCheckpointRepository(ABC):
    """Durable tier and the only source of truth for ordering."""

    @abstractmethod
    async def setup(self) -> None:
        """Create tables and indexes if they do not exist."""
        pass

    @abstractmethod
    async def upsert(self, record: CheckpointRecord) -> None:
        """Insert a record, replacing any row with the same address."""
        pass

    @abstractmethod
    async def fetch(self, ref: ThreadRef) -> Optional[CheckpointRecord]:
        """Fetch one record by its full address."""
        pass

    @abstractmethod
    async def fetch_latest(self, thread_id: str, checkpoint_ns: str) -> Optional[CheckpointRecord]:
        """Fetch the record with the greatest checkpoint timestamp."""
        pass

    @abstractmethod
    async def query(
        self,
        thread_id: str,
        checkpoint_ns: str,
        before_ts: Optional[datetime] = None,
    ) -> List[CheckpointRecord]:
        """
        Records of one thread, most recent first.

        Args:
            thread_id: Thread identifier
            checkpoint_ns: Namespace
            before_ts: Only records strictly older than this

        Returns:
            Ordered records
        """
        pass

    @abstractmethod
    async def fetch_thread(self, thread_id: str) -> List[CheckpointRecord]:
        """All records of a thread across namespaces, oldest first."""
        pass

    @abstractmethod
    async def delete(self, ref: ThreadRef) -> bool:
        """Delete one record. Returns True if a row was removed."""
        pass

    @abstractmethod
    async def list_threads(self) -> List[Tuple[str, str]]:
        """Distinct (thread_id, checkpoint_ns) pairs."""
        pass

    @abstractmethod
    async def delete_older_than(self, thread_id: str, checkpoint_ns: str, cutoff: datetime) -> int:
        """Delete records with a checkpoint timestamp before ``cutoff``."""
        pass

    @abstractmethod
    async def delete_beyond_rank(self, thread_id: str, checkpoint_ns: str, keep: int) -> int:
        """Keep the ``keep`` most recent records, deleting the rest."""
        pass

    @abstractmethod
    async def statistics(self, thread_id: Optional[str] = None) -> CheckpointStatistics:
        """Aggregate counts, optionally scoped to one thread."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Dispose of the engine."""
        pass

