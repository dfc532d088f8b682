"""Checkpoint history and point-in-time recovery."""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

from ..exceptions import CheckpointNotFoundError
from ..models.checkpoint_models import (
    Checkpoint,
    CheckpointSource,
    CheckpointTuple,
    ThreadRef,
)
from ..models.state_models import PlanningState, utc_now
from .state import bump_channel_versions

if TYPE_CHECKING:
    from ..services.checkpoint_service import TieredCheckpointStore

logger = logging.getLogger(__name__)


def next_checkpoint_timestamp(parent: Optional[Checkpoint]) -> datetime:
    """
    Timestamp for a checkpoint written on top of ``parent``.

    Strictly later than the parent so "latest" resolution never ties, even
    when the clock has not advanced.
    """
    now = utc_now()
    if parent is not None and now <= parent.timestamp:
        return parent.timestamp + timedelta(microseconds=1)
    return now


class CheckpointHistory:
    """
    Read a thread's checkpoint history and roll it back.

    Rollback never rewrites history: it writes a new checkpoint whose channel
    values copy the target and whose parent is the current head.
    """

    def __init__(self, store: "TieredCheckpointStore", checkpoint_ns: str = ""):
        """
        Initialize checkpoint history.

        Args:
            store: Checkpoint store
            checkpoint_ns: Namespace the history is read from
        """
        self.store = store
        self.checkpoint_ns = checkpoint_ns

    def _ref(self, thread_id: str, checkpoint_id: Optional[str] = None) -> ThreadRef:
        return ThreadRef(
            thread_id=thread_id,
            checkpoint_ns=self.checkpoint_ns,
            checkpoint_id=checkpoint_id,
        )

    async def get_history(self, thread_id: str, limit: int = 10) -> List[CheckpointTuple]:
        """
        Get checkpoint history for a thread.

        Args:
            thread_id: Thread identifier
            limit: Maximum checkpoints to return

        Returns:
            Checkpoints, most recent first
        """
        return await self.store.list(self._ref(thread_id), limit=limit)

    async def find_version(self, thread_id: str, version: int) -> Optional[CheckpointTuple]:
        """Find the checkpoint carrying a given version number."""
        for item in await self.store.list(self._ref(thread_id)):
            if item.checkpoint.version == version:
                return item
        return None

    async def rollback_to_checkpoint(self, thread_id: str, checkpoint_id: str) -> CheckpointTuple:
        """
        Restore the state recorded in a specific checkpoint.

        Args:
            thread_id: Thread identifier
            checkpoint_id: Target checkpoint ID

        Returns:
            The new head checkpoint

        Raises:
            CheckpointNotFoundError: If the thread or target does not exist
        """
        target = await self.store.get(self._ref(thread_id, checkpoint_id))
        if target is None:
            raise CheckpointNotFoundError(
                f"Checkpoint {checkpoint_id} not found for thread {thread_id}"
            )
        return await self._restore(thread_id, target)

    async def rollback_to_version(self, thread_id: str, version: int) -> CheckpointTuple:
        """
        Restore the state recorded at a specific version.

        Raises:
            CheckpointNotFoundError: If no checkpoint carries the version
        """
        target = await self.find_version(thread_id, version)
        if target is None:
            raise CheckpointNotFoundError(f"Version {version} not found for thread {thread_id}")
        return await self._restore(thread_id, target)

    async def _restore(self, thread_id: str, target: CheckpointTuple) -> CheckpointTuple:
        head = await self.store.get(self._ref(thread_id))
        if head is None:
            raise CheckpointNotFoundError(f"No checkpoints found for thread {thread_id}")

        timestamp = next_checkpoint_timestamp(head.checkpoint)
        state: PlanningState = target.checkpoint.channel_values.model_copy(
            update={"timestamp": timestamp}, deep=True
        )
        versions = bump_channel_versions(
            head.checkpoint.channel_versions, PlanningState.model_fields
        )
        checkpoint = Checkpoint(
            parent_id=head.checkpoint.id,
            version=head.checkpoint.version + 1,
            timestamp=timestamp,
            channel_values=state,
            channel_versions=versions,
            pending_sends=list(target.checkpoint.pending_sends),
        )
        metadata = head.metadata.model_copy(
            update={
                "stage": state.planning_stage,
                "timestamp": timestamp,
                "version": checkpoint.version,
                "source": CheckpointSource.ROLLBACK,
                "step": head.metadata.step + 1,
            }
        )

        ref = await self.store.put(self._ref(thread_id), checkpoint, metadata)
        logger.info(
            f"Rolled back {thread_id} to checkpoint {target.checkpoint.id} "
            f"(version {target.checkpoint.version}) as version {checkpoint.version}"
        )
        return CheckpointTuple(
            ref=ref,
            checkpoint=checkpoint,
            metadata=metadata,
            parent_ref=ref.with_checkpoint(head.checkpoint.id),
        )
