"""Checkpoint data models for state persistence."""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from .state_models import PlanningState, utc_now


class Priority(str, Enum):
    """Workflow priority recorded in checkpoint metadata."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CheckpointSource(str, Enum):
    """What produced a checkpoint."""

    INPUT = "input"
    LOOP = "loop"
    UPDATE = "update"
    ROLLBACK = "rollback"
    IMPORT = "import"


class ThreadRef(BaseModel):
    """
    Store addressing key.

    ``checkpoint_id`` left empty means "most recent checkpoint".
    """

    thread_id: str = ""
    checkpoint_ns: str = ""
    checkpoint_id: Optional[str] = None

    def with_checkpoint(self, checkpoint_id: Optional[str]) -> "ThreadRef":
        """Return a copy addressing a specific checkpoint."""
        return self.model_copy(update={"checkpoint_id": checkpoint_id})


class CheckpointMetadata(BaseModel):
    """Metadata stored alongside every checkpoint."""

    workflow_id: str = ""
    stage: str = ""
    family_id: Optional[str] = None
    director_id: Optional[str] = None
    associated_party_ids: List[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)
    version: int = 1
    cultural_context: Optional[str] = None
    source: CheckpointSource = CheckpointSource.LOOP
    step: int = 0

    def matches(self, filter: Dict[str, Any]) -> bool:
        """
        Subset match against this metadata.

        Args:
            filter: Key/value pairs that must all be equal

        Returns:
            True if every pair matches
        """
        dumped = self.model_dump(mode="json")
        for key, expected in filter.items():
            if isinstance(expected, Enum):
                expected = expected.value
            if key not in dumped or dumped[key] != expected:
                return False
        return True


class Checkpoint(BaseModel):
    """Immutable snapshot of workflow state at one transition."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    parent_id: Optional[str] = None
    version: int = 1
    timestamp: datetime = Field(default_factory=utc_now)
    channel_values: PlanningState = Field(default_factory=PlanningState)
    channel_versions: Dict[str, int] = Field(default_factory=dict)
    pending_sends: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        frozen = True


class CheckpointTuple(BaseModel):
    """A checkpoint together with its metadata and resolved addresses."""

    ref: ThreadRef
    checkpoint: Checkpoint
    metadata: CheckpointMetadata
    parent_ref: Optional[ThreadRef] = None


class CheckpointStatistics(BaseModel):
    """Aggregate counts computed against the durable tier."""

    total_checkpoints: int = 0
    checkpoints_by_thread: Dict[str, int] = Field(default_factory=dict)
    checkpoints_by_stage: Dict[str, int] = Field(default_factory=dict)
    oldest_checkpoint: Optional[datetime] = None
    newest_checkpoint: Optional[datetime] = None


class CleanupReport(BaseModel):
    """Result of one retention sweep."""

    threads_swept: int = 0
    expired_deleted: int = 0
    overflow_deleted: int = 0
    failed_threads: Dict[str, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utc_now)

    @property
    def total_deleted(self) -> int:
        return self.expired_deleted + self.overflow_deleted


class CheckpointRecord(BaseModel):
    """
    Encoded form of a checkpoint as held by the storage tiers.

    ``checkpoint`` is the serialized snapshot in the named ``encoding``;
    ``metadata`` is always plain JSON.
    """

    thread_id: str
    checkpoint_ns: str = ""
    checkpoint_id: str
    parent_checkpoint_id: Optional[str] = None
    type: str = "funeral_planning"
    checkpoint: str
    metadata: str
    encoding: str = "json"
    stage: str = ""
    checkpoint_ts: datetime

    @property
    def ref(self) -> ThreadRef:
        return ThreadRef(
            thread_id=self.thread_id,
            checkpoint_ns=self.checkpoint_ns,
            checkpoint_id=self.checkpoint_id,
        )
