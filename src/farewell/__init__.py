"""Resumable funeral-planning workflow engine with tiered checkpointing."""

from .config import StoreConfig
from .exceptions import (
    CheckpointError,
    CheckpointValidationError,
    CheckpointStorageError,
    CheckpointCacheError,
    CheckpointDecodeError,
    CheckpointNotFoundError,
    WorkflowError,
    ThreadNotFoundError,
    WorkflowAlreadyStartedError,
)
from .services import (
    TieredCheckpointStore,
    create_checkpoint_store,
    RetentionSweeper,
    WorkflowOrchestrator,
    HumanReviewService,
)

__version__ = "0.1.0"

__all__ = [
    "StoreConfig",
    "CheckpointError",
    "CheckpointValidationError",
    "CheckpointStorageError",
    "CheckpointCacheError",
    "CheckpointDecodeError",
    "CheckpointNotFoundError",
    "WorkflowError",
    "ThreadNotFoundError",
    "WorkflowAlreadyStartedError",
    "TieredCheckpointStore",
    "create_checkpoint_store",
    "RetentionSweeper",
    "WorkflowOrchestrator",
    "HumanReviewService",
]
