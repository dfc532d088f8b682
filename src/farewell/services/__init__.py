"""Services for checkpoint storage, retention and workflow execution."""

from .checkpoint_service import TieredCheckpointStore, create_checkpoint_store
from .retention_service import RetentionSweeper
from .workflow_service import WorkflowOrchestrator
from .human_approval_service import HumanReviewService

__all__ = [
    "TieredCheckpointStore",
    "create_checkpoint_store",
    "RetentionSweeper",
    "WorkflowOrchestrator",
    "HumanReviewService",
]
