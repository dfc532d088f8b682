"""Models package for the funeral planning workflow engine."""

from .state_models import (
    PlanningStage,
    AgentRole,
    WorkflowStatus,
    DecisionType,
    PendingDecision,
    PlanningState,
    StateUpdate,
)
from .checkpoint_models import (
    Priority,
    CheckpointSource,
    ThreadRef,
    CheckpointMetadata,
    Checkpoint,
    CheckpointTuple,
    CheckpointStatistics,
    CleanupReport,
    CheckpointRecord,
)
from .workflow_models import WorkflowConfig, StepResult

__all__ = [
    # State
    "PlanningStage",
    "AgentRole",
    "WorkflowStatus",
    "DecisionType",
    "PendingDecision",
    "PlanningState",
    "StateUpdate",
    # Checkpoints
    "Priority",
    "CheckpointSource",
    "ThreadRef",
    "CheckpointMetadata",
    "Checkpoint",
    "CheckpointTuple",
    "CheckpointStatistics",
    "CleanupReport",
    "CheckpointRecord",
    # Workflow
    "WorkflowConfig",
    "StepResult",
]
