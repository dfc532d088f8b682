"""Workflow configuration and execution models."""

from typing import List, Optional
from pydantic import BaseModel, Field

from .state_models import PendingDecision, PlanningState, WorkflowStatus


class WorkflowConfig(BaseModel):
    """Workflow engine configuration model."""

    checkpoint_ns: str = Field(default="", description="Checkpoint namespace")
    enable_human_approval: bool = Field(default=True)
    interrupt_before: List[str] = Field(
        default_factory=lambda: ["human_review", "approval_process"],
        description="Nodes the engine suspends before",
    )
    max_steps_per_run: int = Field(
        default=50, description="Upper bound on nodes executed by one run() call"
    )


class StepResult(BaseModel):
    """What the engine reports back to its driver after a call."""

    thread_id: str
    checkpoint_ns: str = ""
    checkpoint_id: Optional[str] = None
    status: WorkflowStatus
    stage: str
    next_node: Optional[str] = None
    steps_executed: int = 0
    errors: List[str] = Field(default_factory=list)
    pending_decisions: List[PendingDecision] = Field(default_factory=list)
    state: PlanningState

    @property
    def is_interrupted(self) -> bool:
        return self.status == WorkflowStatus.INTERRUPTED
