"""State models for the funeral planning workflow."""

import uuid
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime, timezone
from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class PlanningStage(str, Enum):
    """Stages of the planning workflow. The set is fixed."""

    INITIAL = "initial"
    REQUIREMENTS_GATHERING = "requirements_gathering"
    CULTURAL_ASSESSMENT = "cultural_assessment"
    DOCUMENT_COLLECTION = "document_collection"
    VENUE_SELECTION = "venue_selection"
    SERVICE_PLANNING = "service_planning"
    APPROVAL_PROCESS = "approval_process"
    COORDINATION = "coordination"
    COMPLETED = "completed"
    ERROR = "error"


class AgentRole(str, Enum):
    """Node owners recorded in ``current_agent``."""

    ORCHESTRATOR = "orchestrator"
    REQUIREMENTS_GATHERER = "requirements_gatherer"
    CULTURAL_ASSESSOR = "cultural_assessor"
    DOCUMENT_COLLECTOR = "document_collector"
    VENUE_SELECTOR = "venue_selector"
    SERVICE_PLANNER = "service_planner"
    APPROVAL_PROCESSOR = "approval_processor"
    COORDINATOR = "coordinator"
    HUMAN_REVIEWER = "human_reviewer"
    ERROR_HANDLER = "error_handler"


class WorkflowStatus(str, Enum):
    """Outcome of a call into the workflow engine."""

    RUNNING = "running"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    ERROR = "error"


class DecisionType(str, Enum):
    """Kinds of decisions that park a workflow for human review."""

    REQUIREMENTS_INTAKE = "requirements_intake"
    CULTURAL_ACCOMMODATION = "cultural_accommodation"
    DOCUMENT_COLLECTION = "document_collection"
    SERVICE_APPROVAL = "service_approval"
    COST_APPROVAL = "cost_approval"


class PendingDecision(BaseModel):
    """A decision awaiting a human before the workflow may advance."""

    decision_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: DecisionType
    description: str
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: str = Field(default="medium")
    created_at: datetime = Field(default_factory=utc_now)


class PlanningState(BaseModel):
    """
    Channel values of one checkpoint.

    Every field is merged by the reducer declared for it in
    ``farewell.core.state.FIELD_REDUCERS``.
    """

    # Scalars (last write wins)
    planning_stage: str = PlanningStage.INITIAL.value
    current_agent: str = AgentRole.ORCHESTRATOR.value

    # Shallow-merged objects
    family_requirements: Dict[str, Any] = Field(default_factory=dict)
    cultural_requirements: Dict[str, Any] = Field(default_factory=dict)
    venue_requirements: Dict[str, Any] = Field(default_factory=dict)
    service_details: Dict[str, Any] = Field(default_factory=dict)

    # Append-only lists
    documents_required: List[str] = Field(default_factory=list)
    documents_collected: List[str] = Field(default_factory=list)
    approvals: List[str] = Field(default_factory=list)
    pending_decisions: List[PendingDecision] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    messages: List[Dict[str, Any]] = Field(default_factory=list)

    # Replaced with the transition time on every merge
    timestamp: datetime = Field(default_factory=utc_now)


class StateUpdate(BaseModel):
    """
    Partial update returned by a node or supplied by an external driver.

    Fields left as ``None`` are not written.
    """

    planning_stage: Optional[str] = None
    current_agent: Optional[str] = None
    family_requirements: Optional[Dict[str, Any]] = None
    cultural_requirements: Optional[Dict[str, Any]] = None
    venue_requirements: Optional[Dict[str, Any]] = None
    service_details: Optional[Dict[str, Any]] = None
    documents_required: Optional[List[str]] = None
    documents_collected: Optional[List[str]] = None
    approvals: Optional[List[str]] = None
    pending_decisions: Optional[List[PendingDecision]] = None
    errors: Optional[List[str]] = None
    messages: Optional[List[Dict[str, Any]]] = None

    def written_fields(self) -> List[str]:
        """Names of the channels this update writes."""
        return [name for name, value in self if value is not None]
