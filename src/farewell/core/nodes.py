"""Node functions for the planning workflow.

Each node receives the full accumulated state and returns a ``StateUpdate``
that records the stage it processed. Nodes never mutate state and never raise
for domain problems: they append to ``errors`` or ``pending_decisions``
instead. Side effects (emails, bookings) belong to collaborators outside the
engine.
"""

import logging
from typing import Any, Dict, List

from ..models.state_models import (
    AgentRole,
    DecisionType,
    PendingDecision,
    PlanningStage,
    PlanningState,
    StateUpdate,
    utc_now,
)
from .edges import REQUIRED_APPROVALS

logger = logging.getLogger(__name__)

REQUIRED_FAMILY_FIELDS = ("primary_contact", "service_type")

SERVICE_TYPES = ("burial", "cremation", "memorial", "celebration_of_life")

BASE_DOCUMENTS = ("death_certificate",)
SERVICE_DOCUMENTS: Dict[str, List[str]] = {
    "burial": ["burial_permit"],
    "cremation": ["cremation_permit"],
}


def _message(agent: AgentRole, content: str) -> Dict[str, Any]:
    return {
        "role": agent.value,
        "content": content,
        "timestamp": utc_now().isoformat(),
    }


def _requested(state: PlanningState, decision_type: DecisionType) -> bool:
    return any(d.type == decision_type for d in state.pending_decisions)


async def requirements_gathering_node(state: PlanningState) -> StateUpdate:
    """
    Check the family intake for the fields every later stage relies on.

    Args:
        state: Current workflow state

    Returns:
        State update
    """
    logger.info("Gathering family requirements")
    agent = AgentRole.REQUIREMENTS_GATHERER
    requirements = state.family_requirements

    missing = [f for f in REQUIRED_FAMILY_FIELDS if not requirements.get(f)]
    if missing:
        decision = PendingDecision(
            type=DecisionType.REQUIREMENTS_INTAKE,
            description="Family intake is incomplete",
            data={"missing_fields": missing},
            priority="high",
        )
        return StateUpdate(
            planning_stage=PlanningStage.REQUIREMENTS_GATHERING.value,
            current_agent=agent.value,
            pending_decisions=[decision],
            messages=[_message(agent, f"Missing intake fields: {', '.join(missing)}")],
        )

    service_type = requirements["service_type"]
    if service_type not in SERVICE_TYPES:
        return StateUpdate(
            planning_stage=PlanningStage.REQUIREMENTS_GATHERING.value,
            current_agent=agent.value,
            errors=[f"Unsupported service type: {service_type}"],
            messages=[_message(agent, "Requirements rejected")],
        )

    return StateUpdate(
        planning_stage=PlanningStage.REQUIREMENTS_GATHERING.value,
        current_agent=agent.value,
        service_details={"service_type": service_type},
        messages=[
            _message(agent, "Requirements gathering completed. Proceeding to cultural assessment.")
        ],
    )


async def cultural_assessment_node(state: PlanningState) -> StateUpdate:
    """
    Assess cultural and religious requirements.

    A stated tradition must be confirmed by a human before planning continues.

    Args:
        state: Current workflow state

    Returns:
        State update
    """
    logger.info("Assessing cultural and religious requirements")
    agent = AgentRole.CULTURAL_ASSESSOR
    cultural = state.cultural_requirements
    tradition = cultural.get("tradition") or cultural.get("religion")

    update = StateUpdate(
        planning_stage=PlanningStage.CULTURAL_ASSESSMENT.value,
        current_agent=agent.value,
    )

    if tradition and not cultural.get("accommodation_confirmed"):
        update.pending_decisions = [
            PendingDecision(
                type=DecisionType.CULTURAL_ACCOMMODATION,
                description=f"Confirm accommodation for {tradition} customs",
                data={"tradition": tradition},
            )
        ]
        update.messages = [_message(agent, f"Cultural accommodation needs confirmation: {tradition}")]
        return update

    if tradition:
        update.service_details = {"cultural_elements": list(cultural.get("elements", []))}
    update.messages = [
        _message(agent, "Cultural assessment completed. Proceeding to document collection.")
    ]
    return update


async def document_collection_node(state: PlanningState) -> StateUpdate:
    """
    Work out the required documents and request the outstanding ones.

    Args:
        state: Current workflow state

    Returns:
        State update
    """
    logger.info("Managing document collection and verification")
    agent = AgentRole.DOCUMENT_COLLECTOR

    service_type = state.family_requirements.get("service_type", "")
    needed = list(BASE_DOCUMENTS) + SERVICE_DOCUMENTS.get(service_type, [])
    new_required = [d for d in needed if d not in state.documents_required]

    required = list(state.documents_required) + new_required
    outstanding = [d for d in required if d not in set(state.documents_collected)]

    update = StateUpdate(
        planning_stage=PlanningStage.DOCUMENT_COLLECTION.value,
        current_agent=agent.value,
    )
    if new_required:
        update.documents_required = new_required

    if outstanding and not _requested(state, DecisionType.DOCUMENT_COLLECTION):
        update.pending_decisions = [
            PendingDecision(
                type=DecisionType.DOCUMENT_COLLECTION,
                description="Documents outstanding",
                data={"outstanding": outstanding},
                priority="high",
            )
        ]
        update.messages = [_message(agent, f"Waiting for documents: {', '.join(outstanding)}")]
    else:
        update.messages = [_message(agent, "All required documents collected.")]
    return update


async def venue_selection_node(state: PlanningState) -> StateUpdate:
    """Record the selected venue in the service details."""
    logger.info("Processing venue selection")
    agent = AgentRole.VENUE_SELECTOR
    venue = dict(state.venue_requirements)

    update = StateUpdate(
        planning_stage=PlanningStage.VENUE_SELECTION.value,
        current_agent=agent.value,
        messages=[_message(agent, "Venue selection completed. Proceeding to service planning.")],
    )
    if venue:
        update.service_details = {"venue": venue}
    return update


async def service_planning_node(state: PlanningState) -> StateUpdate:
    """Assemble the service plan from the gathered requirements."""
    logger.info("Planning service details")
    agent = AgentRole.SERVICE_PLANNER
    family = state.family_requirements

    plan: Dict[str, Any] = {"planned_at": utc_now().isoformat()}
    for key in ("preferred_date", "expected_attendance"):
        if key in family:
            plan[key] = family[key]

    return StateUpdate(
        planning_stage=PlanningStage.SERVICE_PLANNING.value,
        current_agent=agent.value,
        service_details=plan,
        messages=[_message(agent, "Service planning completed. Awaiting approvals.")],
    )


async def approval_process_node(state: PlanningState) -> StateUpdate:
    """
    Request family approval of the service and cost.

    Args:
        state: Current workflow state

    Returns:
        State update
    """
    logger.info("Processing approvals")
    agent = AgentRole.APPROVAL_PROCESSOR
    missing = sorted(REQUIRED_APPROVALS - set(state.approvals))

    update = StateUpdate(
        planning_stage=PlanningStage.APPROVAL_PROCESS.value,
        current_agent=agent.value,
    )
    if not missing:
        update.messages = [_message(agent, "All approvals obtained.")]
        return update

    decisions = []
    if not _requested(state, DecisionType.SERVICE_APPROVAL):
        decisions.append(
            PendingDecision(
                type=DecisionType.SERVICE_APPROVAL,
                description="Final service details require family approval",
                data={"service_details": dict(state.service_details), "missing": missing},
                priority="high",
            )
        )
    if not _requested(state, DecisionType.COST_APPROVAL):
        decisions.append(
            PendingDecision(
                type=DecisionType.COST_APPROVAL,
                description="Total cost estimate requires approval",
                data={"missing": missing},
                priority="high",
            )
        )
    if decisions:
        update.pending_decisions = decisions
    update.messages = [_message(agent, "Approval process initiated. Human review required.")]
    return update


async def coordination_node(state: PlanningState) -> StateUpdate:
    """Final coordination and scheduling."""
    logger.info("Final coordination and scheduling")
    agent = AgentRole.COORDINATOR
    return StateUpdate(
        planning_stage=PlanningStage.COORDINATION.value,
        current_agent=agent.value,
        service_details={"coordinated_at": utc_now().isoformat()},
        messages=[_message(agent, "Coordination completed.")],
    )


async def completion_node(state: PlanningState) -> StateUpdate:
    """Mark the plan as completed."""
    logger.info("Funeral planning completed")
    agent = AgentRole.ORCHESTRATOR
    return StateUpdate(
        planning_stage=PlanningStage.COMPLETED.value,
        current_agent=agent.value,
        messages=[_message(agent, "Funeral planning coordination completed successfully.")],
    )


async def human_review_node(state: PlanningState) -> StateUpdate:
    """
    Run once a human has resumed the workflow.

    The reviewer's decisions arrive through the resume payload; this node only
    records that the review happened.

    Args:
        state: Current workflow state

    Returns:
        State update
    """
    logger.info("Human review resumed")
    agent = AgentRole.HUMAN_REVIEWER
    remaining = len(state.pending_decisions)
    content = (
        f"Human review recorded; {remaining} decision(s) still pending."
        if remaining
        else "Human review recorded; no decisions pending."
    )
    return StateUpdate(current_agent=agent.value, messages=[_message(agent, content)])


async def error_handler_node(state: PlanningState) -> StateUpdate:
    """Park the workflow in the ERROR stage until errors are cleared."""
    logger.warning(f"Processing {len(state.errors)} workflow error(s)")
    agent = AgentRole.ERROR_HANDLER
    return StateUpdate(
        planning_stage=PlanningStage.ERROR.value,
        current_agent=agent.value,
        messages=[
            _message(agent, f"Error handling initiated. {len(state.errors)} errors to resolve.")
        ],
    )
