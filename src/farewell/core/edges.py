"""Routing logic for the planning workflow.

The router is a pure function of state. Precedence on every step:

1. any recorded error routes to the error handler
2. any pending decision routes to human review
3. otherwise the stage table decides, with completion gates on document
   collection and approvals
"""

import logging
from typing import Dict, FrozenSet

from ..models.state_models import PlanningStage, PlanningState

logger = logging.getLogger(__name__)

HUMAN_REVIEW = "human_review"
ERROR_HANDLER = PlanningStage.ERROR.value

REQUIRED_APPROVALS: FrozenSet[str] = frozenset({"family", "director", "venue"})

STAGE_TRANSITIONS: Dict[str, str] = {
    PlanningStage.INITIAL.value: PlanningStage.REQUIREMENTS_GATHERING.value,
    PlanningStage.REQUIREMENTS_GATHERING.value: PlanningStage.CULTURAL_ASSESSMENT.value,
    PlanningStage.CULTURAL_ASSESSMENT.value: PlanningStage.DOCUMENT_COLLECTION.value,
    PlanningStage.DOCUMENT_COLLECTION.value: PlanningStage.VENUE_SELECTION.value,
    PlanningStage.VENUE_SELECTION.value: PlanningStage.SERVICE_PLANNING.value,
    PlanningStage.SERVICE_PLANNING.value: PlanningStage.APPROVAL_PROCESS.value,
    PlanningStage.APPROVAL_PROCESS.value: PlanningStage.COORDINATION.value,
    PlanningStage.COORDINATION.value: PlanningStage.COMPLETED.value,
    PlanningStage.COMPLETED.value: PlanningStage.COMPLETED.value,
}

TERMINAL_STAGES: FrozenSet[str] = frozenset(
    {PlanningStage.COMPLETED.value, PlanningStage.ERROR.value}
)


def documents_complete(state: PlanningState) -> bool:
    """Every required document has been collected (set containment)."""
    return set(state.documents_required) <= set(state.documents_collected)


def approvals_complete(state: PlanningState) -> bool:
    """Family, director and venue have all approved."""
    return REQUIRED_APPROVALS <= set(state.approvals)


def needs_human_review(state: PlanningState) -> bool:
    """
    Check whether the workflow must wait for a human.

    Args:
        state: Current workflow state

    Returns:
        True if decisions are pending
    """
    return bool(state.pending_decisions)


def route_next(state: PlanningState) -> str:
    """
    Decide which node runs next.

    Args:
        state: Current workflow state

    Returns:
        Node name: a stage value, ``human_review`` or ``error``
    """
    if state.errors:
        logger.info(f"{len(state.errors)} error(s) recorded, routing to: {ERROR_HANDLER}")
        return ERROR_HANDLER

    if needs_human_review(state):
        logger.info(f"Decisions pending, routing to: {HUMAN_REVIEW}")
        return HUMAN_REVIEW

    stage = state.planning_stage

    if stage == PlanningStage.DOCUMENT_COLLECTION.value:
        if documents_complete(state):
            return PlanningStage.VENUE_SELECTION.value
        logger.debug("Documents outstanding, staying in document collection")
        return PlanningStage.DOCUMENT_COLLECTION.value

    if stage == PlanningStage.APPROVAL_PROCESS.value:
        if approvals_complete(state):
            return PlanningStage.COORDINATION.value
        logger.info(f"Approvals incomplete, routing to: {HUMAN_REVIEW}")
        return HUMAN_REVIEW

    next_node = STAGE_TRANSITIONS.get(stage)
    if next_node is None:
        logger.warning(
            f"Unmapped planning stage {stage!r}, falling back to "
            f"{PlanningStage.REQUIREMENTS_GATHERING.value}"
        )
        return PlanningStage.REQUIREMENTS_GATHERING.value

    return next_node


def is_halted(state: PlanningState, next_node: str) -> bool:
    """
    Check whether the workflow rests in a terminal stage.

    A terminal stage routing back to itself (COMPLETED's self-loop, or ERROR
    while errors remain) ends execution without running another node.

    Args:
        state: Current workflow state
        next_node: Router decision for this state

    Returns:
        True if no node should run
    """
    return state.planning_stage in TERMINAL_STAGES and next_node == state.planning_stage
