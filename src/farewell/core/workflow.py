"""Planning workflow graph.

The graph is a plain value: a mapping from node name to node function, the
router, and the set of nodes the engine suspends before. Execution lives in
``farewell.services.workflow_service``.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, FrozenSet, Iterable, Mapping, Optional

from ..models.state_models import PlanningStage, PlanningState, StateUpdate
from .edges import HUMAN_REVIEW, route_next
from .nodes import (
    approval_process_node,
    completion_node,
    coordination_node,
    cultural_assessment_node,
    document_collection_node,
    error_handler_node,
    human_review_node,
    requirements_gathering_node,
    service_planning_node,
    venue_selection_node,
)

logger = logging.getLogger(__name__)

NodeFunc = Callable[[PlanningState], Awaitable[StateUpdate]]
Router = Callable[[PlanningState], str]

DEFAULT_INTERRUPTS: FrozenSet[str] = frozenset(
    {HUMAN_REVIEW, PlanningStage.APPROVAL_PROCESS.value}
)


@dataclass(frozen=True)
class WorkflowGraph:
    """Node table, router and interrupt points of a workflow."""

    nodes: Mapping[str, NodeFunc]
    router: Router
    interrupt_before: FrozenSet[str]
    entry_stage: str = PlanningStage.INITIAL.value

    def get_node(self, name: str) -> NodeFunc:
        """
        Look up a node by name.

        Raises:
            KeyError: If the graph has no such node
        """
        try:
            return self.nodes[name]
        except KeyError:
            raise KeyError(f"Workflow has no node named {name!r}") from None

    def is_interrupt(self, name: str) -> bool:
        return name in self.interrupt_before


def create_workflow(
    enable_human_approval: bool = True,
    interrupt_before: Optional[Iterable[str]] = None,
) -> WorkflowGraph:
    """
    Create the funeral planning workflow.

    Args:
        enable_human_approval: Suspend before approval_process; when False
            only human_review suspends
        interrupt_before: Override the default interrupt nodes (human_review
            is always included)

    Returns:
        WorkflowGraph ready to be driven by the orchestrator
    """
    logger.info("Creating planning workflow")

    nodes = {
        PlanningStage.REQUIREMENTS_GATHERING.value: requirements_gathering_node,
        PlanningStage.CULTURAL_ASSESSMENT.value: cultural_assessment_node,
        PlanningStage.DOCUMENT_COLLECTION.value: document_collection_node,
        PlanningStage.VENUE_SELECTION.value: venue_selection_node,
        PlanningStage.SERVICE_PLANNING.value: service_planning_node,
        PlanningStage.APPROVAL_PROCESS.value: approval_process_node,
        PlanningStage.COORDINATION.value: coordination_node,
        PlanningStage.COMPLETED.value: completion_node,
        PlanningStage.ERROR.value: error_handler_node,
        HUMAN_REVIEW: human_review_node,
    }

    # Pending decisions always wait for a human
    if not enable_human_approval:
        interrupts: FrozenSet[str] = frozenset({HUMAN_REVIEW})
    elif interrupt_before is None:
        interrupts = DEFAULT_INTERRUPTS
    else:
        interrupts = frozenset(interrupt_before) | {HUMAN_REVIEW}

    unknown = interrupts - set(nodes)
    if unknown:
        raise ValueError(f"Cannot interrupt before unknown nodes: {sorted(unknown)}")

    logger.info(f"Workflow created with interrupts: {sorted(interrupts) or 'none'}")
    return WorkflowGraph(nodes=nodes, router=route_next, interrupt_before=interrupts)
