"""Tests for planning workflow nodes."""

import pytest

from farewell.core.nodes import (
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
from farewell.models.state_models import (
    AgentRole,
    DecisionType,
    PendingDecision,
    PlanningStage,
    PlanningState,
)


@pytest.fixture
def intake_state():
    """State with a complete burial intake."""
    return PlanningState(
        planning_stage=PlanningStage.INITIAL.value,
        family_requirements={
            "primary_contact": "Ana Souza",
            "service_type": "burial",
            "preferred_date": "2026-11-02",
        },
    )


@pytest.mark.asyncio
async def test_requirements_gathering_accepts_complete_intake(intake_state):
    update = await requirements_gathering_node(intake_state)

    assert update.planning_stage == PlanningStage.REQUIREMENTS_GATHERING.value
    assert update.current_agent == AgentRole.REQUIREMENTS_GATHERER.value
    assert update.service_details == {"service_type": "burial"}
    assert update.errors is None
    assert update.pending_decisions is None
    assert len(update.messages) == 1


@pytest.mark.asyncio
async def test_requirements_gathering_requests_missing_fields():
    update = await requirements_gathering_node(
        PlanningState(family_requirements={"primary_contact": "Ana"})
    )

    assert len(update.pending_decisions) == 1
    decision = update.pending_decisions[0]
    assert decision.type == DecisionType.REQUIREMENTS_INTAKE
    assert decision.data["missing_fields"] == ["service_type"]


@pytest.mark.asyncio
async def test_requirements_gathering_rejects_unknown_service_type():
    update = await requirements_gathering_node(
        PlanningState(
            family_requirements={"primary_contact": "Ana", "service_type": "space_burial"}
        )
    )

    assert update.errors == ["Unsupported service type: space_burial"]
    assert update.planning_stage == PlanningStage.REQUIREMENTS_GATHERING.value


@pytest.mark.asyncio
async def test_cultural_assessment_without_tradition():
    update = await cultural_assessment_node(PlanningState())

    assert update.planning_stage == PlanningStage.CULTURAL_ASSESSMENT.value
    assert update.pending_decisions is None


@pytest.mark.asyncio
async def test_cultural_assessment_requests_confirmation():
    update = await cultural_assessment_node(
        PlanningState(cultural_requirements={"religion": "Jewish"})
    )

    assert len(update.pending_decisions) == 1
    assert update.pending_decisions[0].type == DecisionType.CULTURAL_ACCOMMODATION
    assert update.pending_decisions[0].data == {"tradition": "Jewish"}


@pytest.mark.asyncio
async def test_cultural_assessment_records_confirmed_elements():
    update = await cultural_assessment_node(
        PlanningState(
            cultural_requirements={
                "tradition": "Hindu",
                "accommodation_confirmed": True,
                "elements": ["antyesti rites"],
            }
        )
    )

    assert update.pending_decisions is None
    assert update.service_details == {"cultural_elements": ["antyesti rites"]}


@pytest.mark.asyncio
async def test_document_collection_requires_burial_documents(intake_state):
    update = await document_collection_node(intake_state)

    assert update.planning_stage == PlanningStage.DOCUMENT_COLLECTION.value
    assert update.documents_required == ["death_certificate", "burial_permit"]
    assert update.pending_decisions[0].type == DecisionType.DOCUMENT_COLLECTION
    assert update.pending_decisions[0].data["outstanding"] == [
        "death_certificate",
        "burial_permit",
    ]


@pytest.mark.asyncio
async def test_document_collection_does_not_repeat_requirements():
    state = PlanningState(
        family_requirements={"service_type": "cremation"},
        documents_required=["death_certificate", "cremation_permit"],
        documents_collected=["death_certificate", "cremation_permit"],
    )

    update = await document_collection_node(state)

    assert update.documents_required is None
    assert update.pending_decisions is None


@pytest.mark.asyncio
async def test_document_collection_does_not_duplicate_request():
    state = PlanningState(
        family_requirements={"service_type": "memorial"},
        documents_required=["death_certificate"],
        pending_decisions=[
            PendingDecision(type=DecisionType.DOCUMENT_COLLECTION, description="Docs")
        ],
    )

    update = await document_collection_node(state)

    assert update.pending_decisions is None


@pytest.mark.asyncio
async def test_venue_selection_copies_venue():
    update = await venue_selection_node(
        PlanningState(venue_requirements={"name": "St. Mary's Chapel", "capacity": 120})
    )

    assert update.planning_stage == PlanningStage.VENUE_SELECTION.value
    assert update.service_details == {"venue": {"name": "St. Mary's Chapel", "capacity": 120}}


@pytest.mark.asyncio
async def test_service_planning(intake_state):
    update = await service_planning_node(intake_state)

    assert update.planning_stage == PlanningStage.SERVICE_PLANNING.value
    assert update.service_details["preferred_date"] == "2026-11-02"
    assert "planned_at" in update.service_details


@pytest.mark.asyncio
async def test_approval_process_requests_approvals():
    update = await approval_process_node(PlanningState(approvals=["family"]))

    assert update.planning_stage == PlanningStage.APPROVAL_PROCESS.value
    types = [d.type for d in update.pending_decisions]
    assert types == [DecisionType.SERVICE_APPROVAL, DecisionType.COST_APPROVAL]
    assert update.pending_decisions[0].data["missing"] == ["director", "venue"]


@pytest.mark.asyncio
async def test_approval_process_with_all_approvals():
    update = await approval_process_node(
        PlanningState(approvals=["family", "director", "venue"])
    )

    assert update.pending_decisions is None


@pytest.mark.asyncio
async def test_coordination_and_completion():
    coordination = await coordination_node(PlanningState())
    completion = await completion_node(PlanningState())

    assert coordination.planning_stage == PlanningStage.COORDINATION.value
    assert completion.planning_stage == PlanningStage.COMPLETED.value


@pytest.mark.asyncio
async def test_human_review_keeps_stage():
    update = await human_review_node(
        PlanningState(planning_stage=PlanningStage.APPROVAL_PROCESS.value)
    )

    assert update.planning_stage is None
    assert update.current_agent == AgentRole.HUMAN_REVIEWER.value


@pytest.mark.asyncio
async def test_error_handler_records_error_stage():
    update = await error_handler_node(PlanningState(errors=["a", "b"]))

    assert update.planning_stage == PlanningStage.ERROR.value
    assert update.current_agent == AgentRole.ERROR_HANDLER.value
    assert update.errors is None
    assert "2 errors" in update.messages[0]["content"]
