"""Tests for checkpoint and state models."""

import pytest
from pydantic import ValidationError

from farewell.models.checkpoint_models import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    CleanupReport,
    Priority,
    ThreadRef,
)
from farewell.models.state_models import (
    DecisionType,
    PendingDecision,
    PlanningStage,
    PlanningState,
    StateUpdate,
)


def test_thread_ref_defaults_to_latest():
    """A ref without checkpoint id addresses the latest checkpoint."""
    ref = ThreadRef(thread_id="thread-1")

    assert ref.checkpoint_ns == ""
    assert ref.checkpoint_id is None

    pinned = ref.with_checkpoint("cp-1")
    assert pinned.checkpoint_id == "cp-1"
    assert pinned.thread_id == "thread-1"
    assert ref.checkpoint_id is None


def test_metadata_matches_subset():
    """Filters match when every pair is equal."""
    metadata = CheckpointMetadata(
        workflow_id="wf-1",
        stage=PlanningStage.VENUE_SELECTION.value,
        family_id="family-7",
        priority=Priority.HIGH,
        tags=["urgent"],
    )

    assert metadata.matches({})
    assert metadata.matches({"stage": "venue_selection"})
    assert metadata.matches({"stage": "venue_selection", "family_id": "family-7"})
    assert metadata.matches({"priority": Priority.HIGH})
    assert metadata.matches({"priority": "high"})
    assert metadata.matches({"tags": ["urgent"]})
    assert not metadata.matches({"stage": "completed"})
    assert not metadata.matches({"unknown_key": "x"})


def test_metadata_defaults():
    """Metadata defaults to a loop checkpoint at medium priority."""
    metadata = CheckpointMetadata()

    assert metadata.priority == Priority.MEDIUM
    assert metadata.source == CheckpointSource.LOOP
    assert metadata.associated_party_ids == []
    assert metadata.step == 0


def test_checkpoint_is_immutable():
    """Checkpoints cannot be modified once created."""
    checkpoint = Checkpoint()

    with pytest.raises(ValidationError):
        checkpoint.version = 2


def test_checkpoint_ids_are_unique():
    """Each checkpoint gets its own id."""
    assert Checkpoint().id != Checkpoint().id


def test_planning_state_defaults():
    """Fresh state starts at INITIAL with empty channels."""
    state = PlanningState()

    assert state.planning_stage == PlanningStage.INITIAL.value
    assert state.current_agent == "orchestrator"
    assert state.errors == []
    assert state.pending_decisions == []
    assert state.family_requirements == {}
    assert state.timestamp.tzinfo is not None


def test_state_update_written_fields():
    """Only fields that were set are written."""
    update = StateUpdate(planning_stage="venue_selection", errors=["x"])

    assert sorted(update.written_fields()) == ["errors", "planning_stage"]
    assert StateUpdate().written_fields() == []


def test_state_update_empty_list_is_written():
    """An explicit empty list still counts as a write."""
    assert StateUpdate(approvals=[]).written_fields() == ["approvals"]


def test_pending_decision_serialization():
    """Decisions survive a JSON round trip."""
    decision = PendingDecision(
        type=DecisionType.COST_APPROVAL,
        description="Approve estimate",
        data={"amount": 4200},
    )
    restored = PendingDecision.model_validate_json(decision.model_dump_json())

    assert restored == decision
    assert restored.type == DecisionType.COST_APPROVAL


def test_cleanup_report_total():
    """Total deleted sums expired and overflow deletions."""
    report = CleanupReport(expired_deleted=3, overflow_deleted=2)
    assert report.total_deleted == 5
