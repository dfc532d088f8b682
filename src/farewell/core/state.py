"""State management utilities for planning workflows.

Each channel of ``PlanningState`` has exactly one reducer. Updates are never
applied in place: ``merge_state`` always returns a new ``PlanningState``.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional
from datetime import datetime

from ..models.state_models import (
    PlanningStage,
    PlanningState,
    StateUpdate,
    utc_now,
)

logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Any], Any]


def append_reducer(current: List[Any], update: List[Any]) -> List[Any]:
    """Concatenate the update onto the existing list."""
    return list(current) + list(update)


def shallow_merge_reducer(current: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Merge objects key by key; the update wins on conflicts."""
    return {**current, **update}


def last_write_reducer(current: Any, update: Any) -> Any:
    """Keep the most recent value."""
    return update


FIELD_REDUCERS: Dict[str, Reducer] = {
    "planning_stage": last_write_reducer,
    "current_agent": last_write_reducer,
    "family_requirements": shallow_merge_reducer,
    "cultural_requirements": shallow_merge_reducer,
    "venue_requirements": shallow_merge_reducer,
    "service_details": shallow_merge_reducer,
    "documents_required": append_reducer,
    "documents_collected": append_reducer,
    "approvals": append_reducer,
    "pending_decisions": append_reducer,
    "errors": append_reducer,
    "messages": append_reducer,
    "timestamp": last_write_reducer,
}

_missing = set(PlanningState.model_fields) ^ set(FIELD_REDUCERS)
if _missing:
    raise RuntimeError(f"Channels without exactly one reducer: {sorted(_missing)}")

_unknown_update_fields = set(StateUpdate.model_fields) - set(FIELD_REDUCERS)
if _unknown_update_fields:
    raise RuntimeError(f"Update fields without a reducer: {sorted(_unknown_update_fields)}")


def create_initial_state(update: Optional[StateUpdate] = None) -> PlanningState:
    """
    Create initial workflow state.

    Args:
        update: Optional values merged over the defaults

    Returns:
        PlanningState at the INITIAL stage
    """
    state = PlanningState()
    if update is not None:
        state = merge_state(state, update)
    if state.planning_stage != PlanningStage.INITIAL.value:
        logger.warning(
            f"Initial state supplied stage {state.planning_stage!r}; "
            f"resetting to {PlanningStage.INITIAL.value!r}"
        )
        state = state.model_copy(update={"planning_stage": PlanningStage.INITIAL.value})
    return state


def merge_state(
    state: PlanningState,
    update: StateUpdate,
    timestamp: Optional[datetime] = None,
) -> PlanningState:
    """
    Merge a partial update into state using the per-field reducers.

    Args:
        state: Current state
        update: Partial update
        timestamp: Transition time (defaults to now)

    Returns:
        New state with the update applied
    """
    values: Dict[str, Any] = {}
    for name in update.written_fields():
        reducer = FIELD_REDUCERS[name]
        values[name] = reducer(getattr(state, name), getattr(update, name))

    values["timestamp"] = timestamp or utc_now()
    return state.model_copy(update=values, deep=True)


def clear_channels(state: PlanningState, channels: Iterable[str]) -> PlanningState:
    """
    Reset channels to their default value.

    This is the only way to remove entries from an append-only channel and is
    reserved for external drivers (e.g. clearing resolved errors).

    Args:
        state: Current state
        channels: Channel names to reset

    Returns:
        New state with the channels reset

    Raises:
        ValueError: If a channel name is unknown or is the timestamp
    """
    defaults = PlanningState()
    values: Dict[str, Any] = {}
    for name in channels:
        if name not in FIELD_REDUCERS or name == "timestamp":
            raise ValueError(f"Cannot clear unknown channel {name!r}")
        values[name] = getattr(defaults, name)
    return state.model_copy(update=values, deep=True)


def bump_channel_versions(
    versions: Dict[str, int],
    channels: Iterable[str],
) -> Dict[str, int]:
    """
    Increment the version of every written channel.

    Args:
        versions: Current channel versions
        channels: Channels written by the transition

    Returns:
        New channel version map
    """
    bumped = dict(versions)
    for name in channels:
        bumped[name] = bumped.get(name, 0) + 1
    return bumped


def validate_state(state: PlanningState) -> bool:
    """
    Validate the planning stage and list invariants.

    Args:
        state: State to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        PlanningStage(state.planning_stage)
    except ValueError:
        logger.error(f"Invalid planning stage: {state.planning_stage}")
        return False

    if len(set(state.approvals)) != len(state.approvals):
        logger.error("State validation failed: duplicate approvals")
        return False

    return True


def get_state_summary(state: PlanningState) -> Dict[str, Any]:
    """
    Get a summary of current state for logging/display.

    Args:
        state: Current state

    Returns:
        Summary dictionary
    """
    return {
        "planning_stage": state.planning_stage,
        "current_agent": state.current_agent,
        "documents_outstanding": sorted(
            set(state.documents_required) - set(state.documents_collected)
        ),
        "approvals": sorted(set(state.approvals)),
        "pending_decisions": len(state.pending_decisions),
        "errors": len(state.errors),
        "messages_count": len(state.messages),
        "timestamp": state.timestamp.isoformat(),
    }
