"""Core workflow components: state, routing, nodes and graph."""

from .state import (
    FIELD_REDUCERS,
    create_initial_state,
    merge_state,
    clear_channels,
    validate_state,
    get_state_summary,
)
from .edges import route_next, is_halted, HUMAN_REVIEW, REQUIRED_APPROVALS
from .workflow import WorkflowGraph, create_workflow
from .checkpoints import CheckpointHistory

__all__ = [
    # State management
    "FIELD_REDUCERS",
    "create_initial_state",
    "merge_state",
    "clear_channels",
    "validate_state",
    "get_state_summary",
    # Routing
    "route_next",
    "is_halted",
    "HUMAN_REVIEW",
    "REQUIRED_APPROVALS",
    # Workflow
    "WorkflowGraph",
    "create_workflow",
    # Checkpoints
    "CheckpointHistory",
]
