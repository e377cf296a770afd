"""Deterministic tools for contour mutation, section state, storage and collaborator lookups."""

from .contour_store import apply_tool_call, approve_contour, completeness_score
from .state_machine import initial_state, reduce_state

__all__ = [
    "apply_tool_call",
    "approve_contour",
    "completeness_score",
    "initial_state",
    "reduce_state",
]
