"""Section state machine: a pure reducer over the interview's section state."""

from __future__ import annotations

from ..models import (
    ConversationState,
    SectionId,
    SectionStatus,
    SessionStatus,
    StateAction,
    StateActionType,
)

SECTION_ORDER: list[SectionId] = [
    SectionId.UNIVERSE_SCAN,
    SectionId.PREMEET_REQUEST,
    SectionId.BUSINESS_OVERVIEW,
    SectionId.SYSTEM_AUTHORITY,
    SectionId.DIMENSIONAL_WALKTHROUGH,
    SectionId.MANAGEMENT_REPORTING,
    SectionId.PAIN_POINTS,
]

INTERVIEW_SECTIONS: list[SectionId] = SECTION_ORDER[2:]


def initial_state() -> ConversationState:
    """State of a new interview: section 1 active, everything else not started."""
    section_status = {section: SectionStatus.NOT_STARTED for section in SECTION_ORDER}
    section_status[SectionId.BUSINESS_OVERVIEW] = SectionStatus.IN_PROGRESS
    return ConversationState(
        status=SessionStatus.IN_PROGRESS,
        current_section=SectionId.BUSINESS_OVERVIEW,
        section_status=section_status,
    )


def _status_of(state: ConversationState, section: SectionId) -> SectionStatus:
    return state.section_status.get(section, SectionStatus.NOT_STARTED)


def _next_unfinished(state: ConversationState) -> SectionId | None:
    start = SECTION_ORDER.index(state.current_section) + 1
    for section in SECTION_ORDER[start:]:
        if _status_of(state, section) is not SectionStatus.COMPLETE:
            return section
    return None


def reduce_state(state: ConversationState, action: StateAction) -> ConversationState:
    """Return the state after *action*. The input state is never modified.

    Once the session status is COMPLETE every action is ignored. JUMP and
    RESUME without a target are ignored too.
    """
    if state.status is SessionStatus.COMPLETE:
        return state

    nxt = state.model_copy(deep=True)
    statuses = nxt.section_status
    current = nxt.current_section

    if action.type is StateActionType.ADVANCE:
        statuses[current] = SectionStatus.COMPLETE
        target = _next_unfinished(nxt)
        if target is not None:
            nxt.current_section = target
            statuses[target] = SectionStatus.IN_PROGRESS
        else:
            nxt.status = SessionStatus.COMPLETE

    elif action.type is StateActionType.JUMP:
        target = action.target
        if target is None or target == current:
            return state
        # The interrupted section keeps its status so it can be picked up later.
        nxt.current_section = target
        if _status_of(nxt, target) is SectionStatus.NOT_STARTED:
            statuses[target] = SectionStatus.IN_PROGRESS

    elif action.type is StateActionType.PARK:
        statuses[current] = SectionStatus.PARKED
        target = _next_unfinished(nxt)
        if target is not None:
            nxt.current_section = target
            statuses[target] = SectionStatus.IN_PROGRESS

    elif action.type is StateActionType.RESUME:
        target = action.target
        if target is None or _status_of(nxt, target) is not SectionStatus.PARKED:
            return state
        nxt.current_section = target
        statuses[target] = SectionStatus.IN_PROGRESS

    elif action.type is StateActionType.PAUSE:
        nxt.status = SessionStatus.PAUSED

    elif action.type is StateActionType.COMPLETE:
        statuses[current] = SectionStatus.COMPLETE
        nxt.status = SessionStatus.COMPLETE

    return nxt


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def next_section(current: SectionId) -> SectionId | None:
    idx = SECTION_ORDER.index(current)
    return SECTION_ORDER[idx + 1] if idx < len(SECTION_ORDER) - 1 else None


def section_index(section: SectionId) -> int:
    return SECTION_ORDER.index(section)


def completion_percentage(section_status: dict[SectionId, SectionStatus]) -> int:
    """Share of the five interview sections that are COMPLETE, 0-100."""
    completed = sum(
        1 for s in INTERVIEW_SECTIONS if section_status.get(s) is SectionStatus.COMPLETE
    )
    return int(completed * 100 / len(INTERVIEW_SECTIONS) + 0.5)
