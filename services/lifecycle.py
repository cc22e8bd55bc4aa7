"""Case lifecycle: Active -> Terminated -> Purged."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class CaseState(str, Enum):
    ACTIVE = "Active"
    TERMINATED = "Terminated"
    PURGED = "Purged"


class CaseAction(str, Enum):
    TERMINATE = "terminate"
    RESTORE = "restore"
    PURGE = "purge"


class InvalidTransition(ValueError):
    """Raised when an action is not allowed from the case's current state."""

    def __init__(self, state: CaseState, action: CaseAction) -> None:
        self.state = state
        self.action = action
        super().__init__(_REJECTIONS.get((state, action), f"Cannot {action.value} a {state.value.lower()} case."))


_TRANSITIONS = {
    (CaseState.ACTIVE, CaseAction.TERMINATE): CaseState.TERMINATED,
    (CaseState.TERMINATED, CaseAction.RESTORE): CaseState.ACTIVE,
    (CaseState.TERMINATED, CaseAction.PURGE): CaseState.PURGED,
}

_REJECTIONS = {
    (CaseState.ACTIVE, CaseAction.PURGE): "Only terminated cases can be permanently deleted.",
    (CaseState.ACTIVE, CaseAction.RESTORE): "Case is already active.",
    (CaseState.TERMINATED, CaseAction.TERMINATE): "Case is already terminated.",
}


def transition(state: CaseState, action: CaseAction) -> CaseState:
    """Return the state reached by applying ``action``; raise if not allowed."""
    try:
        return _TRANSITIONS[(CaseState(state), CaseAction(action))]
    except KeyError:
        raise InvalidTransition(CaseState(state), CaseAction(action)) from None


def state_of(row: Mapping[str, Any]) -> CaseState:
    """Derive the lifecycle state of a stored case row."""
    return CaseState.ACTIVE if row["is_active"] else CaseState.TERMINATED
