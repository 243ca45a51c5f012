"""ADFLOW — Campaign Status State Machine.

Closed transition table for the campaign lifecycle. Status writes that do
not follow an edge below are rejected; nothing else in the codebase assigns
``Campaign.status`` directly.
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from adflow.core.errors import ConflictError, InvalidTransition


class CampaignStatus(str, Enum):
    """Lifecycle states of a campaign."""

    DRAFT = "draft"
    PENDING = "pending"  # Sent to the workflow, awaiting callback
    ACTIVE = "active"  # Confirmed by the workflow
    ERROR = "error"  # Rejected by the workflow or timed out
    PAUSED = "paused"
    COMPLETED = "completed"


class CampaignEvent(str, Enum):
    """Events that move a campaign between states."""

    SUBMIT = "submit"
    CONFIRM = "confirm"  # automation success callback
    REJECT = "reject"  # automation failure callback
    TIMEOUT = "timeout"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"


S = CampaignStatus
E = CampaignEvent

# ─────────────────────────────────────────────
# TRANSITION TABLE — (from, event) → to
# ─────────────────────────────────────────────

TRANSITIONS: Dict[Tuple[CampaignStatus, CampaignEvent], CampaignStatus] = {
    (S.DRAFT, E.SUBMIT): S.PENDING,
    (S.ERROR, E.SUBMIT): S.PENDING,
    (S.PENDING, E.CONFIRM): S.ACTIVE,
    (S.PENDING, E.REJECT): S.ERROR,
    (S.PENDING, E.TIMEOUT): S.ERROR,
    (S.ACTIVE, E.PAUSE): S.PAUSED,
    (S.PAUSED, E.RESUME): S.ACTIVE,
    (S.ACTIVE, E.COMPLETE): S.COMPLETED,
    (S.PAUSED, E.COMPLETE): S.COMPLETED,
}

TERMINAL_STATES: FrozenSet[CampaignStatus] = frozenset({S.COMPLETED})

SUBMITTABLE_STATES: FrozenSet[CampaignStatus] = frozenset(
    src for (src, event) in TRANSITIONS if event is E.SUBMIT
)

# Content may only be edited where no automation is in flight and the
# external campaign has not gone live unpaused.
EDITABLE_STATES: FrozenSet[CampaignStatus] = frozenset({S.DRAFT, S.ERROR, S.PAUSED})


def next_status(current: str, event: CampaignEvent) -> CampaignStatus:
    """Return the target status for ``event`` or raise.

    Submitting a pending campaign is a conflict rather than a plain
    invalid transition: one automation is already in flight.
    """
    try:
        state = CampaignStatus(current)
    except ValueError:
        raise InvalidTransition(str(current), event.value)

    target = TRANSITIONS.get((state, event))
    if target is None:
        if event is E.SUBMIT and state is S.PENDING:
            raise ConflictError("Automation already pending for this campaign")
        raise InvalidTransition(state.value, event.value)
    return target


def can_transition(current: str, event: CampaignEvent) -> bool:
    try:
        return (CampaignStatus(current), event) in TRANSITIONS
    except ValueError:
        return False
