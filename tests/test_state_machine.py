"""
Tests for the campaign status state machine.
"""

import pytest

from adflow.core.errors import ConflictError, InvalidTransition, PreconditionFailed
from adflow.core.state_machine import (
    TERMINAL_STATES,
    TRANSITIONS,
    CampaignEvent,
    CampaignStatus,
    can_transition,
    next_status,
)

S = CampaignStatus
E = CampaignEvent


@pytest.mark.parametrize(
    "current, event, expected",
    [
        (S.DRAFT, E.SUBMIT, S.PENDING),
        (S.ERROR, E.SUBMIT, S.PENDING),
        (S.PENDING, E.CONFIRM, S.ACTIVE),
        (S.PENDING, E.REJECT, S.ERROR),
        (S.PENDING, E.TIMEOUT, S.ERROR),
        (S.ACTIVE, E.PAUSE, S.PAUSED),
        (S.PAUSED, E.RESUME, S.ACTIVE),
        (S.ACTIVE, E.COMPLETE, S.COMPLETED),
        (S.PAUSED, E.COMPLETE, S.COMPLETED),
    ],
)
def test_table_edges(current, event, expected):
    assert next_status(current.value, event) is expected


def test_every_edge_is_listed():
    assert len(TRANSITIONS) == 9


def test_completed_is_terminal():
    assert TERMINAL_STATES == {S.COMPLETED}
    for event in CampaignEvent:
        assert not can_transition(S.COMPLETED.value, event)


def test_submit_while_pending_is_conflict():
    with pytest.raises(ConflictError):
        next_status("pending", E.SUBMIT)


@pytest.mark.parametrize(
    "current, event",
    [
        (S.DRAFT, E.CONFIRM),
        (S.DRAFT, E.PAUSE),
        (S.ACTIVE, E.SUBMIT),
        (S.PAUSED, E.PAUSE),
        (S.ERROR, E.RESUME),
        (S.COMPLETED, E.RESUME),
        (S.DRAFT, E.COMPLETE),
    ],
)
def test_edges_outside_table_are_rejected(current, event):
    with pytest.raises(InvalidTransition) as exc:
        next_status(current.value, event)
    assert isinstance(exc.value, PreconditionFailed)
    assert current.value in exc.value.message


def test_unknown_status_is_rejected():
    with pytest.raises(InvalidTransition):
        next_status("launched", E.PAUSE)
    assert not can_transition("launched", E.PAUSE)
