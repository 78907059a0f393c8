"""Tests for the participant transition table."""
import pytest

from playerhoods.errors import AlreadyParticipating, InvalidState
from playerhoods.services.participant_states import (
    ParticipantAction, ParticipantState, is_active_state, plan_transition,
)


@pytest.mark.parametrize('current, action, expected', [
    (None, ParticipantAction.SIGNUP, ParticipantState.PENDING),
    ('removed', ParticipantAction.SIGNUP, ParticipantState.PENDING),
    (None, ParticipantAction.ENROLL_ORGANIZER, ParticipantState.CONFIRMED),
    ('pending', ParticipantAction.CONFIRM, ParticipantState.CONFIRMED),
    ('waitlisted', ParticipantAction.CONFIRM, ParticipantState.CONFIRMED),
    ('pending', ParticipantAction.WAITLIST, ParticipantState.WAITLISTED),
    ('confirmed', ParticipantAction.WAITLIST, ParticipantState.WAITLISTED),
    ('pending', ParticipantAction.WITHDRAW, ParticipantState.REMOVED),
    ('confirmed', ParticipantAction.WITHDRAW, ParticipantState.REMOVED),
    ('waitlisted', ParticipantAction.REMOVE, ParticipantState.REMOVED),
])
def test_legal_transitions(current, action, expected):
    transition = plan_transition(current, action)
    assert transition.changed is True
    assert transition.new_state == expected
    assert transition.old_state == (ParticipantState(current) if current else None)


@pytest.mark.parametrize('current', ['pending', 'confirmed', 'waitlisted'])
def test_signup_against_active_row_is_already_participating(current):
    with pytest.raises(AlreadyParticipating) as exc:
        plan_transition(current, ParticipantAction.SIGNUP, match_id=7, participant_id=3)
    assert exc.value.match_id == 7
    assert exc.value.participant_id == 3


@pytest.mark.parametrize('current, action', [
    ('confirmed', ParticipantAction.CONFIRM),
    ('removed', ParticipantAction.CONFIRM),
    ('waitlisted', ParticipantAction.WAITLIST),
    ('removed', ParticipantAction.WAITLIST),
    (None, ParticipantAction.WITHDRAW),
    (None, ParticipantAction.CONFIRM),
])
def test_illegal_transitions_raise_invalid_state(current, action):
    with pytest.raises(InvalidState):
        plan_transition(current, action)


@pytest.mark.parametrize('action', [ParticipantAction.WITHDRAW, ParticipantAction.REMOVE])
def test_repeated_removal_is_a_noop(action):
    transition = plan_transition('removed', action)
    assert transition.changed is False
    assert transition.old_state == transition.new_state == ParticipantState.REMOVED


def test_unknown_state_is_rejected():
    with pytest.raises(InvalidState):
        plan_transition('maybe', ParticipantAction.CONFIRM)


def test_active_states():
    assert is_active_state('pending')
    assert is_active_state('confirmed')
    assert is_active_state('waitlisted')
    assert not is_active_state('removed')
    assert not is_active_state(None)
