"""Participant state machine: which moves are legal and what they produce.

Pure logic only. Callers own authorization and persistence; this module
answers "given the current state and an action, what is the next state".
"""
from dataclasses import dataclass
from enum import Enum

from playerhoods.errors import AlreadyParticipating, InvalidState


class ParticipantState(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    WAITLISTED = 'waitlisted'
    REMOVED = 'removed'


class ParticipantAction(str, Enum):
    ENROLL_ORGANIZER = 'enroll_organizer'
    SIGNUP = 'signup'
    WITHDRAW = 'withdraw'
    CONFIRM = 'confirm'
    WAITLIST = 'waitlist'
    REMOVE = 'remove'


_ACTIVE_STATES = frozenset({
    ParticipantState.PENDING, ParticipantState.CONFIRMED, ParticipantState.WAITLISTED,
})

# action -> (allowed source states, target state); None means "no row yet".
_TRANSITIONS = {
    ParticipantAction.ENROLL_ORGANIZER: (
        frozenset({None, ParticipantState.REMOVED}), ParticipantState.CONFIRMED,
    ),
    ParticipantAction.SIGNUP: (
        frozenset({None, ParticipantState.REMOVED}), ParticipantState.PENDING,
    ),
    ParticipantAction.WITHDRAW: (_ACTIVE_STATES, ParticipantState.REMOVED),
    ParticipantAction.CONFIRM: (
        frozenset({ParticipantState.PENDING, ParticipantState.WAITLISTED}),
        ParticipantState.CONFIRMED,
    ),
    ParticipantAction.WAITLIST: (
        frozenset({ParticipantState.PENDING, ParticipantState.CONFIRMED}),
        ParticipantState.WAITLISTED,
    ),
    ParticipantAction.REMOVE: (_ACTIVE_STATES, ParticipantState.REMOVED),
}

# Repeating these against a row already in the target state is a no-op.
_IDEMPOTENT_ACTIONS = frozenset({ParticipantAction.WITHDRAW, ParticipantAction.REMOVE})


@dataclass(frozen=True)
class Transition:
    old_state: ParticipantState | None
    new_state: ParticipantState
    changed: bool = True


def coerce_state(raw_state):
    if raw_state is None or isinstance(raw_state, ParticipantState):
        return raw_state
    try:
        return ParticipantState(str(raw_state))
    except ValueError:
        raise InvalidState(f'Unknown participant state: {raw_state}') from None


def is_active_state(raw_state):
    return coerce_state(raw_state) in _ACTIVE_STATES


def plan_transition(current_state, action, match_id=None, participant_id=None):
    """Return the Transition for ``action`` applied to ``current_state``.

    ``current_state`` is None when no participant row exists yet. Raises
    AlreadyParticipating for a signup against an active row and InvalidState
    for any other illegal move. Idempotent actions repeated against their
    target state come back with ``changed=False`` and must not be recorded.
    """
    action = ParticipantAction(action)
    current = coerce_state(current_state)
    allowed_sources, target = _TRANSITIONS[action]

    if current in allowed_sources:
        return Transition(old_state=current, new_state=target, changed=True)

    if current == target and action in _IDEMPOTENT_ACTIONS:
        return Transition(old_state=current, new_state=target, changed=False)

    if action in {ParticipantAction.SIGNUP, ParticipantAction.ENROLL_ORGANIZER}:
        raise AlreadyParticipating(
            'Already participating in this match',
            match_id=match_id, participant_id=participant_id,
        )

    if current is None:
        raise InvalidState(
            f'Cannot {action.value} without a participant record',
            match_id=match_id, participant_id=participant_id,
        )
    raise InvalidState(
        f'Cannot {action.value} a participant who is {current.value}',
        match_id=match_id, participant_id=participant_id,
    )
