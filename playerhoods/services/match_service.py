"""Match operations: participant transitions, guests, edits and cancellation.

Every mutation runs in one store transaction under the match row lock,
evaluates formation before and after the write, and after commit fires the
formation notifier on a not-formed -> formed edge.
"""
import logging
from dataclasses import dataclass, field

from playerhoods.app import socketio
from playerhoods.errors import (
    AlreadyInMatch, AlreadyParticipating, MatchNotActive, NotFound, StoreFailure,
    Unauthorized,
)
from playerhoods.services import roster_store
from playerhoods.services.formation_notifier import dispatch_formation_notice
from playerhoods.services.match_payloads import (
    clean_text, default_duration_minutes, game_type_label, normalize_email,
    normalize_match_payload,
)
from playerhoods.services.participant_states import (
    ParticipantAction, ParticipantState, plan_transition,
)
from playerhoods.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

_GUEST_ADMISSION_ATTEMPTS = 3


@dataclass
class OperationResult:
    match_id: int
    formation: object
    changed: bool = True
    formed_now: bool = False
    participant: object = None
    guest_participation: object = None
    notification: object = None
    extra: dict = field(default_factory=dict)

    def to_dict(self):
        data = {
            'match_id': self.match_id,
            'changed': self.changed,
            'formation': self.formation.to_dict(),
            'formed_now': self.formed_now,
            'notification': self.notification.to_dict() if self.notification else None,
        }
        if self.participant is not None:
            data['participant'] = self.participant.to_dict(include_history=True)
        if self.guest_participation is not None:
            data['guest_participation'] = self.guest_participation.to_dict()
        data.update(self.extra)
        return data


class _GuestRowRace(StoreFailure):
    """A concurrent writer created the same guest email for another match."""


def _emit_match_update(match_id, reason=''):
    socketio.emit('match_update', {
        'match_id': match_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def _require_active(match):
    if not match.is_active:
        raise MatchNotActive('Match has been cancelled', match_id=match.id)


def _require_organizer(match, actor):
    if actor is None or match.organizer_id != actor.id:
        raise Unauthorized('Only the organizer can do this', match_id=match.id)


def _finish(match_id, before, after, reason, **result_kwargs):
    """Post-commit work: broadcast, then notify on the formation rising edge."""
    _emit_match_update(match_id, reason)
    formed_now = after.is_formed and not before.is_formed
    notification = None
    if formed_now:
        logger.info('Match %s formed after %s', match_id, reason)
        notification = dispatch_formation_notice(match_id)
    elif before.is_formed and not after.is_formed:
        logger.info('Match %s is no longer formed after %s', match_id, reason)
    return OperationResult(
        match_id=match_id, formation=after, formed_now=formed_now,
        notification=notification, **result_kwargs,
    )


def _transition(match_id, actor, action, participant_id=None, require_organizer=False):
    with roster_store.transaction(match_id):
        match = roster_store.lock_match(match_id)
        _require_active(match)
        if require_organizer:
            _require_organizer(match, actor)
            participant = roster_store.get_participant(match_id, participant_id)
        else:
            participant = roster_store.find_participant_for_user(match_id, actor.id)
            if participant is None:
                raise NotFound(
                    'You are not in this match', kind='participant_not_found',
                    match_id=match_id,
                )

        transition = plan_transition(
            participant.state, action, match_id=match_id, participant_id=participant.id,
        )
        before = roster_store.current_formation(match)
        if transition.changed:
            roster_store.record_transition(
                match_id, participant.user_id, participant, transition, actor.id,
            )
            logger.info(
                'Participant %s in match %s: %s -> %s by user %s',
                participant.id, match_id, transition.old_state.value,
                transition.new_state.value, actor.id,
            )
        after = roster_store.current_formation(match)

    if not transition.changed:
        return OperationResult(
            match_id=match_id, formation=after, changed=False, participant=participant,
        )
    return _finish(match_id, before, after, action.value, participant=participant)


# ── Matches ───────────────────────────────────────────────────────────

def create_match(actor, data):
    """Create a match; the organizer is enrolled as confirmed."""
    fields = normalize_match_payload(data)
    with roster_store.transaction():
        match = roster_store.insert_match(actor.id, fields)
        transition = plan_transition(None, ParticipantAction.ENROLL_ORGANIZER, match_id=match.id)
        participant = roster_store.record_transition(
            match.id, actor.id, None, transition, actor.id,
        )
        formation = roster_store.current_formation(match)
    logger.info('Match %s created by user %s', match.id, actor.id)
    _emit_match_update(match.id, 'created')
    return OperationResult(match_id=match.id, formation=formation, participant=participant)


def edit_match(match_id, actor, data):
    with roster_store.transaction(match_id):
        match = roster_store.lock_match(match_id)
        _require_organizer(match, actor)
        _require_active(match)
        fields = normalize_match_payload(data, current=match)
        before = roster_store.current_formation(match)
        roster_store.update_match(match, fields)
        after = roster_store.current_formation(match)
    logger.info('Match %s edited by user %s: %s', match_id, actor.id, sorted(fields))
    return _finish(match_id, before, after, 'edit')


def cancel_match(match_id, actor):
    """Cancel irreversibly. Participant rows are left as they are."""
    with roster_store.transaction(match_id):
        match = roster_store.lock_match(match_id)
        _require_organizer(match, actor)
        changed = match.is_active
        if changed:
            roster_store.update_match(match, {
                'status': 'cancelled', 'cancelled_at': utcnow_naive(),
            })
        formation = roster_store.current_formation(match)
    if changed:
        logger.info('Match %s cancelled by user %s', match_id, actor.id)
        _emit_match_update(match_id, 'cancelled')
    return OperationResult(match_id=match_id, formation=formation, changed=changed)


# ── Participants ──────────────────────────────────────────────────────

def signup(match_id, actor):
    """Create a pending row, or move a removed row back to pending."""
    with roster_store.transaction(
        match_id,
        on_conflict=lambda: AlreadyParticipating(
            'Already participating in this match', match_id=match_id,
        ),
    ):
        match = roster_store.lock_match(match_id)
        _require_active(match)
        participant = roster_store.find_participant_for_user(match_id, actor.id)
        transition = plan_transition(
            participant.state if participant else None,
            ParticipantAction.SIGNUP,
            match_id=match_id,
            participant_id=participant.id if participant else None,
        )
        before = roster_store.current_formation(match)
        participant = roster_store.record_transition(
            match_id, actor.id, participant, transition, actor.id,
        )
        after = roster_store.current_formation(match)
    logger.info('User %s signed up for match %s', actor.id, match_id)
    return _finish(match_id, before, after, 'signup', participant=participant)


def withdraw(match_id, actor):
    return _transition(match_id, actor, ParticipantAction.WITHDRAW)


def organizer_confirm(match_id, participant_id, actor):
    return _transition(
        match_id, actor, ParticipantAction.CONFIRM,
        participant_id=participant_id, require_organizer=True,
    )


def organizer_waitlist(match_id, participant_id, actor):
    return _transition(
        match_id, actor, ParticipantAction.WAITLIST,
        participant_id=participant_id, require_organizer=True,
    )


def organizer_remove(match_id, participant_id, actor):
    return _transition(
        match_id, actor, ParticipantAction.REMOVE,
        participant_id=participant_id, require_organizer=True,
    )


# ── Guests ────────────────────────────────────────────────────────────

def _can_invite_guests(match, actor):
    if actor is None:
        return False
    if match.organizer_id == actor.id:
        return True
    participant = roster_store.find_participant_for_user(match.id, actor.id, lock=False)
    return bool(participant and participant.state == ParticipantState.CONFIRMED.value)


def _guest_conflict(match_id, email):
    if roster_store.find_guest_participation_by_email(match_id, email):
        return AlreadyInMatch('Guest is already in this match', match_id=match_id)
    return _GuestRowRace('Guest record changed concurrently', match_id=match_id)


def add_guest(match_id, email, display_name, actor):
    """Admit a guest by email.

    The insert itself is the duplicate check: the (match, guest) unique
    constraint decides, so concurrent adds of one email yield exactly one
    row and AlreadyInMatch for the rest.
    """
    raw_email = email
    display_name = clean_text(display_name, 'display_name')

    for attempt in range(1, _GUEST_ADMISSION_ATTEMPTS + 1):
        try:
            with roster_store.transaction(
                match_id, on_conflict=lambda: _guest_conflict(match_id, email),
            ):
                match = roster_store.lock_match(match_id)
                _require_active(match)
                if not _can_invite_guests(match, actor):
                    raise Unauthorized(
                        'Only the organizer or confirmed participants can add guests',
                        match_id=match_id,
                    )
                email = normalize_email(raw_email)
                before = roster_store.current_formation(match)
                participation = roster_store.admit_guest(match_id, email, display_name, actor.id)
                after = roster_store.current_formation(match)
            break
        except _GuestRowRace:
            logger.info('Guest admission race on match %s (attempt %s)', match_id, attempt)
            if attempt == _GUEST_ADMISSION_ATTEMPTS:
                raise
    logger.info('Guest %s added to match %s by user %s', participation.guest_id, match_id, actor.id)
    return _finish(match_id, before, after, 'guest_added', guest_participation=participation)


def remove_guest(match_id, guest_participation_id, actor):
    with roster_store.transaction(match_id):
        match = roster_store.lock_match(match_id)
        _require_active(match)
        participation = roster_store.get_guest_participation(match_id, guest_participation_id)
        if match.organizer_id != actor.id and participation.invited_by != actor.id:
            raise Unauthorized(
                'Only the organizer or the inviter can remove this guest',
                match_id=match_id, participant_id=guest_participation_id,
            )
        before = roster_store.current_formation(match)
        roster_store.delete_guest_participation(participation)
        after = roster_store.current_formation(match)
    logger.info('Guest participation %s removed from match %s', guest_participation_id, match_id)
    return _finish(
        match_id, before, after, 'guest_removed',
        extra={'removed_guest_participation_id': guest_participation_id},
    )


# ── Reads ─────────────────────────────────────────────────────────────

def _match_summary(match, formation):
    data = match.to_dict()
    data['game_type_label'] = game_type_label(match.game_type, match.doubles_mode)
    data['effective_duration_minutes'] = (
        match.duration_minutes or default_duration_minutes(match.game_type)
    )
    data['formation'] = formation.to_dict()
    data['is_full'] = formation.is_full
    data['is_formed'] = formation.is_formed
    return data


def list_matches(limit=50):
    return [
        _match_summary(match, roster_store.current_formation(match))
        for match in roster_store.list_active_matches(limit=limit)
    ]


def get_match_view(match_id, viewer):
    """Match, roster grouped by state, guests, formation and history."""
    match = roster_store.load_match(match_id)
    formation = roster_store.current_formation(match)
    participants = roster_store.participants_for_match(match_id)
    is_organizer = viewer is not None and match.organizer_id == viewer.id
    mine = next((p for p in participants if viewer and p.user_id == viewer.id), None)

    # Removed players lose access once the match has formed.
    if (formation.is_formed and not is_organizer and mine is not None
            and mine.state == ParticipantState.REMOVED.value):
        raise Unauthorized('You were removed from this match', match_id=match_id)

    roster = {state.value: [] for state in ParticipantState}
    for participant in participants:
        roster.setdefault(participant.state, []).append(
            participant.to_dict(include_history=True)
        )
    guests = [gp.to_dict() for gp in roster_store.guest_participations(match_id)]

    my_state = mine.state if mine else None
    return {
        'match': _match_summary(match, formation),
        'roster': roster,
        'guests': guests,
        'formation': formation.to_dict(),
        'viewer': {
            'is_organizer': is_organizer,
            'state': my_state,
            'previously_withdrawn': my_state == ParticipantState.REMOVED.value,
            'can_add_guest': match.is_active and (
                is_organizer or my_state == ParticipantState.CONFIRMED.value
            ),
        },
    }


def get_activity_feed(match_id):
    match = roster_store.load_match(match_id)
    names = {p.id: p.user.name for p in roster_store.participants_for_match(match.id)}
    feed = []
    for entry in roster_store.history_for_match(match.id):
        item = entry.to_dict()
        item['participant_name'] = names.get(entry.participant_id)
        feed.append(item)
    return feed
