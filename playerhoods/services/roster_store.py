"""Roster store: atomic reads and writes for matches, participants and guests.

Nothing here commits on its own except through ``transaction()``. Callers
open one transaction per operation so a participant row and its history row
land together or not at all.
"""
import logging
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from playerhoods.app import db
from playerhoods.errors import InvalidState, MatchError, NotFound, StoreFailure
from playerhoods.models import (
    Guest, GuestParticipation, Match, Participant, ParticipantHistory,
)
from playerhoods.services.formation import evaluate_formation
from playerhoods.services.participant_states import ParticipantState
from playerhoods.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


@contextmanager
def transaction(match_id=None, on_conflict=None):
    """Commit on success, roll back on any failure.

    A unique-constraint violation is handed to ``on_conflict`` (a callable
    returning the exception to raise) after the rollback; without it, and
    for every other database error, StoreFailure is raised.
    """
    try:
        yield
        db.session.commit()
    except MatchError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if on_conflict is not None:
            raise on_conflict() from exc
        logger.exception('Constraint violation while writing match %s', match_id)
        raise StoreFailure('Could not save changes', match_id=match_id) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception('Store operation failed for match %s', match_id)
        raise StoreFailure('Could not save changes, please retry', match_id=match_id) from exc


# ── Matches ───────────────────────────────────────────────────────────

def load_match(match_id, lock=False):
    query = Match.query.filter_by(id=match_id)
    if lock:
        query = query.with_for_update()
    match = query.first()
    if not match:
        raise NotFound('Match not found', kind='match_not_found', match_id=match_id)
    return match


def lock_match(match_id):
    """Load the match holding its write lock; serializes writers per match.

    The no-op UPDATE takes the write lock before any read, which also holds
    on SQLite where ``FOR UPDATE`` is ignored.
    """
    Match.query.filter_by(id=match_id).update(
        {'updated_at': Match.updated_at}, synchronize_session=False,
    )
    return load_match(match_id, lock=True)


def insert_match(organizer_id, fields):
    match = Match(organizer_id=organizer_id, status='active', **fields)
    db.session.add(match)
    db.session.flush()
    return match


def update_match(match, fields):
    for key, value in fields.items():
        setattr(match, key, value)
    match.updated_at = utcnow_naive()
    db.session.flush()
    return match


def list_active_matches(limit=50):
    return Match.query.filter_by(status='active').order_by(
        Match.scheduled_at.is_(None), Match.scheduled_at.asc(), Match.created_at.desc(),
    ).limit(limit).all()


# ── Participants ──────────────────────────────────────────────────────

def find_participant_for_user(match_id, user_id, lock=True):
    query = Participant.query.filter_by(match_id=match_id, user_id=user_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def get_participant(match_id, participant_id, lock=True):
    query = Participant.query.filter_by(id=participant_id, match_id=match_id)
    if lock:
        query = query.with_for_update()
    participant = query.first()
    if not participant:
        raise NotFound(
            'Participant not found', kind='participant_not_found',
            match_id=match_id, participant_id=participant_id,
        )
    return participant


def record_transition(match_id, user_id, participant, transition, changed_by):
    """Write the participant's new state plus exactly one history row.

    ``participant`` is None for a first signup, in which case the row is
    created. The caller has already dropped no-op transitions.
    """
    now = utcnow_naive()
    if participant is None:
        participant = Participant(
            match_id=match_id, user_id=user_id,
            state=transition.new_state.value, created_at=now, updated_at=now,
        )
        db.session.add(participant)
    else:
        # Compare-and-set: a row that moved since it was read is not overwritten.
        updated = Participant.query.filter_by(
            id=participant.id, state=transition.old_state.value,
        ).update({'state': transition.new_state.value, 'updated_at': now})
        if updated != 1:
            raise InvalidState(
                'Participant changed concurrently, please retry',
                match_id=match_id, participant_id=participant.id,
            )
    db.session.flush()

    db.session.add(ParticipantHistory(
        participant_id=participant.id,
        old_state=transition.old_state.value if transition.old_state else None,
        new_state=transition.new_state.value,
        changed_at=now,
        changed_by=changed_by,
    ))
    db.session.flush()
    return participant


def participants_for_match(match_id):
    return Participant.query.filter_by(match_id=match_id).order_by(
        Participant.created_at.asc(), Participant.id.asc(),
    ).all()


def confirmed_participants(match_id):
    return Participant.query.filter_by(
        match_id=match_id, state=ParticipantState.CONFIRMED.value,
    ).order_by(Participant.updated_at.asc(), Participant.id.asc()).all()


def count_confirmed(match_id):
    return db.session.query(func.count(Participant.id)).filter(
        Participant.match_id == match_id,
        Participant.state == ParticipantState.CONFIRMED.value,
    ).scalar() or 0


def history_for_match(match_id):
    return ParticipantHistory.query.join(
        Participant, Participant.id == ParticipantHistory.participant_id,
    ).filter(Participant.match_id == match_id).order_by(
        ParticipantHistory.changed_at.desc(), ParticipantHistory.id.desc(),
    ).all()


# ── Guests ────────────────────────────────────────────────────────────

def admit_guest(match_id, email, display_name, invited_by):
    """Find-or-create the guest and insert its participation in one flush.

    The (match_id, guest_id) unique constraint rejects a duplicate; the
    resulting IntegrityError surfaces through ``transaction()``.
    """
    guest = Guest.query.filter_by(email=email).first()
    if guest is None:
        guest = Guest(email=email, display_name=display_name or '')
        db.session.add(guest)
    elif display_name and not guest.display_name:
        guest.display_name = display_name

    participation = GuestParticipation(
        match_id=match_id, guest=guest, invited_by=invited_by,
        created_at=utcnow_naive(),
    )
    db.session.add(participation)
    db.session.flush()
    return participation


def find_guest_participation_by_email(match_id, email):
    return GuestParticipation.query.join(
        Guest, Guest.id == GuestParticipation.guest_id,
    ).filter(
        GuestParticipation.match_id == match_id,
        Guest.email == email,
    ).first()


def get_guest_participation(match_id, guest_participation_id):
    participation = GuestParticipation.query.filter_by(
        id=guest_participation_id, match_id=match_id,
    ).with_for_update().first()
    if not participation:
        raise NotFound(
            'Guest not found in this match', kind='guest_not_found',
            match_id=match_id, participant_id=guest_participation_id,
        )
    return participation


def delete_guest_participation(participation):
    db.session.delete(participation)
    db.session.flush()


def guest_participations(match_id):
    return GuestParticipation.query.filter_by(match_id=match_id).order_by(
        GuestParticipation.created_at.asc(), GuestParticipation.id.asc(),
    ).all()


def count_guests(match_id):
    return db.session.query(func.count(GuestParticipation.id)).filter(
        GuestParticipation.match_id == match_id,
    ).scalar() or 0


# ── Formation ─────────────────────────────────────────────────────────

def current_formation(match):
    """Evaluate formation from fresh counts; never cached."""
    return evaluate_formation(
        required_count=match.required_count,
        confirmed_count=count_confirmed(match.id),
        guest_count=count_guests(match.id),
        time_status=match.time_status,
        venue_status=match.venue_status,
        count_guests=current_app.config.get('FORMATION_COUNTS_GUESTS', True),
    )
