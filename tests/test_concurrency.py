"""Concurrent roster writes against a file-backed SQLite database."""
import time

from playerhoods.app import db
from playerhoods.errors import AlreadyInMatch, InvalidState
from playerhoods.models import GuestParticipation, Participant, ParticipantHistory, User
from playerhoods.services import match_service
from playerhoods.services.email_service import CONTACTS_EXTENSION_KEY, SINK_EXTENSION_KEY


def _user(username):
    user = User(username=username, email=f'{username}@test.com', password_hash='x',
                display_name=username.capitalize())
    db.session.add(user)
    db.session.commit()
    return user


def _slow_planning(monkeypatch, delay=0.2):
    """Hold each writer between reading the row and writing it."""
    original = match_service.plan_transition

    def slow(*args, **kwargs):
        transition = original(*args, **kwargs)
        time.sleep(delay)
        return transition

    monkeypatch.setattr(match_service, 'plan_transition', slow)


def _as(user_id, operation, *args):
    return lambda: operation(*args, db.session.get(User, user_id))


def _history_chain(participant_id):
    return [
        (row.old_state, row.new_state)
        for row in ParticipantHistory.query.filter_by(participant_id=participant_id)
        .order_by(ParticipantHistory.id.asc()).all()
    ]


def test_confirm_and_remove_race_keeps_history_consistent(file_app, run_concurrently, monkeypatch):
    with file_app.app_context():
        organizer = _user('organizer')
        player = _user('player')
        org_id = organizer.id
        match_id = match_service.create_match(organizer, {'required_count': 4}).match_id
        participant_id = match_service.signup(match_id, player).participant.id

    _slow_planning(monkeypatch)
    outcomes = run_concurrently(
        _as(org_id, match_service.organizer_confirm, match_id, participant_id),
        _as(org_id, match_service.organizer_remove, match_id, participant_id),
    )

    for result, error in outcomes:
        assert error is None or isinstance(error, InvalidState), error
    assert any(error is None for _, error in outcomes)

    with file_app.app_context():
        chain = _history_chain(participant_id)
        assert chain[0] == (None, 'pending')
        for previous, current in zip(chain, chain[1:]):
            assert current[0] == previous[1]
        assert db.session.get(Participant, participant_id).state == chain[-1][1]


def test_simultaneous_completing_confirms_notify_once(file_app, run_concurrently, monkeypatch):
    with file_app.app_context():
        organizer = _user('organizer')
        org_id = organizer.id
        match_id = match_service.create_match(organizer, {
            'required_count': 3, 'time_status': 'finalized', 'venue_status': 'finalized',
        }).match_id
        contacts = file_app.extensions[CONTACTS_EXTENSION_KEY]
        contacts.addresses[org_id] = 'organizer@mail.test'
        pending = []
        for name in ('alice', 'bob', 'cara'):
            user = _user(name)
            contacts.addresses[user.id] = f'{name}@mail.test'
            pending.append(match_service.signup(match_id, user).participant.id)
        match_service.organizer_confirm(match_id, pending[0], organizer)

    _slow_planning(monkeypatch)
    outcomes = run_concurrently(
        _as(org_id, match_service.organizer_confirm, match_id, pending[1]),
        _as(org_id, match_service.organizer_confirm, match_id, pending[2]),
    )

    assert [error for _, error in outcomes] == [None, None]
    assert sorted(result.formed_now for result, _ in outcomes) == [False, True]
    addresses = [item['address'] for item in file_app.extensions[SINK_EXTENSION_KEY].sent]
    assert len(addresses) == len(set(addresses))


def test_concurrent_duplicate_guest_admits_exactly_one(file_app, run_concurrently):
    with file_app.app_context():
        organizer = _user('organizer')
        org_id = organizer.id
        match_id = match_service.create_match(organizer, {'required_count': 8}).match_id

    emails = ['pat@example.com', 'PAT@example.com', ' Pat@Example.com ', 'pat@EXAMPLE.com']
    outcomes = run_concurrently(*[
        (lambda email=email: match_service.add_guest(
            match_id, email, 'Pat', db.session.get(User, org_id),
        ))
        for email in emails
    ])

    successes = [result for result, error in outcomes if error is None]
    failures = [error for _, error in outcomes if error is not None]
    assert len(successes) == 1
    assert len(failures) == 3
    assert all(isinstance(error, AlreadyInMatch) for error in failures)

    with file_app.app_context():
        assert GuestParticipation.query.filter_by(match_id=match_id).count() == 1
