from playerhoods.app import db
from playerhoods.time_utils import utcnow_naive


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(120), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    settings = db.relationship('UserSettings', backref='user', uselist=False,
                               cascade='all, delete-orphan')

    @property
    def name(self):
        return self.display_name or self.username

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username, 'email': self.email,
            'display_name': self.display_name,
            'created_at': _iso(self.created_at),
        }


class UserSettings(db.Model):
    """Notification contact for a user; may differ from the login email."""
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    email = db.Column(db.String(200), nullable=True)
    timezone = db.Column(db.String(64), default='UTC')
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(),
                           onupdate=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'user_id': self.user_id, 'email': self.email,
            'timezone': self.timezone, 'updated_at': _iso(self.updated_at),
        }


# ── Matches ───────────────────────────────────────────────────────────

class Match(db.Model):
    """A scheduled session with a target headcount, time and venue."""
    id = db.Column(db.Integer, primary_key=True)
    organizer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)  # active, cancelled
    game_type = db.Column(db.String(20), default='doubles', nullable=False)  # singles, doubles, practice
    doubles_mode = db.Column(db.String(20), nullable=True)  # mens, womens, mixed, open
    court_count = db.Column(db.Integer, default=1, nullable=False)
    required_count = db.Column(db.Integer, default=4, nullable=False)
    time_status = db.Column(db.String(20), default='tentative', nullable=False)
    venue_status = db.Column(db.String(20), default='tentative', nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)
    venue = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, default='')
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(),
                           onupdate=lambda: utcnow_naive())

    __table_args__ = (
        db.CheckConstraint('required_count >= 2', name='ck_match_required_count'),
        db.CheckConstraint('court_count >= 1', name='ck_match_court_count'),
        db.Index('ix_match_status_scheduled', 'status', 'scheduled_at'),
    )

    organizer = db.relationship('User', backref='organized_matches')
    participants = db.relationship('Participant', backref='match',
                                   order_by='Participant.created_at',
                                   cascade='all, delete-orphan')
    guest_participations = db.relationship('GuestParticipation', backref='match',
                                           order_by='GuestParticipation.created_at',
                                           cascade='all, delete-orphan')

    @property
    def is_active(self):
        return self.status == 'active'

    def to_dict(self):
        return {
            'id': self.id, 'organizer_id': self.organizer_id,
            'status': self.status, 'game_type': self.game_type,
            'doubles_mode': self.doubles_mode,
            'court_count': self.court_count,
            'required_count': self.required_count,
            'time_status': self.time_status,
            'venue_status': self.venue_status,
            'scheduled_at': _iso(self.scheduled_at),
            'duration_minutes': self.duration_minutes,
            'venue': self.venue, 'notes': self.notes,
            'organizer_name': self.organizer.name if self.organizer else None,
            'cancelled_at': _iso(self.cancelled_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Participant(db.Model):
    """A registered user's signup record for one match."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    state = db.Column(db.String(20), default='pending', nullable=False)
    # pending, confirmed, waitlisted, removed
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(),
                           onupdate=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('match_id', 'user_id', name='uq_participant_match_user'),
        db.Index('ix_participant_match_state', 'match_id', 'state'),
    )

    user = db.relationship('User', backref='participations')
    history = db.relationship('ParticipantHistory', backref='participant',
                              order_by='ParticipantHistory.id',
                              cascade='all, delete-orphan')

    def to_dict(self, include_history=False):
        data = {
            'id': self.id, 'match_id': self.match_id,
            'user_id': self.user_id, 'state': self.state,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'user': self.user.to_dict() if self.user else None,
        }
        if include_history:
            data['history'] = [h.to_dict() for h in self.history]
        return data


class ParticipantHistory(db.Model):
    """Append-only ledger row for one participant state change."""
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False)
    old_state = db.Column(db.String(20), nullable=True)
    new_state = db.Column(db.String(20), nullable=False)
    changed_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    changed_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)  # null = system

    __table_args__ = (
        db.Index('ix_participant_history_participant_changed', 'participant_id', 'changed_at'),
    )

    def to_dict(self):
        return {
            'id': self.id, 'participant_id': self.participant_id,
            'old_state': self.old_state, 'new_state': self.new_state,
            'changed_at': _iso(self.changed_at),
            'changed_by': self.changed_by,
        }


# ── Guests ────────────────────────────────────────────────────────────

class Guest(db.Model):
    """Non-account invitee, one row per normalized email."""
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    display_name = db.Column(db.String(120), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    @property
    def name(self):
        return self.display_name or self.email

    def to_dict(self):
        return {
            'id': self.id, 'email': self.email,
            'display_name': self.display_name,
        }


class GuestParticipation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    guest_id = db.Column(db.Integer, db.ForeignKey('guest.id'), nullable=False)
    invited_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('match_id', 'guest_id', name='uq_guest_participation_match_guest'),
    )

    guest = db.relationship('Guest', backref='participations')
    inviter = db.relationship('User', foreign_keys=[invited_by])

    def to_dict(self):
        return {
            'id': self.id, 'match_id': self.match_id,
            'guest_id': self.guest_id, 'invited_by': self.invited_by,
            'created_at': _iso(self.created_at),
            'guest': self.guest.to_dict() if self.guest else None,
        }
