"""Shared payload helpers for creating and editing Match records."""

import re

from playerhoods.errors import ValidationError
from playerhoods.time_utils import parse_iso_datetime

ALLOWED_GAME_TYPES = {'singles', 'doubles', 'practice'}
ALLOWED_DOUBLES_MODES = {'mens', 'womens', 'mixed', 'open'}
ALLOWED_FINALIZED_STATUSES = {'tentative', 'finalized'}
DEFAULT_GAME_TYPE = 'doubles'
DEFAULT_DOUBLES_MODE = 'mixed'

MIN_REQUIRED_COUNT = 2
MAX_REQUIRED_COUNT = 100
MAX_COURT_COUNT = 20
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 12 * 60

# Columns that always hold a value; an edit may change them but not null them.
_REQUIRED_ON_EDIT = ('game_type', 'court_count', 'required_count', 'time_status', 'venue_status')

_STRING_LIMITS = {
    'venue': 500,
    'notes': 2000,
    'display_name': 120,
}

_GAME_TYPE_LABELS = {
    'singles': 'Singles',
    'doubles': 'Doubles',
    'practice': 'Practice',
}
_DOUBLES_MODE_LABELS = {
    'mens': "Men's Doubles",
    'womens': "Women's Doubles",
    'mixed': 'Mixed Doubles',
    'open': 'Open Doubles',
}

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def default_duration_minutes(game_type):
    return 60 if game_type == 'singles' else 90


def default_required_count(game_type, court_count=1):
    courts = max(1, int(court_count or 1))
    if game_type == 'singles':
        return courts * 2
    if game_type == 'doubles':
        return courts * 4
    return 4


def game_type_label(game_type, doubles_mode=None):
    if game_type == 'doubles' and doubles_mode:
        return _DOUBLES_MODE_LABELS.get(doubles_mode, 'Doubles')
    return _GAME_TYPE_LABELS.get(game_type, str(game_type or ''))


def clean_text(value, field):
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:_STRING_LIMITS.get(field, 500)]


def normalize_email(raw_email):
    """Lower-case and trim an address; case-insensitive dedup keys off this."""
    email = str(raw_email or '').strip().lower()
    if not email or len(email) > 200 or not _EMAIL_RE.match(email):
        raise ValidationError('A valid email address is required')
    return email


def _choice(data, field, allowed):
    value = str(data.get(field) or '').strip().lower()
    if value not in allowed:
        raise ValidationError(f'Invalid {field.replace("_", " ")}')
    return value


def _bounded_int(data, field, low, high):
    raw = data.get(field)
    if isinstance(raw, bool):
        raise ValidationError(f'{field.replace("_", " ").capitalize()} must be a number')
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f'{field.replace("_", " ").capitalize()} must be a number'
        ) from None
    if value < low or value > high:
        raise ValidationError(
            f'{field.replace("_", " ").capitalize()} must be between {low} and {high}'
        )
    return value


def normalize_match_payload(data, current=None):
    """Validate create/edit input and return the fields to write.

    With ``current`` (an existing Match) only the supplied fields are
    returned, plus ``doubles_mode`` whenever the resulting game type makes it
    meaningless. Without ``current`` every field gets its default.
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')

    creating = current is None
    fields = {}

    if not creating:
        for name in _REQUIRED_ON_EDIT:
            if name in data and data[name] is None:
                raise ValidationError(f'{name.replace("_", " ").capitalize()} cannot be cleared')

    if 'game_type' in data or creating:
        fields['game_type'] = (
            _choice(data, 'game_type', ALLOWED_GAME_TYPES)
            if data.get('game_type') is not None else DEFAULT_GAME_TYPE
        )
    game_type = fields.get('game_type', getattr(current, 'game_type', DEFAULT_GAME_TYPE))

    if game_type != 'doubles':
        if creating or 'game_type' in data or 'doubles_mode' in data:
            fields['doubles_mode'] = None
    elif data.get('doubles_mode') is not None:
        fields['doubles_mode'] = _choice(data, 'doubles_mode', ALLOWED_DOUBLES_MODES)
    elif creating or getattr(current, 'doubles_mode', None) is None:
        fields['doubles_mode'] = DEFAULT_DOUBLES_MODE

    if 'court_count' in data or creating:
        fields['court_count'] = (
            _bounded_int(data, 'court_count', 1, MAX_COURT_COUNT)
            if data.get('court_count') is not None else 1
        )

    if data.get('required_count') is not None:
        fields['required_count'] = _bounded_int(
            data, 'required_count', MIN_REQUIRED_COUNT, MAX_REQUIRED_COUNT,
        )
    elif creating:
        fields['required_count'] = default_required_count(game_type, fields['court_count'])

    for flag in ('time_status', 'venue_status'):
        if data.get(flag) is not None:
            fields[flag] = _choice(data, flag, ALLOWED_FINALIZED_STATUSES)
        elif creating:
            fields[flag] = 'tentative'

    if 'scheduled_at' in data or creating:
        try:
            fields['scheduled_at'] = parse_iso_datetime(data.get('scheduled_at'))
        except ValueError:
            raise ValidationError('Scheduled time must be a valid ISO datetime') from None

    if 'duration_minutes' in data or creating:
        fields['duration_minutes'] = (
            _bounded_int(data, 'duration_minutes', MIN_DURATION_MINUTES, MAX_DURATION_MINUTES)
            if data.get('duration_minutes') is not None else None
        )

    if 'venue' in data or creating:
        fields['venue'] = clean_text(data.get('venue'), 'venue')
    if 'notes' in data or creating:
        fields['notes'] = clean_text(data.get('notes'), 'notes') or ''

    return fields
