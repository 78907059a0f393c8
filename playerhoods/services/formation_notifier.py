"""Formation notifier: email confirmed players once a match has formed."""
import logging
from dataclasses import dataclass

from flask import current_app

from playerhoods.app import db, socketio
from playerhoods.services import roster_store
from playerhoods.services.email_service import get_contact_resolver, get_notification_sink
from playerhoods.services.match_payloads import default_duration_minutes, game_type_label
from playerhoods.time_utils import format_match_date, format_time_range

logger = logging.getLogger(__name__)

_TBD = 'TBD'


@dataclass
class NotificationReport:
    match_id: int
    is_formed: bool
    sent: int = 0
    failed: int = 0
    total: int = 0
    skipped_without_address: int = 0

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'is_formed': self.is_formed,
            'sent': self.sent,
            'failed': self.failed,
            'total': self.total,
            'skipped_without_address': self.skipped_without_address,
        }


def build_formation_payload(match, participant_names, base_url):
    duration = match.duration_minutes or default_duration_minutes(match.game_type)
    organizer = match.organizer
    return {
        'date': format_match_date(match.scheduled_at) if match.scheduled_at else _TBD,
        'time_range': (
            format_time_range(match.scheduled_at, duration) if match.scheduled_at else ''
        ),
        'venue': match.venue or _TBD,
        'game_type_label': game_type_label(match.game_type, match.doubles_mode),
        'organizer_name': organizer.name if organizer else 'Organizer',
        'match_url': f'{str(base_url).rstrip("/")}/matches/{match.id}',
        'participant_names': list(participant_names),
    }


def notify_if_formed(match_id, contacts=None, sink=None):
    """Send the formation email to every confirmed player with an address.

    Players without an address are skipped, and a failed send never stops
    the rest. Returns counts instead of raising on partial failure.
    """
    contacts = contacts or get_contact_resolver()
    sink = sink or get_notification_sink()

    match = roster_store.load_match(match_id)
    status = roster_store.current_formation(match)
    if not match.is_active or not status.is_formed:
        return NotificationReport(match_id=match_id, is_formed=False)

    confirmed = roster_store.confirmed_participants(match_id)
    guests = roster_store.guest_participations(match_id)
    participant_names = [p.user.name for p in confirmed] + [g.guest.name for g in guests]

    report = NotificationReport(match_id=match_id, is_formed=True)
    recipients = []
    lookup_failures = 0
    for participant in confirmed:
        try:
            address = contacts.lookup_email(participant.user_id)
        except Exception:
            logger.exception('Contact lookup failed for user %s in match %s',
                             participant.user_id, match_id)
            lookup_failures += 1
            continue
        if address:
            recipients.append((address, participant.user.name))
        else:
            report.skipped_without_address += 1
            logger.info('No email for user %s in match %s', participant.user_id, match_id)

    report.total = len(recipients) + lookup_failures
    report.failed = lookup_failures
    if not recipients:
        logger.info('Match %s formed but no participant emails were found', match_id)
        return report

    payload = build_formation_payload(
        match, participant_names, current_app.config.get('APP_BASE_URL', ''),
    )
    subject = f'Match formed - {payload["date"]} {payload["game_type_label"]}'

    for address, name in recipients:
        try:
            result = sink.send(address, subject, {**payload, 'recipient_name': name})
        except Exception:
            # Recorded as failed; the remaining sends still go out.
            logger.exception('Formation email to %s raised', address)
            report.failed += 1
            continue
        if result.success:
            report.sent += 1
        else:
            report.failed += 1
            logger.warning('Formation email to %s failed: %s', address, result.error)

    logger.info(
        'Match %s formation notifications: %s sent, %s failed',
        match_id, report.sent, report.failed,
    )
    return report


def _notify_in_app_context(app, match_id):
    with app.app_context():
        try:
            notify_if_formed(match_id)
        except Exception:
            logger.exception('Background formation notification failed for match %s', match_id)


def dispatch_formation_notice(match_id):
    """Start notification after the triggering write has committed.

    Runs inline (and returns the report) when FORMATION_NOTIFY_ASYNC is off;
    otherwise it is handed to a Socket.IO background task and returns None.
    A notification error never reaches the caller of the committed operation.
    """
    if not current_app.config.get('FORMATION_NOTIFY_ASYNC', True):
        try:
            return notify_if_formed(match_id)
        except Exception:
            logger.exception('Formation notification failed for match %s', match_id)
            db.session.rollback()
            return NotificationReport(match_id=match_id, is_formed=True, failed=1, total=1)
    app = current_app._get_current_object()
    socketio.start_background_task(_notify_in_app_context, app, match_id)
    return None
