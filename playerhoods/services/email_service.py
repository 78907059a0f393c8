"""Contact lookup and outbound email for match notifications.

Both collaborators are looked up through ``app.extensions`` so tests can swap
in fakes without touching the network.
"""
import logging
from dataclasses import dataclass

import requests
from flask import current_app, render_template_string

from playerhoods.app import db
from playerhoods.models import UserSettings

logger = logging.getLogger(__name__)

SINK_EXTENSION_KEY = 'playerhoods.notification_sink'
CONTACTS_EXTENSION_KEY = 'playerhoods.contact_resolver'

_FORMATION_EMAIL_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Match formed</title></head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="font-size: 22px;">Your match is on!</h1>
  <p>Hi {{ recipient_name }},</p>
  <p>The match you signed up for has formed. Here are the details:</p>
  <table style="border-collapse: collapse;">
    <tr><td style="color: #6b7280; padding: 4px 12px 4px 0;">Type</td><td>{{ game_type_label }}</td></tr>
    <tr><td style="color: #6b7280; padding: 4px 12px 4px 0;">When</td><td>{{ date }}{% if time_range %} ({{ time_range }}){% endif %}</td></tr>
    <tr><td style="color: #6b7280; padding: 4px 12px 4px 0;">Where</td><td>{{ venue }}</td></tr>
    <tr><td style="color: #6b7280; padding: 4px 12px 4px 0;">Organizer</td><td>{{ organizer_name }}</td></tr>
  </table>
  <p style="margin-top: 16px;">Players:</p>
  <ul>{% for name in participant_names %}<li>{{ name }}</li>{% endfor %}</ul>
  <p><a href="{{ match_url }}">View match details</a></p>
  <p style="color: #9ca3af; font-size: 12px;">Sent automatically by PlayerHoods. Please do not reply.</p>
</body>
</html>
"""


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None
    skipped: bool = False


class SettingsContactResolver:
    """Resolve a user's notification address from their saved settings."""

    def lookup_email(self, user_id):
        settings = db.session.get(UserSettings, user_id)
        if not settings:
            return None
        email = str(settings.email or '').strip()
        return email or None


class ResendEmailSink:
    """Send one email per call through the Resend HTTP API."""

    def __init__(self, api_key, api_url, sender, timeout=10):
        self.api_key = str(api_key or '').strip()
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, app_config):
        return cls(
            api_key=app_config.get('RESEND_API_KEY', ''),
            api_url=app_config.get('RESEND_API_URL', 'https://api.resend.com/emails'),
            sender=app_config.get('EMAIL_FROM', 'PlayerHoods <noreply@playerhoods.com>'),
            timeout=app_config.get('EMAIL_TIMEOUT_SECONDS', 10),
        )

    @property
    def enabled(self):
        return bool(self.api_key) and self.api_key != 're_your_api_key_here'

    def send(self, address, subject, payload):
        if not self.enabled:
            logger.info('Email skipped (no API key configured): to=%s subject=%s', address, subject)
            return SendResult(success=True, skipped=True)

        html = render_formation_email(payload)
        try:
            response = requests.post(
                self.api_url,
                headers={'Authorization': f'Bearer {self.api_key}'},
                json={
                    'from': self.sender,
                    'to': [address],
                    'subject': subject,
                    'html': html,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning('Email send to %s failed: %s', address, exc)
            return SendResult(success=False, error=str(exc))

        if response.status_code >= 400:
            logger.warning('Email send to %s rejected: HTTP %s', address, response.status_code)
            return SendResult(success=False, error=f'HTTP {response.status_code}')
        return SendResult(success=True)


def render_formation_email(payload):
    return render_template_string(_FORMATION_EMAIL_TEMPLATE, **payload)


def get_notification_sink():
    sink = current_app.extensions.get(SINK_EXTENSION_KEY)
    if sink is None:
        sink = ResendEmailSink.from_config(current_app.config)
        current_app.extensions[SINK_EXTENSION_KEY] = sink
    return sink


def get_contact_resolver():
    resolver = current_app.extensions.get(CONTACTS_EXTENSION_KEY)
    if resolver is None:
        resolver = SettingsContactResolver()
        current_app.extensions[CONTACTS_EXTENSION_KEY] = resolver
    return resolver
