from datetime import UTC, datetime, timedelta


def utcnow_naive():
    """Return current UTC timestamp as naive datetime for DB timestamp columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def parse_iso_datetime(raw_value):
    """Parse an ISO timestamp into a naive UTC datetime, or None when blank."""
    text = str(raw_value or '').strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def format_match_date(value):
    return value.strftime('%a, %b %d %H:%M')


def format_time_range(start, duration_minutes):
    end = start + timedelta(minutes=int(duration_minutes))
    return f'{start.strftime("%H:%M")}-{end.strftime("%H:%M")}'
