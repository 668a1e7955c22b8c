"""Conversion between canonical timestamps and iCalendar date-time tokens.

Canonical timestamps are ``YYYY-MM-DDTHH:MM:SS`` strings with no offset; they
are read as UTC (or floating) and never offset-adjusted on the way in.  The
iCalendar side is the compact ``YYYYMMDD[THHMMSS][Z]`` form.
"""

from __future__ import annotations

from datetime import UTC, datetime

ICAL_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"
CANONICAL_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
_MIN_DATE_LENGTH = 8


def decode_ical_datetime(token: str) -> str:
    """Convert an iCalendar date/date-time token to a canonical timestamp.

    Decoding is lenient: when fewer than eight characters remain after the
    ``T``/``Z`` designators are stripped, *token* is returned unchanged.
    """
    cleaned = token.replace("T", "").replace("Z", "")
    if len(cleaned) < _MIN_DATE_LENGTH:
        return token

    year = cleaned[0:4]
    month = cleaned[4:6]
    day = cleaned[6:8]
    hour = cleaned[8:10] or "00"
    minute = cleaned[10:12] or "00"
    second = cleaned[12:14] or "00"
    return f"{year}-{month}-{day}T{hour}:{minute}:{second}"


def parse_timestamp(value: str) -> datetime:
    """Parse a canonical (or any ISO 8601) timestamp into an aware UTC datetime.

    Naive values are taken as UTC.  Raises ``ValueError`` for unparseable input
    and for offsets that push the UTC instant outside the supported year range.
    """
    normalized = value.strip()
    if not normalized:
        raise ValueError("timestamp must be a non-empty string")
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError(f"timestamp {value!r} is out of range in UTC") from exc


def encode_ical_datetime(timestamp: str) -> str:
    """Render *timestamp* as a UTC iCalendar token (always ``Z``-suffixed)."""
    return parse_timestamp(timestamp).strftime(ICAL_DATETIME_FORMAT)


def format_ical_now(now: datetime | None = None) -> str:
    """Return the current instant (or *now*) as a UTC iCalendar token."""
    moment = now if now is not None else datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime(ICAL_DATETIME_FORMAT)


def is_iso_timestamp(value: str) -> bool:
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True
