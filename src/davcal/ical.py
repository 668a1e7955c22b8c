"""Tolerant iCalendar codec for single-VEVENT documents.

Decoding is a line-classification loop over six recognized property
prefixes.  It never raises: malformed or truncated documents produce a
partially populated :class:`ParsedEvent`.  Values are taken verbatim; no
unescaping, unfolding or parameter interpretation is done beyond skipping
``DTSTART``/``DTEND`` parameters.

Encoding renders a complete ``VCALENDAR`` document with one ``VEVENT``,
CRLF-joined, without value escaping or line folding.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from davcal.dates import decode_ical_datetime, encode_ical_datetime, format_ical_now
from davcal.ids import generate_uid
from davcal.models import EventFields

PRODUCT_ID = "-//davcal//Nextcloud Calendar Tools//EN"
CRLF = "\r\n"

_SUMMARY_PREFIX = "SUMMARY:"
_DESCRIPTION_PREFIX = "DESCRIPTION:"
_LOCATION_PREFIX = "LOCATION:"
_STATUS_PREFIX = "STATUS:"
_DTSTART_PATTERN = re.compile(r"DTSTART[^:]*:(.+)")
_DTEND_PATTERN = re.compile(r"DTEND[^:]*:(.+)")


@dataclass
class ParsedEvent:
    """Fields extracted from a VEVENT document; unset fields stay ``None``."""

    summary: str | None = None
    description: str | None = None
    start: str | None = None
    end: str | None = None
    location: str | None = None
    status: str | None = None


def _coerce_document(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes | bytearray):
        return bytes(raw).decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return str(raw)
    return raw


def decode_event(raw: Any) -> ParsedEvent:
    """Extract event fields from a raw iCalendar document."""
    event = ParsedEvent()
    for line in _coerce_document(raw).split("\n"):
        stripped = line.strip()

        if stripped.startswith(_SUMMARY_PREFIX):
            event.summary = stripped[len(_SUMMARY_PREFIX) :]
        elif stripped.startswith(_DESCRIPTION_PREFIX):
            event.description = stripped[len(_DESCRIPTION_PREFIX) :]
        elif stripped.startswith("DTSTART"):
            match = _DTSTART_PATTERN.match(stripped)
            if match:
                event.start = decode_ical_datetime(match.group(1))
        elif stripped.startswith("DTEND"):
            match = _DTEND_PATTERN.match(stripped)
            if match:
                event.end = decode_ical_datetime(match.group(1))
        elif stripped.startswith(_LOCATION_PREFIX):
            event.location = stripped[len(_LOCATION_PREFIX) :]
        elif stripped.startswith(_STATUS_PREFIX):
            event.status = stripped[len(_STATUS_PREFIX) :]

    return event


def encode_event(
    fields: EventFields,
    *,
    uid: str | None = None,
    now: datetime | None = None,
) -> str:
    """Render *fields* as a complete single-event iCalendar document.

    ``summary`` is not validated here; callers reject empty summaries before
    encoding.  *uid* defaults to ``fields.uid`` and then to a fresh UID.
    """
    resolved_uid = uid or fields.uid or generate_uid()
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
        "BEGIN:VEVENT",
        f"UID:{resolved_uid}",
        f"DTSTAMP:{format_ical_now(now)}",
        f"DTSTART:{encode_ical_datetime(fields.start)}",
        f"DTEND:{encode_ical_datetime(fields.end)}",
        f"SUMMARY:{fields.summary}",
    ]

    if fields.description:
        lines.append(f"DESCRIPTION:{fields.description}")
    if fields.location:
        lines.append(f"LOCATION:{fields.location}")
    if fields.status:
        lines.append(f"STATUS:{fields.status}")

    lines.extend(["END:VEVENT", "END:VCALENDAR"])
    return CRLF.join(lines)
