"""Tests for the tolerant iCalendar codec.

Covers:
- Decoding of the six recognized properties, CRLF and LF documents
- DTSTART/DTEND parameter suffixes and date-only values
- Leniency: garbage, empty, truncated and non-string input never raise
- No unescaping of backslash sequences
- Encoded document layout, CRLF joining and optional-line ordering
- decode(encode(fields)) round trip
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from davcal.ical import CRLF, PRODUCT_ID, ParsedEvent, decode_event, encode_event
from davcal.models import EventFields

pytestmark = pytest.mark.unit

SAMPLE_DOCUMENT = CRLF.join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Example Corp//Calendar//EN",
        "BEGIN:VEVENT",
        "UID:abc-123",
        "DTSTAMP:20231201T080000Z",
        "DTSTART;TZID=Europe/Berlin:20231225T120000",
        "DTEND;TZID=Europe/Berlin:20231225T133000",
        "SUMMARY:Christmas lunch",
        "DESCRIPTION:Bring dessert",
        "LOCATION:Grandma's house",
        "STATUS:CONFIRMED",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
)


class TestDecodeEvent:
    def test_decodes_all_recognized_properties(self):
        event = decode_event(SAMPLE_DOCUMENT)
        assert event == ParsedEvent(
            summary="Christmas lunch",
            description="Bring dessert",
            start="2023-12-25T12:00:00",
            end="2023-12-25T13:30:00",
            location="Grandma's house",
            status="CONFIRMED",
        )

    def test_lf_terminated_document(self):
        event = decode_event(SAMPLE_DOCUMENT.replace(CRLF, "\n"))
        assert event.summary == "Christmas lunch"
        assert event.end == "2023-12-25T13:30:00"

    def test_utc_boundaries_without_parameters(self):
        event = decode_event("DTSTART:20231225T120000Z\nDTEND:20231225T130000Z")
        assert event.start == "2023-12-25T12:00:00"
        assert event.end == "2023-12-25T13:00:00"

    def test_date_only_boundaries(self):
        event = decode_event("DTSTART;VALUE=DATE:20240101\nDTEND;VALUE=DATE:20240102")
        assert event.start == "2024-01-01T00:00:00"
        assert event.end == "2024-01-02T00:00:00"

    def test_unparseable_boundary_is_kept_verbatim(self):
        event = decode_event("DTSTART:soon")
        assert event.start == "soon"

    def test_boundary_without_value_is_ignored(self):
        event = decode_event("DTSTART:\nDTEND;TZID=UTC")
        assert event.start is None
        assert event.end is None

    def test_prefixes_are_case_sensitive(self):
        event = decode_event("summary:lowercase\nSummary:mixed")
        assert event.summary is None

    def test_backslash_escapes_are_not_unescaped(self):
        event = decode_event(r"DESCRIPTION:Line one\nLine two\, with comma")
        assert event.description == r"Line one\nLine two\, with comma"

    def test_colons_inside_values_are_preserved(self):
        event = decode_event("SUMMARY:Review: Q4 numbers")
        assert event.summary == "Review: Q4 numbers"

    def test_last_occurrence_wins(self):
        event = decode_event("SUMMARY:first\nSUMMARY:second")
        assert event.summary == "second"

    def test_unrecognized_lines_are_ignored(self):
        event = decode_event("X-CUSTOM:1\nATTENDEE:mailto:a@example.com\nSUMMARY:ok")
        assert event == ParsedEvent(summary="ok")

    def test_truncated_document_yields_partial_record(self):
        truncated = SAMPLE_DOCUMENT[: SAMPLE_DOCUMENT.index("DTEND")]
        event = decode_event(truncated)
        assert event.start == "2023-12-25T12:00:00"
        assert event.end is None
        assert event.summary is None

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "\r\n\r\n",
            "\x00\xff\xfe garbage \x1b[31m",
            "BEGIN:VCALENDAR",
            b"\x89PNG\r\n\x1a\n\x00\x00",
            None,
            12345,
        ],
    )
    def test_never_raises(self, raw):
        event = decode_event(raw)
        assert isinstance(event, ParsedEvent)

    def test_bytes_input_is_decoded(self):
        event = decode_event(b"SUMMARY:from bytes\r\n")
        assert event.summary == "from bytes"


class TestEncodeEvent:
    def _fields(self, **overrides) -> EventFields:
        values = {
            "summary": "Planning",
            "start": "2025-11-15T14:00:00",
            "end": "2025-11-15T15:00:00",
        }
        values.update(overrides)
        return EventFields(**values)

    def test_document_layout(self):
        document = encode_event(
            self._fields(),
            uid="fixed-uid",
            now=datetime(2025, 11, 1, 9, 30, tzinfo=UTC),
        )
        assert document.split(CRLF) == [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{PRODUCT_ID}",
            "BEGIN:VEVENT",
            "UID:fixed-uid",
            "DTSTAMP:20251101T093000Z",
            "DTSTART:20251115T140000Z",
            "DTEND:20251115T150000Z",
            "SUMMARY:Planning",
            "END:VEVENT",
            "END:VCALENDAR",
        ]

    def test_lines_joined_with_crlf_without_trailing_newline(self):
        document = encode_event(self._fields())
        assert "\r\n" in document
        assert "\n" not in document.replace("\r\n", "")
        assert document.endswith("END:VCALENDAR")

    def test_optional_lines_in_fixed_order(self):
        document = encode_event(
            self._fields(status="TENTATIVE", location="Room 4", description="Agenda"),
            uid="u",
        )
        lines = document.split(CRLF)
        summary_index = lines.index("SUMMARY:Planning")
        assert lines[summary_index + 1 : summary_index + 4] == [
            "DESCRIPTION:Agenda",
            "LOCATION:Room 4",
            "STATUS:TENTATIVE",
        ]

    def test_absent_optional_fields_are_omitted(self):
        document = encode_event(self._fields(description="", location=None))
        assert "DESCRIPTION" not in document
        assert "LOCATION" not in document
        assert "STATUS" not in document

    def test_generates_uid_when_not_supplied(self):
        first = encode_event(self._fields())
        second = encode_event(self._fields())
        first_uid = next(line for line in first.split(CRLF) if line.startswith("UID:"))
        second_uid = next(line for line in second.split(CRLF) if line.startswith("UID:"))
        assert first_uid != second_uid

    def test_fields_uid_is_used_when_no_explicit_uid(self):
        document = encode_event(self._fields(uid="kept-uid"))
        assert "UID:kept-uid" in document.split(CRLF)

    def test_offset_boundaries_are_normalized_to_utc(self):
        document = encode_event(
            self._fields(start="2025-11-15T14:00:00+01:00", end="2025-11-15T15:00:00+01:00")
        )
        assert "DTSTART:20251115T130000Z" in document.split(CRLF)
        assert "DTEND:20251115T140000Z" in document.split(CRLF)


class TestRoundTrip:
    @pytest.mark.parametrize(
        "fields",
        [
            {"summary": "Standup", "start": "2025-01-06T09:00:00", "end": "2025-01-06T09:15:00"},
            {
                "summary": "Offsite",
                "start": "2025-03-01T00:00:00",
                "end": "2025-03-03T00:00:00",
                "description": "Two days, bring laptops",
                "location": "Lakeside lodge",
                "status": "CONFIRMED",
            },
        ],
    )
    def test_decode_of_encode_reproduces_fields(self, fields):
        decoded = decode_event(encode_event(EventFields(**fields)))
        assert decoded.summary == fields["summary"]
        assert decoded.start == fields["start"]
        assert decoded.end == fields["end"]
        assert decoded.description == fields.get("description")
        assert decoded.location == fields.get("location")
        assert decoded.status == fields.get("status")
