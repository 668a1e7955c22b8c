"""Calendar operations with ETag-guarded event mutations.

``CalendarService`` is the only place that combines the codec, the identifier
helpers and the transport.  It holds no state beyond the session handle and
no locks: concurrent external edits are detected solely by the transport's
conditional writes, keyed by the ETag a caller obtained from a prior
``get_events`` call.  Update and delete therefore require an ETag; there is
no unconditional-write fallback.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from davcal.errors import CalendarError, MalformedInputError, TransportFailureError
from davcal.ical import decode_event, encode_event
from davcal.ids import filename_for, generate_uid, id_from_location
from davcal.models import (
    UNTITLED_EVENT_SUMMARY,
    CalendarRecord,
    EventFields,
    EventRecord,
    RawCalendarObject,
    TimeRange,
)
from davcal.requests import (
    CalendarRequest,
    CreateEventRequest,
    DeleteEventRequest,
    GetEventsRequest,
    ListCalendarsRequest,
    UpdateEventRequest,
    parse_request,
)
from davcal.session import CalendarSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _event_from_object(obj: RawCalendarObject) -> EventRecord:
    parsed = decode_event(obj.document)
    return EventRecord(
        id=id_from_location(obj.locator),
        url=obj.locator or "",
        summary=parsed.summary or UNTITLED_EVENT_SUMMARY,
        description=parsed.description,
        start=parsed.start,
        end=parsed.end,
        location=parsed.location,
        status=parsed.status,
        etag=obj.etag,
    )


def _coerce_calendar(raw: Any) -> CalendarRecord:
    if isinstance(raw, CalendarRecord):
        return raw
    return CalendarRecord.model_validate(raw)


def _coerce_object(raw: Any) -> RawCalendarObject:
    if isinstance(raw, RawCalendarObject):
        return raw
    return RawCalendarObject.model_validate(raw)


class CalendarService:
    """List calendars and events; create, update and delete events."""

    def __init__(self, session: CalendarSession) -> None:
        self._session = session

    async def _call_transport(self, action: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except CalendarError:
            raise
        except Exception as exc:
            logger.debug("Transport raised an untyped error during %s", action, exc_info=True)
            raise TransportFailureError(f"{action} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Request dispatch
    # ------------------------------------------------------------------

    async def execute(self, request: CalendarRequest) -> Any:
        """Run a validated request variant and return its result."""
        if isinstance(request, ListCalendarsRequest):
            return await self._list_calendars()
        if isinstance(request, GetEventsRequest):
            return await self._get_events(request)
        if isinstance(request, CreateEventRequest):
            return await self._create_event(request)
        if isinstance(request, UpdateEventRequest):
            return await self._update_event(request)
        if isinstance(request, DeleteEventRequest):
            return await self._delete_event(request)
        raise MalformedInputError(f"Unsupported request type: {type(request).__name__}")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def list_calendars(self) -> list[CalendarRecord]:
        return await self._list_calendars()

    async def get_events(
        self,
        calendar_url: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[EventRecord]:
        request = parse_request(
            "get_events",
            {"calendarUrl": calendar_url, "startDate": start_date, "endDate": end_date},
        )
        return await self._get_events(request)

    async def create_event(self, calendar_url: str, fields: EventFields | dict[str, Any]) -> str:
        """Create an event and return its resource locator (or generated filename).

        No ETag is returned; a later ``get_events`` call reports it.
        """
        arguments = self._fields_arguments(fields)
        arguments.pop("status", None)
        arguments.pop("uid", None)
        request = parse_request("create_event", {"calendarUrl": calendar_url, **arguments})
        return await self._create_event(request)

    async def update_event(
        self,
        event_url: str,
        etag: str,
        fields: EventFields | dict[str, Any],
    ) -> None:
        request = parse_request(
            "update_event",
            {"eventUrl": event_url, "etag": etag, **self._fields_arguments(fields)},
        )
        await self._update_event(request)

    async def delete_event(self, event_url: str, etag: str) -> None:
        request = parse_request("delete_event", {"eventUrl": event_url, "etag": etag})
        await self._delete_event(request)

    @staticmethod
    def _fields_arguments(fields: EventFields | dict[str, Any]) -> dict[str, Any]:
        if isinstance(fields, EventFields):
            return fields.model_dump()
        if not isinstance(fields, dict):
            raise MalformedInputError("event fields must be a mapping")
        return dict(fields)

    # ------------------------------------------------------------------
    # Operation bodies
    # ------------------------------------------------------------------

    async def _list_calendars(self) -> list[CalendarRecord]:
        transport = await self._session.transport()
        raw_calendars = await self._call_transport("list_calendars", transport.list_calendars())
        return [_coerce_calendar(raw) for raw in raw_calendars]

    async def _get_events(self, request: GetEventsRequest) -> list[EventRecord]:
        time_range: TimeRange | None = None
        if request.start_date and request.end_date:
            time_range = TimeRange(start=request.start_date, end=request.end_date)

        transport = await self._session.transport()
        raw_objects = await self._call_transport(
            "get_events",
            transport.fetch_calendar_resources(request.calendar_url, time_range),
        )
        events = [_event_from_object(_coerce_object(raw)) for raw in raw_objects]
        logger.debug(
            "Fetched %d event(s) from %s (time_range=%s)",
            len(events),
            request.calendar_url,
            "bounded" if time_range is not None else "unbounded",
        )
        return events

    async def _create_event(self, request: CreateEventRequest) -> str:
        uid = generate_uid()
        filename = filename_for(uid)
        document = encode_event(request.to_fields(), uid=uid)

        transport = await self._session.transport()
        created = await self._call_transport(
            "create_event",
            transport.create_resource(request.calendar_url, filename, document),
        )
        locator = getattr(created, "locator", None) if created is not None else None
        logger.info("Created event %s in %s", uid, request.calendar_url)
        return locator or filename

    async def _update_event(self, request: UpdateEventRequest) -> None:
        document = encode_event(request.to_fields())

        transport = await self._session.transport()
        await self._call_transport(
            "update_event",
            transport.update_resource(request.event_url, document, request.etag),
        )
        logger.info("Updated event %s", request.event_url)

    async def _delete_event(self, request: DeleteEventRequest) -> None:
        transport = await self._session.transport()
        await self._call_transport(
            "delete_event",
            transport.delete_resource(request.event_url, request.etag),
        )
        logger.info("Deleted event %s", request.event_url)
