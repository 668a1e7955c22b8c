"""Shared test fixtures for the davcal test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from davcal.models import CalendarRecord, CreatedResource, RawCalendarObject, TimeRange
from davcal.service import CalendarService
from davcal.session import CalendarSession
from davcal.transport import CalendarTransport


@dataclass
class TransportCall:
    """One recorded call made against :class:`TransportDouble`."""

    method: str
    args: tuple[Any, ...] = ()


@dataclass
class TransportDouble(CalendarTransport):
    """In-memory transport that records calls and serves canned results.

    Set ``errors[method]`` to an exception instance to make that method raise.
    """

    calendars: list[Any] = field(default_factory=list)
    objects: list[Any] = field(default_factory=list)
    created: CreatedResource | None = None
    errors: dict[str, Exception] = field(default_factory=dict)
    calls: list[TransportCall] = field(default_factory=list)
    closed: bool = False

    @property
    def name(self) -> str:
        return "double"

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append(TransportCall(method=method, args=args))
        error = self.errors.get(method)
        if error is not None:
            raise error

    def calls_to(self, method: str) -> list[TransportCall]:
        return [call for call in self.calls if call.method == method]

    async def list_calendars(self) -> list[CalendarRecord]:
        self._record("list_calendars")
        return list(self.calendars)

    async def fetch_calendar_resources(
        self,
        calendar_url: str,
        time_range: TimeRange | None = None,
    ) -> list[RawCalendarObject]:
        self._record("fetch_calendar_resources", calendar_url, time_range)
        return list(self.objects)

    async def create_resource(
        self,
        calendar_url: str,
        filename: str,
        document: str,
    ) -> CreatedResource:
        self._record("create_resource", calendar_url, filename, document)
        return self.created if self.created is not None else CreatedResource()

    async def update_resource(self, event_url: str, document: str, expected_etag: str) -> None:
        self._record("update_resource", event_url, document, expected_etag)

    async def delete_resource(self, event_url: str, expected_etag: str) -> None:
        self._record("delete_resource", event_url, expected_etag)

    async def aclose(self) -> None:
        self.closed = True


class CountingFactory:
    """Transport factory that counts how often the session invokes it."""

    def __init__(self, transport: CalendarTransport) -> None:
        self.transport = transport
        self.calls = 0

    def __call__(self) -> CalendarTransport:
        self.calls += 1
        return self.transport


@pytest.fixture
def transport() -> TransportDouble:
    return TransportDouble()


@pytest.fixture
def factory(transport: TransportDouble) -> CountingFactory:
    return CountingFactory(transport)


@pytest.fixture
def session(factory: CountingFactory) -> CalendarSession:
    return CalendarSession(factory)


@pytest.fixture
def service(session: CalendarSession) -> CalendarService:
    return CalendarService(session)
