"""Transport contract consumed by the calendar service."""

from __future__ import annotations

import abc

from davcal.models import CalendarRecord, CreatedResource, RawCalendarObject, TimeRange


class CalendarTransport(abc.ABC):
    """Remote calendar storage used by :class:`~davcal.service.CalendarService`.

    Implementations own network, authentication, timeout and retry policy.
    ``update_resource`` and ``delete_resource`` must be conditional writes:
    a stale ``expected_etag`` raises :class:`~davcal.errors.ConflictError`
    and a missing resource raises :class:`~davcal.errors.NotFoundError`.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g., ``caldav``)."""
        ...

    @abc.abstractmethod
    async def list_calendars(self) -> list[CalendarRecord]:
        """Return the calendar collections visible to the session."""
        ...

    @abc.abstractmethod
    async def fetch_calendar_resources(
        self,
        calendar_url: str,
        time_range: TimeRange | None = None,
    ) -> list[RawCalendarObject]:
        """Return the calendar object resources in a collection."""
        ...

    @abc.abstractmethod
    async def create_resource(
        self,
        calendar_url: str,
        filename: str,
        document: str,
    ) -> CreatedResource:
        """Store a new calendar object resource."""
        ...

    @abc.abstractmethod
    async def update_resource(
        self,
        event_url: str,
        document: str,
        expected_etag: str,
    ) -> None:
        """Replace a resource, conditional on its current ETag."""
        ...

    @abc.abstractmethod
    async def delete_resource(self, event_url: str, expected_etag: str) -> None:
        """Delete a resource, conditional on its current ETag."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
