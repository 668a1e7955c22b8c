"""Process-wide session handle owning the calendar transport."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from davcal.config import CalDAVConfig
from davcal.transport import CalendarTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], CalendarTransport | Awaitable[CalendarTransport]]


class CalendarSession:
    """Lazily builds one :class:`CalendarTransport` and shares it across callers.

    Construct the session once at process start and pass it to every
    operation.  The transport is created on first use under a lock, so
    concurrent first callers never build two transports.  There is no
    refresh: expired credentials require a process restart.

    Usage::

        session = CalendarSession.for_caldav(config.caldav)
        transport = await session.transport()
        ...
        await session.aclose()
    """

    def __init__(self, factory: TransportFactory) -> None:
        self._factory = factory
        self._transport: CalendarTransport | None = None
        self._init_lock = asyncio.Lock()

    @classmethod
    def for_caldav(cls, config: CalDAVConfig) -> CalendarSession:
        from davcal.caldav import CalDAVTransport

        return cls(lambda: CalDAVTransport(config))

    @property
    def initialized(self) -> bool:
        return self._transport is not None

    async def transport(self) -> CalendarTransport:
        if self._transport is not None:
            return self._transport

        async with self._init_lock:
            if self._transport is not None:
                return self._transport

            created = self._factory()
            if inspect.isawaitable(created):
                created = await created
            self._transport = created
            logger.info("Calendar session initialized (transport=%s)", created.name)
            return self._transport

    async def aclose(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.aclose()
