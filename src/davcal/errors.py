"""Error taxonomy for calendar operations.

Every failure raised by :class:`~davcal.service.CalendarService` is one of the
``CalendarError`` subclasses below, tagged with a stable ``kind`` string that
the tool shell surfaces to callers.
"""

from __future__ import annotations

from typing import ClassVar


class CalendarError(RuntimeError):
    """Base error for calendar operations."""

    kind: ClassVar[str] = "calendar_error"


class MalformedInputError(CalendarError):
    """Raised when a request is missing required fields or carries invalid values."""

    kind: ClassVar[str] = "malformed_input"


class ConflictError(CalendarError):
    """Raised when the supplied version token (ETag) no longer matches the resource.

    The caller should re-fetch the event and decide whether to retry; the
    mutation protocol never retries on its own.
    """

    kind: ClassVar[str] = "conflict"


class NotFoundError(CalendarError):
    """Raised when the addressed calendar resource no longer exists."""

    kind: ClassVar[str] = "not_found"


class TransportFailureError(CalendarError):
    """Raised for any other transport failure (network, auth, server error)."""

    kind: ClassVar[str] = "transport_failure"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(message)
        else:
            super().__init__(f"CalDAV request failed ({status_code}): {message}")
