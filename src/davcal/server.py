"""MCP tool shell exposing calendar operations.

Tools validate their arguments into typed requests, run them through
:class:`~davcal.service.CalendarService`, and reply with JSON-serializable
dicts.  Failures never escape as exceptions: they become a structured error
reply tagged with the failure kind (``malformed_input``, ``conflict``,
``not_found`` or ``transport_failure``) so a caller can tell a stale ETag
apart from a missing event or a server outage.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from fastmcp import FastMCP

from davcal.errors import CalendarError
from davcal.requests import parse_request
from davcal.service import CalendarService
from davcal.session import CalendarSession

logger = logging.getLogger(__name__)

SERVER_NAME = "nextcloud-calendar"
ERROR_MESSAGE_MAX_LENGTH = 200


def _redact_credential_values(message: str) -> str:
    """Redact credential-looking values from an error message."""
    redacted = message
    # key=value style pairs
    redacted = re.sub(
        r"(?i)\b(password|authorization|token)\s*=\s*([^\s,;]+)",
        r"\1=[REDACTED]",
        redacted,
    )
    # HTTP Basic credentials echoed back by a server or proxy
    redacted = re.sub(r"(?i)\bBasic\s+[A-Za-z0-9+/=]+", "Basic [REDACTED]", redacted)
    # userinfo embedded in URLs
    redacted = re.sub(r"(https?://)[^/\s:@]+:[^/\s@]+@", r"\1[REDACTED]@", redacted)
    return redacted


def _build_structured_error(exc: CalendarError, *, operation: str) -> dict[str, Any]:
    """Build a structured error reply with a sanitized message."""
    sanitized = " ".join(_redact_credential_values(str(exc)).split())[:ERROR_MESSAGE_MAX_LENGTH]
    error: dict[str, Any] = {
        "status": "error",
        "error_type": exc.kind,
        "error": sanitized,
        "operation": operation,
    }
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        error["status_code"] = status_code
    return error


async def _run(service: CalendarService, operation: str, arguments: dict[str, Any]) -> Any:
    request = parse_request(operation, arguments)
    return await service.execute(request)


def register_tools(mcp: Any, service: CalendarService) -> None:
    """Register the calendar tools on a FastMCP server (or compatible stub)."""

    def _failure(exc: CalendarError, operation: str) -> dict[str, Any]:
        logger.warning("%s failed (%s): %s", operation, exc.kind, exc)
        return _build_structured_error(exc, operation=operation)

    @mcp.tool()
    async def list_calendars() -> dict[str, Any]:
        """List all calendars available to the configured account.

        Returns calendar names, URLs, descriptions and change tags.
        """
        try:
            calendars = await _run(service, "list_calendars", {})
        except CalendarError as exc:
            return _failure(exc, "list_calendars")
        return {"calendars": [calendar.model_dump(by_alias=True) for calendar in calendars]}

    @mcp.tool()
    async def get_events(
        calendar_url: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """Get events from a calendar (URL from list_calendars).

        Optionally filter by a date range; both start_date and end_date must be
        given (ISO 8601, e.g. 2025-01-01T00:00:00) for the filter to apply.
        Each event carries the etag needed to update or delete it.
        """
        try:
            events = await _run(
                service,
                "get_events",
                {"calendarUrl": calendar_url, "startDate": start_date, "endDate": end_date},
            )
        except CalendarError as exc:
            return _failure(exc, "get_events")
        return {"events": [event.model_dump() for event in events]}

    @mcp.tool()
    async def create_event(
        calendar_url: str,
        summary: str,
        start: str,
        end: str,
        description: str | None = None,
        location: str | None = None,
    ) -> dict[str, Any]:
        """Create a new event in a calendar (URL from list_calendars).

        Dates use ISO 8601 (e.g. 2025-11-15T14:00:00) and are stored as UTC.
        The reply carries the new event URL; call get_events to learn its etag.
        """
        try:
            url = await _run(
                service,
                "create_event",
                {
                    "calendarUrl": calendar_url,
                    "summary": summary,
                    "start": start,
                    "end": end,
                    "description": description,
                    "location": location,
                },
            )
        except CalendarError as exc:
            return _failure(exc, "create_event")
        return {"status": "created", "url": url}

    @mcp.tool()
    async def update_event(
        event_url: str,
        etag: str,
        summary: str,
        start: str,
        end: str,
        description: str | None = None,
        location: str | None = None,
        status: str | None = None,
        uid: str | None = None,
    ) -> dict[str, Any]:
        """Replace an existing event (URL and etag from get_events).

        The etag guards against overwriting someone else's change: a stale etag
        returns error_type "conflict"; re-fetch the event and retry.
        status is one of CONFIRMED, TENTATIVE, CANCELLED.
        """
        try:
            await _run(
                service,
                "update_event",
                {
                    "eventUrl": event_url,
                    "etag": etag,
                    "summary": summary,
                    "start": start,
                    "end": end,
                    "description": description,
                    "location": location,
                    "status": status,
                    "uid": uid,
                },
            )
        except CalendarError as exc:
            return _failure(exc, "update_event")
        return {"status": "updated", "url": event_url}

    @mcp.tool()
    async def delete_event(event_url: str, etag: str) -> dict[str, Any]:
        """Delete an event (URL and etag from get_events).

        A stale etag returns error_type "conflict"; an already-deleted event
        returns error_type "not_found".
        """
        try:
            await _run(service, "delete_event", {"eventUrl": event_url, "etag": etag})
        except CalendarError as exc:
            return _failure(exc, "delete_event")
        return {"status": "deleted", "url": event_url}


def build_server(session: CalendarSession) -> FastMCP:
    """Create the FastMCP server with all calendar tools registered."""
    mcp = FastMCP(SERVER_NAME)
    register_tools(mcp, CalendarService(session))
    return mcp
