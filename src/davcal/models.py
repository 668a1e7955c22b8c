"""Structured calendar and event records shared by the codec, service and transports."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

UNTITLED_EVENT_SUMMARY = "Untitled Event"
UNNAMED_CALENDAR_NAME = "Unnamed Calendar"


class CalendarRecord(BaseModel):
    """A calendar collection discovered on the server."""

    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(default=UNNAMED_CALENDAR_NAME, alias="displayName")
    url: str = Field(min_length=1)
    description: str | None = None
    sync_token: str | None = Field(default=None, alias="ctag")

    @field_validator("display_name", mode="before")
    @classmethod
    def _fallback_display_name(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return UNNAMED_CALENDAR_NAME
        return value


class EventRecord(BaseModel):
    """One calendar event as decoded from a calendar object resource.

    ``start`` and ``end`` are canonical ``YYYY-MM-DDTHH:MM:SS`` timestamps and
    are either both set or both ``None``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    url: str = ""
    summary: str = UNTITLED_EVENT_SUMMARY
    description: str | None = None
    start: str | None = None
    end: str | None = None
    location: str | None = None
    status: str | None = None
    etag: str | None = None

    @model_validator(mode="after")
    def _pair_boundaries(self) -> EventRecord:
        if (self.start is None) != (self.end is None):
            logger.debug(
                "Dropping unpaired event boundary (url=%s, start=%s, end=%s)",
                self.url,
                self.start,
                self.end,
            )
            self.start = None
            self.end = None
        return self


class EventFields(BaseModel):
    """Field set rendered into a full replacement VEVENT document."""

    model_config = ConfigDict(extra="forbid")

    summary: str
    start: str
    end: str
    description: str | None = None
    location: str | None = None
    status: str | None = None
    uid: str | None = None


class TimeRange(BaseModel):
    """Inclusive-start, exclusive-end window passed through to the transport."""

    start: str
    end: str


class RawCalendarObject(BaseModel):
    """A calendar object resource as returned by a transport listing."""

    document: str
    locator: str = ""
    etag: str | None = None


class CreatedResource(BaseModel):
    """Transport result for a created resource."""

    locator: str | None = None
