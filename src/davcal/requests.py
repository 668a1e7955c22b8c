"""Typed operation requests accepted by :meth:`CalendarService.execute`.

Each variant carries its own required and optional fields and validates them
at construction; :func:`parse_request` turns loosely-typed tool arguments
into the matching variant or raises :class:`MalformedInputError`.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from davcal.dates import is_iso_timestamp
from davcal.errors import MalformedInputError
from davcal.models import EventFields


def _normalize_required(value: Any, info: ValidationInfo) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{info.field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{info.field_name} must be a non-empty string")
    return normalized


def _normalize_optional(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("optional text fields must be strings when provided")
    normalized = value.strip()
    return normalized or None


def _check_timestamp(value: str, info: ValidationInfo) -> str:
    if not is_iso_timestamp(value):
        raise ValueError(f"{info.field_name} must be an ISO 8601 timestamp, got {value!r}")
    return value


class _RequestBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class _EventRequestBase(_RequestBase):
    summary: str
    start: str
    end: str
    description: str | None = None
    location: str | None = None

    @field_validator("summary", "start", "end", mode="before")
    @classmethod
    def _required_text(cls, value: Any, info: ValidationInfo) -> str:
        return _normalize_required(value, info)

    @field_validator("start", "end")
    @classmethod
    def _valid_timestamp(cls, value: str, info: ValidationInfo) -> str:
        return _check_timestamp(value, info)

    @field_validator("description", "location", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return _normalize_optional(value)


class ListCalendarsRequest(_RequestBase):
    operation: Literal["list_calendars"] = "list_calendars"


class GetEventsRequest(_RequestBase):
    operation: Literal["get_events"] = "get_events"
    calendar_url: str = Field(alias="calendarUrl")
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")

    @field_validator("calendar_url", mode="before")
    @classmethod
    def _required_text(cls, value: Any, info: ValidationInfo) -> str:
        return _normalize_required(value, info)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any, info: ValidationInfo) -> str | None:
        normalized = _normalize_optional(value)
        if normalized is None:
            return None
        return _check_timestamp(normalized, info)


class CreateEventRequest(_EventRequestBase):
    operation: Literal["create_event"] = "create_event"
    calendar_url: str = Field(alias="calendarUrl")

    @field_validator("calendar_url", mode="before")
    @classmethod
    def _required_url(cls, value: Any, info: ValidationInfo) -> str:
        return _normalize_required(value, info)

    def to_fields(self) -> EventFields:
        return EventFields(
            summary=self.summary,
            start=self.start,
            end=self.end,
            description=self.description,
            location=self.location,
        )


class UpdateEventRequest(_EventRequestBase):
    operation: Literal["update_event"] = "update_event"
    event_url: str = Field(alias="eventUrl")
    etag: str
    status: str | None = None
    uid: str | None = None

    @field_validator("event_url", "etag", mode="before")
    @classmethod
    def _required_target(cls, value: Any, info: ValidationInfo) -> str:
        return _normalize_required(value, info)

    @field_validator("status", "uid", mode="before")
    @classmethod
    def _optional_extra(cls, value: Any) -> str | None:
        return _normalize_optional(value)

    def to_fields(self) -> EventFields:
        return EventFields(
            summary=self.summary,
            start=self.start,
            end=self.end,
            description=self.description,
            location=self.location,
            status=self.status,
            uid=self.uid,
        )


class DeleteEventRequest(_RequestBase):
    operation: Literal["delete_event"] = "delete_event"
    event_url: str = Field(alias="eventUrl")
    etag: str

    @field_validator("event_url", "etag", mode="before")
    @classmethod
    def _required_target(cls, value: Any, info: ValidationInfo) -> str:
        return _normalize_required(value, info)


CalendarRequest = Annotated[
    ListCalendarsRequest
    | GetEventsRequest
    | CreateEventRequest
    | UpdateEventRequest
    | DeleteEventRequest,
    Field(discriminator="operation"),
]

_REQUEST_ADAPTER: TypeAdapter[CalendarRequest] = TypeAdapter(CalendarRequest)


def _format_validation_error(exc: ValidationError, operation: str) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != operation)
        message = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "invalid request"


def parse_request(operation: str, arguments: dict[str, Any] | None = None) -> CalendarRequest:
    """Validate tool *arguments* into the request variant named by *operation*.

    Raises
    ------
    MalformedInputError
        If the operation is unknown or the arguments fail validation.
    """
    payload = {key: value for key, value in (arguments or {}).items() if value is not None}
    payload["operation"] = operation
    try:
        return _REQUEST_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise MalformedInputError(
            f"Invalid {operation} request: {_format_validation_error(exc, operation)}"
        ) from exc
