"""CalDAV transport over httpx.

Implements :class:`~davcal.transport.CalendarTransport` against a CalDAV
server (Nextcloud and friends) using Basic auth:

- calendar discovery via ``PROPFIND`` (principal → calendar-home-set →
  collections)
- object listing via a ``calendar-query`` ``REPORT`` with an optional
  time-range
- conditional writes: ``If-None-Match: *`` on create, ``If-Match: <etag>``
  on update and delete
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from urllib.parse import quote, urljoin

import httpx

from davcal.config import CalDAVConfig
from davcal.dates import encode_ical_datetime
from davcal.errors import ConflictError, NotFoundError, TransportFailureError
from davcal.models import CalendarRecord, CreatedResource, RawCalendarObject, TimeRange
from davcal.transport import CalendarTransport

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"
CALDAV_NS = "urn:ietf:params:xml:ns:caldav"
CALENDARSERVER_NS = "http://calendarserver.org/ns/"

# Retry on 429 Too Many Requests and 503 Service Unavailable with exponential backoff.
RATE_LIMIT_RETRY_STATUS_CODES = {429, 503}
RATE_LIMIT_MAX_RETRIES = 3
RATE_LIMIT_BASE_BACKOFF_SECONDS = 1.0
# Conditional writes are never replayed; only reads retry.
RATE_LIMIT_RETRY_METHODS = {"PROPFIND", "REPORT"}

NOT_FOUND_STATUS_CODES = {404, 410}
PRECONDITION_FAILED_STATUS_CODE = 412
ERROR_MESSAGE_MAX_LENGTH = 200

ICALENDAR_CONTENT_TYPE = "text/calendar; charset=utf-8"
XML_CONTENT_TYPE = "application/xml; charset=utf-8"

_PRINCIPAL_PROPFIND = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:current-user-principal />
    <c:calendar-home-set />
  </d:prop>
</d:propfind>
"""

_HOME_SET_PROPFIND = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <c:calendar-home-set />
  </d:prop>
</d:propfind>
"""

_COLLECTIONS_PROPFIND = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav" \
xmlns:cs="http://calendarserver.org/ns/">
  <d:prop>
    <d:resourcetype />
    <d:displayname />
    <c:calendar-description />
    <cs:getctag />
    <d:sync-token />
  </d:prop>
</d:propfind>
"""


def _dav(tag: str) -> str:
    return f"{{{DAV_NS}}}{tag}"


def _caldav(tag: str) -> str:
    return f"{{{CALDAV_NS}}}{tag}"


def _calendar_query_body(time_range: TimeRange | None) -> str:
    """Build the fixed VEVENT ``calendar-query`` REPORT body."""
    time_filter = ""
    if time_range is not None:
        start = encode_ical_datetime(time_range.start)
        end = encode_ical_datetime(time_range.end)
        time_filter = f'\n        <c:time-range start="{start}" end="{end}" />'
    return f"""<?xml version="1.0" encoding="utf-8"?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:getetag />
    <c:calendar-data />
  </d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR">
      <c:comp-filter name="VEVENT">{time_filter}
      </c:comp-filter>
    </c:comp-filter>
  </c:filter>
</c:calendar-query>
"""


def _safe_error_message(response: httpx.Response) -> str:
    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:ERROR_MESSAGE_MAX_LENGTH]
    reason = response.reason_phrase.strip()
    if reason:
        return reason
    return "Request failed without an error payload"


def _parse_multistatus(payload: bytes) -> ET.Element:
    try:
        return ET.fromstring(payload)
    except ET.ParseError as exc:
        raise TransportFailureError(f"CalDAV server returned malformed XML: {exc}") from exc


def _ok_props(response_el: ET.Element) -> list[ET.Element]:
    """Return the ``prop`` elements of successful propstats in a DAV response."""
    props: list[ET.Element] = []
    for propstat in response_el.findall(_dav("propstat")):
        status = propstat.findtext(_dav("status")) or ""
        if " 200" not in status:
            continue
        prop = propstat.find(_dav("prop"))
        if prop is not None:
            props.append(prop)
    return props


def _find_prop(props: list[ET.Element], path: str) -> ET.Element | None:
    for prop in props:
        found = prop.find(path)
        if found is not None:
            return found
    return None


def _prop_text(props: list[ET.Element], path: str) -> str | None:
    element = _find_prop(props, path)
    if element is None or element.text is None:
        return None
    text = element.text.strip()
    return text or None


class CalDAVTransport(CalendarTransport):
    """CalDAV transport with Basic auth, conditional writes and rate-limit retry."""

    def __init__(
        self,
        config: CalDAVConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._auth = httpx.BasicAuth(config.username, config.password)
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=config.timeout_seconds,
            follow_redirects=True,
        )
        self._calendar_home_url: str | None = None
        self._discovery_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "caldav"

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    async def _request_once(
        self,
        method: str,
        url: str,
        *,
        content: bytes | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        try:
            return await self._http_client.request(
                method,
                url,
                content=content,
                headers=headers,
                auth=self._auth,
            )
        except httpx.HTTPError as exc:
            raise TransportFailureError(f"CalDAV {method} request failed: {exc}") from exc

    async def _request(
        self,
        method: str,
        url: str,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        response = await self._request_once(method, url, content=content, headers=headers)

        # Rate-limit retry: honour Retry-After header on 429, exponential backoff on 503.
        retry = 0
        while (
            method in RATE_LIMIT_RETRY_METHODS
            and response.status_code in RATE_LIMIT_RETRY_STATUS_CODES
            and retry < RATE_LIMIT_MAX_RETRIES
        ):
            backoff = RATE_LIMIT_BASE_BACKOFF_SECONDS * (2**retry)
            if response.status_code == 429:
                retry_after_header = response.headers.get("Retry-After")
                if retry_after_header is not None:
                    try:
                        backoff = float(retry_after_header)
                    except ValueError:
                        pass
            logger.warning(
                "CalDAV server rate-limited (status=%d), retrying in %.1fs (attempt %d/%d)",
                response.status_code,
                backoff,
                retry + 1,
                RATE_LIMIT_MAX_RETRIES,
            )
            await asyncio.sleep(backoff)
            response = await self._request_once(method, url, content=content, headers=headers)
            retry += 1

        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, *, url: str) -> None:
        status_code = response.status_code
        if 200 <= status_code < 300:
            return
        if status_code == PRECONDITION_FAILED_STATUS_CODE:
            raise ConflictError(
                f"Version token for '{url}' is stale; re-fetch the event before retrying"
            )
        if status_code in NOT_FOUND_STATUS_CODES:
            raise NotFoundError(f"Calendar resource '{url}' not found")
        raise TransportFailureError(_safe_error_message(response), status_code=status_code)

    async def _xml_request(
        self,
        method: str,
        url: str,
        body: str,
        *,
        depth: str,
    ) -> ET.Element:
        response = await self._request(
            method,
            url,
            content=body.encode("utf-8"),
            headers={"Content-Type": XML_CONTENT_TYPE, "Depth": depth},
        )
        self._raise_for_status(response, url=url)
        return _parse_multistatus(response.content)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _resolve_calendar_home_url(self) -> str:
        if self._calendar_home_url is not None:
            return self._calendar_home_url

        async with self._discovery_lock:
            if self._calendar_home_url is not None:
                return self._calendar_home_url
            self._calendar_home_url = await self._discover_calendar_home_url()
            logger.debug("Resolved CalDAV calendar home: %s", self._calendar_home_url)
            return self._calendar_home_url

    async def _discover_calendar_home_url(self) -> str:
        server_url = self._config.server_url
        if self._config.calendar_path:
            return urljoin(server_url, self._config.calendar_path)

        root = await self._xml_request("PROPFIND", server_url, _PRINCIPAL_PROPFIND, depth="0")
        for response_el in root.findall(_dav("response")):
            props = _ok_props(response_el)
            home_href = _prop_text(props, f"{_caldav('calendar-home-set')}/{_dav('href')}")
            if home_href:
                return urljoin(server_url, home_href)
            principal_href = _prop_text(
                props, f"{_dav('current-user-principal')}/{_dav('href')}"
            )
            if principal_href:
                principal_url = urljoin(server_url, principal_href)
                principal_root = await self._xml_request(
                    "PROPFIND", principal_url, _HOME_SET_PROPFIND, depth="0"
                )
                for principal_el in principal_root.findall(_dav("response")):
                    home_href = _prop_text(
                        _ok_props(principal_el),
                        f"{_caldav('calendar-home-set')}/{_dav('href')}",
                    )
                    if home_href:
                        return urljoin(principal_url, home_href)

        raise TransportFailureError(
            "CalDAV calendar-home-set discovery failed. Check caldav.server_url."
        )

    # ------------------------------------------------------------------
    # CalendarTransport
    # ------------------------------------------------------------------

    async def list_calendars(self) -> list[CalendarRecord]:
        home_url = await self._resolve_calendar_home_url()
        root = await self._xml_request("PROPFIND", home_url, _COLLECTIONS_PROPFIND, depth="1")

        calendars: list[CalendarRecord] = []
        for response_el in root.findall(_dav("response")):
            href = response_el.findtext(_dav("href"))
            if not href:
                continue
            props = _ok_props(response_el)
            if _find_prop(props, f"{_dav('resourcetype')}/{_caldav('calendar')}") is None:
                continue
            sync_token = _prop_text(props, f"{{{CALENDARSERVER_NS}}}getctag") or _prop_text(
                props, _dav("sync-token")
            )
            calendars.append(
                CalendarRecord(
                    display_name=_prop_text(props, _dav("displayname")),
                    url=urljoin(home_url, href.strip()),
                    description=_prop_text(props, _caldav("calendar-description")),
                    sync_token=sync_token,
                )
            )
        return calendars

    async def fetch_calendar_resources(
        self,
        calendar_url: str,
        time_range: TimeRange | None = None,
    ) -> list[RawCalendarObject]:
        root = await self._xml_request(
            "REPORT",
            calendar_url,
            _calendar_query_body(time_range),
            depth="1",
        )

        objects: list[RawCalendarObject] = []
        for response_el in root.findall(_dav("response")):
            href = response_el.findtext(_dav("href"))
            props = _ok_props(response_el)
            data_el = _find_prop(props, _caldav("calendar-data"))
            if not href or data_el is None:
                logger.debug("Skipping REPORT response without calendar-data (href=%s)", href)
                continue
            objects.append(
                RawCalendarObject(
                    document=data_el.text or "",
                    locator=urljoin(calendar_url, href.strip()),
                    etag=_prop_text(props, _dav("getetag")),
                )
            )
        return objects

    async def create_resource(
        self,
        calendar_url: str,
        filename: str,
        document: str,
    ) -> CreatedResource:
        base_url = calendar_url if calendar_url.endswith("/") else f"{calendar_url}/"
        url = urljoin(base_url, quote(filename))
        response = await self._request(
            "PUT",
            url,
            content=document.encode("utf-8"),
            headers={"Content-Type": ICALENDAR_CONTENT_TYPE, "If-None-Match": "*"},
        )
        if response.status_code == PRECONDITION_FAILED_STATUS_CODE:
            raise ConflictError(f"Calendar resource '{url}' already exists")
        self._raise_for_status(response, url=url)

        location = response.headers.get("Location")
        return CreatedResource(locator=urljoin(url, location) if location else url)

    async def update_resource(
        self,
        event_url: str,
        document: str,
        expected_etag: str,
    ) -> None:
        response = await self._request(
            "PUT",
            event_url,
            content=document.encode("utf-8"),
            headers={"Content-Type": ICALENDAR_CONTENT_TYPE, "If-Match": expected_etag},
        )
        self._raise_for_status(response, url=event_url)

    async def delete_resource(self, event_url: str, expected_etag: str) -> None:
        response = await self._request(
            "DELETE",
            event_url,
            headers={"If-Match": expected_etag},
        )
        self._raise_for_status(response, url=event_url)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
