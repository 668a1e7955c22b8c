"""Event UID generation and resource-name helpers."""

from __future__ import annotations

import threading
import time
import uuid
from urllib.parse import unquote, urlparse

ICS_SUFFIX = ".ics"
_RANDOM_COMPONENT_LENGTH = 13

_uid_lock = threading.Lock()
_last_uid_millis = 0


def _next_millis() -> int:
    global _last_uid_millis
    with _uid_lock:
        # Wall-clock steps backwards must not make the time component decrease.
        _last_uid_millis = max(_last_uid_millis, time.time_ns() // 1_000_000)
        return _last_uid_millis


def generate_uid() -> str:
    """Return a new ``<epoch-millis>-<random>`` event UID.

    Collisions are not checked against the server.
    """
    return f"{_next_millis()}-{uuid.uuid4().hex[:_RANDOM_COMPONENT_LENGTH]}"


def filename_for(uid: str) -> str:
    return f"{uid}{ICS_SUFFIX}"


def id_from_location(url: str | None) -> str:
    """Derive the resource-local event id from a resource locator.

    Returns ``""`` when *url* is empty or has no path segments; callers must
    treat that as "identifier unavailable".
    """
    if not url:
        return ""
    path = urlparse(url).path if "://" in url else url
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return ""
    name = unquote(segments[-1])
    if name.endswith(ICS_SUFFIX):
        name = name[: -len(ICS_SUFFIX)]
    return name
