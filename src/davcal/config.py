"""Configuration loading and validation.

Reads ``davcal.toml``, resolves ``${VAR_NAME}`` references from the
environment, and returns a validated :class:`DavcalConfig`.
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

DEFAULT_CONFIG_FILENAME = "davcal.toml"
DEFAULT_TIMEOUT_SECONDS = 30.0

# Pattern matching ${VAR_NAME}; alphanumeric and underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_VALID_LOG_FORMATS = ("text", "json")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class CalDAVConfig:
    """Server connection settings from the [caldav] section."""

    server_url: str
    username: str
    password: str = field(repr=False)
    calendar_path: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass
class DavcalConfig:
    """Parsed and validated configuration."""

    caldav: CalDAVConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    The original value is not echoed back since it may sit next to a secret.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _require_string(section: dict[str, Any], key: str, path: str) -> str:
    value = section.get(key)
    if value is None:
        raise ConfigError(f"Missing required field: {path}.{key}")
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{path}.{key} must be a non-empty string")
    return value.strip()


def _parse_caldav(data: dict[str, Any]) -> CalDAVConfig:
    section = data.get("caldav")
    if not isinstance(section, dict):
        raise ConfigError("Missing [caldav] section in config")

    server_url = _require_string(section, "server_url", "caldav")
    if urlparse(server_url).scheme not in ("http", "https"):
        raise ConfigError(
            f"Invalid caldav.server_url: {server_url!r}. Expected an http:// or https:// URL."
        )
    username = _require_string(section, "username", "caldav")
    password = _require_string(section, "password", "caldav")

    calendar_path = section.get("calendar_path")
    if calendar_path is not None:
        if not isinstance(calendar_path, str):
            raise ConfigError("caldav.calendar_path must be a string when set")
        calendar_path = calendar_path.strip() or None

    raw_timeout = section.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    try:
        timeout_seconds = float(raw_timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid caldav.timeout_seconds: {raw_timeout!r}") from exc
    if timeout_seconds <= 0:
        raise ConfigError(
            f"Invalid caldav.timeout_seconds: {raw_timeout!r}. Must be a positive number."
        )

    return CalDAVConfig(
        server_url=server_url,
        username=username,
        password=password,
        calendar_path=calendar_path,
        timeout_seconds=timeout_seconds,
    )


def _parse_logging(data: dict[str, Any]) -> LoggingConfig:
    section = data.get("logging", {})
    if not isinstance(section, dict):
        raise ConfigError("[logging] must be a TOML table")

    level = str(section.get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"Invalid logging.level: {level!r}")

    log_format = str(section.get("format", "text")).lower()
    if log_format not in _VALID_LOG_FORMATS:
        raise ConfigError(f"Invalid logging.format: {log_format!r}. Expected 'text' or 'json'.")

    log_root = section.get("log_root")
    if log_root is not None:
        if not isinstance(log_root, str):
            raise ConfigError("logging.log_root must be a string when set")
        log_root = log_root.strip() or None

    return LoggingConfig(level=level, format=log_format, log_root=log_root)


def load_config(config_path: Path) -> DavcalConfig:
    """Load and validate a config file.

    Parameters
    ----------
    config_path:
        Path to ``davcal.toml``, or a directory containing it.

    Returns
    -------
    DavcalConfig
        Fully parsed and validated configuration.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or lacks required fields.
    """
    toml_path = config_path / DEFAULT_CONFIG_FILENAME if config_path.is_dir() else config_path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    data = resolve_env_vars(data)

    return DavcalConfig(caldav=_parse_caldav(data), logging=_parse_logging(data))
