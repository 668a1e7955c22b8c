"""CLI for davcal: serve the calendar MCP tools or check connectivity."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from davcal import __version__
from davcal.config import ConfigError, DavcalConfig, load_config
from davcal.core.logging import configure_logging
from davcal.errors import CalendarError
from davcal.server import build_server
from davcal.service import CalendarService
from davcal.session import CalendarSession

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("davcal.toml")

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to davcal.toml (or a directory containing it)",
)


def _load(config_path: Path) -> DavcalConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
    )
    return config


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """davcal: CalDAV calendar tools over MCP."""


@cli.command()
@_config_option
def serve(config_path: Path) -> None:
    """Serve the calendar tools over MCP stdio."""
    config = _load(config_path)
    asyncio.run(_serve(config))


async def _serve(config: DavcalConfig) -> None:
    session = CalendarSession.for_caldav(config.caldav)
    mcp = build_server(session)
    logger.info("Calendar MCP server running on stdio (server=%s)", config.caldav.server_url)
    try:
        await mcp.run_async(transport="stdio")
    finally:
        await session.aclose()


@cli.command()
@_config_option
def calendars(config_path: Path) -> None:
    """Print the discovered calendars as JSON."""
    config = _load(config_path)
    try:
        records = asyncio.run(_list_calendars(config))
    except CalendarError as exc:
        click.echo(f"Error ({exc.kind}): {exc}", err=True)
        sys.exit(1)
    click.echo(json.dumps(records, indent=2))


async def _list_calendars(config: DavcalConfig) -> list[dict]:
    session = CalendarSession.for_caldav(config.caldav)
    try:
        records = await CalendarService(session).list_calendars()
    finally:
        await session.aclose()
    return [record.model_dump(by_alias=True) for record in records]


def main() -> None:
    cli()
