"""Tests for the CLI commands."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from davcal import __version__
from davcal.cli import _serve, cli
from davcal.config import load_config
from davcal.errors import TransportFailureError

pytestmark = pytest.mark.unit

CONFIG_TOML = """\
[caldav]
server_url = "https://cloud.example.com/remote.php/dav/"
username = "alice"
password = "app-password"
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "davcal.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestCalendarsCommand:
    def test_prints_calendars_as_json(self, runner, config_file):
        records = [{"displayName": "Personal", "url": "https://x/cal/", "description": None}]
        with (
            patch("davcal.cli.configure_logging"),
            patch("davcal.cli._list_calendars", new_callable=AsyncMock, return_value=records),
        ):
            result = runner.invoke(cli, ["calendars", "--config", str(config_file)])
        assert result.exit_code == 0
        assert '"displayName": "Personal"' in result.output

    def test_reports_calendar_errors(self, runner, config_file):
        with (
            patch("davcal.cli.configure_logging"),
            patch(
                "davcal.cli._list_calendars",
                new_callable=AsyncMock,
                side_effect=TransportFailureError("Unauthorized", status_code=401),
            ),
        ):
            result = runner.invoke(cli, ["calendars", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Error (transport_failure)" in result.output

    def test_invalid_config_exits_with_message(self, runner, tmp_path):
        bad = tmp_path / "davcal.toml"
        bad.write_text('[caldav]\nserver_url = "https://x/"\n')
        result = runner.invoke(cli, ["calendars", "--config", str(bad)])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_missing_config_path_is_usage_error(self, runner, tmp_path):
        result = runner.invoke(cli, ["calendars", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 2


class TestServeCommand:
    def test_runs_server_with_loaded_config(self, runner, config_file):
        with (
            patch("davcal.cli.configure_logging") as mock_configure,
            patch("davcal.cli._serve", new_callable=AsyncMock) as mock_serve,
        ):
            result = runner.invoke(cli, ["serve", "--config", str(config_file)])
        assert result.exit_code == 0
        mock_configure.assert_called_once_with(level="INFO", fmt="text", log_root=None)
        (config,) = mock_serve.await_args.args
        assert config.caldav.username == "alice"

    async def test_serve_runs_stdio_and_closes_session(self, config_file):
        mcp = MagicMock()
        mcp.run_async = AsyncMock()
        with patch("davcal.cli.build_server", return_value=mcp) as mock_build:
            await _serve(load_config(config_file))
        mock_build.assert_called_once()
        mcp.run_async.assert_awaited_once_with(transport="stdio")

    async def test_serve_closes_session_on_failure(self, config_file):
        mcp = MagicMock()
        mcp.run_async = AsyncMock(side_effect=RuntimeError("stdin closed"))
        session = MagicMock()
        session.aclose = AsyncMock()
        with (
            patch("davcal.cli.build_server", return_value=mcp),
            patch("davcal.cli.CalendarSession.for_caldav", return_value=session),
        ):
            with pytest.raises(RuntimeError, match="stdin closed"):
                await _serve(load_config(config_file))
        session.aclose.assert_awaited_once()
