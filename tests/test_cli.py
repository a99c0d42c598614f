"""
Tests for the shellport command line interface.
"""

import json
import signal
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from shellport.backend.schema.session import MultiplexerSession
from shellport.cli.main import main
from shellport.cli.util import get_pid_file, is_initialized, is_running


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def instance(tmp_path, runner):
    path = tmp_path / "inst"
    result = runner.invoke(main, ["init", str(path)])
    assert result.exit_code == 0, result.output
    return path


# =============================================================================
# init
# =============================================================================


class TestInit:
    """Tests for `shellport init`."""

    def test_creates_instance(self, instance):
        assert is_initialized(instance)
        assert (instance / "config.toml").exists()
        assert (instance / "logs").is_dir()

        info = json.loads((instance / ".shellport_instance").read_text())
        assert info["instance_path"] == str(instance)

    def test_generated_config_loads(self, instance):
        from shellport.backend.config import load_settings

        settings = load_settings(instance)
        assert settings.server.port == 3011
        assert settings.multiplexer.socket_name == "shellport"

    def test_refuses_reinit(self, runner, instance):
        result = runner.invoke(main, ["init", str(instance)])

        assert result.exit_code != 0
        assert "Already initialized" in result.output

    def test_refuses_non_empty_directory(self, runner, tmp_path):
        (tmp_path / "busy").mkdir()
        (tmp_path / "busy" / "file.txt").write_text("x")

        result = runner.invoke(main, ["init", str(tmp_path / "busy")])

        assert result.exit_code != 0
        assert "not empty" in result.output


# =============================================================================
# start
# =============================================================================


class TestStart:
    """Tests for `shellport start`."""

    def test_requires_init(self, runner, tmp_path):
        result = runner.invoke(main, ["start", str(tmp_path / "nothing")])

        assert result.exit_code != 0
        assert "Not initialized" in result.output

    def test_runs_uvicorn_and_cleans_pid_file(self, runner, instance):
        seen = {}

        def fake_run(app, host, port, **kwargs):
            seen["host"], seen["port"] = host, port
            seen["pid_file_present"] = get_pid_file(instance).exists()
            seen["ws_route"] = any(
                getattr(route, "path", None) == "/ws/terminal" for route in app.routes
            )

        with patch("shellport.backend.app.setup_logging"), patch("uvicorn.run", side_effect=fake_run):
            result = runner.invoke(main, ["start", str(instance), "--port", "4555"])

        assert result.exit_code == 0, result.output
        assert seen == {
            "host": "0.0.0.0",
            "port": 4555,
            "pid_file_present": True,
            "ws_route": True,
        }
        assert not get_pid_file(instance).exists()

    def test_refuses_when_running(self, runner, instance):
        get_pid_file(instance).write_text("4321")

        with patch("shellport.cli.util.pid_alive", return_value=True):
            result = runner.invoke(main, ["start", str(instance)])

        assert result.exit_code != 0
        assert "already running" in result.output


# =============================================================================
# stop
# =============================================================================


class TestStop:
    """Tests for `shellport stop`."""

    def test_not_running(self, runner, instance):
        result = runner.invoke(main, ["stop", str(instance)])

        assert result.exit_code == 0
        assert "not running" in result.output

    def test_stale_pid_file_removed(self, instance):
        get_pid_file(instance).write_text("4321")

        with patch("shellport.cli.util.pid_alive", return_value=False):
            assert is_running(instance) is False
        assert not get_pid_file(instance).exists()

    def test_graceful_stop(self, runner, instance):
        get_pid_file(instance).write_text("4321")

        with patch("shellport.cli.util.pid_alive", return_value=True), \
                patch("shellport.cli.command.stop.pid_alive", return_value=False), \
                patch("os.kill") as kill:
            result = runner.invoke(main, ["stop", str(instance)])

        assert result.exit_code == 0, result.output
        kill.assert_called_once_with(4321, signal.SIGTERM)
        assert not get_pid_file(instance).exists()

    def test_timeout_without_force(self, runner, instance):
        get_pid_file(instance).write_text("4321")

        with patch("shellport.cli.util.pid_alive", return_value=True), \
                patch("shellport.cli.command.stop.pid_alive", return_value=True), \
                patch("shellport.cli.command.stop.STOP_TIMEOUT", 0.01), \
                patch("os.kill") as kill:
            result = runner.invoke(main, ["stop", str(instance)])

        assert result.exit_code != 0
        assert "--force" in result.output
        kill.assert_called_once_with(4321, signal.SIGTERM)
        assert get_pid_file(instance).exists()

    def test_force_kill(self, runner, instance):
        get_pid_file(instance).write_text("4321")

        with patch("shellport.cli.util.pid_alive", return_value=True), \
                patch("shellport.cli.command.stop.pid_alive", return_value=True), \
                patch("shellport.cli.command.stop.STOP_TIMEOUT", 0.01), \
                patch("os.kill") as kill:
            result = runner.invoke(main, ["stop", str(instance), "--force"])

        assert result.exit_code == 0, result.output
        assert kill.call_args_list[-1].args == (4321, signal.SIGKILL)
        assert not get_pid_file(instance).exists()


# =============================================================================
# sessions
# =============================================================================


class TestSessions:
    """Tests for `shellport sessions`."""

    def test_lists_managed_sessions(self, runner, instance):
        listed = [
            MultiplexerSession(name="shell-abc", windows=1, attached=True),
            MultiplexerSession(name="main", windows=3),
        ]
        with patch(
            "shellport.backend.multiplexer.controller.TmuxController.list_sessions",
            new=AsyncMock(return_value=listed),
        ):
            result = runner.invoke(main, ["sessions", str(instance)])

        assert result.exit_code == 0, result.output
        assert "shell-abc" in result.output
        assert "main" not in result.output

    def test_all_includes_foreign_sessions(self, runner, instance):
        listed = [MultiplexerSession(name="main", windows=3)]
        with patch(
            "shellport.backend.multiplexer.controller.TmuxController.list_sessions",
            new=AsyncMock(return_value=listed),
        ):
            result = runner.invoke(main, ["sessions", str(instance), "--all"])

        assert "main" in result.output

    def test_no_sessions(self, runner, instance):
        with patch(
            "shellport.backend.multiplexer.controller.TmuxController.list_sessions",
            new=AsyncMock(return_value=[]),
        ):
            result = runner.invoke(main, ["sessions", str(instance)])

        assert "No sessions" in result.output
