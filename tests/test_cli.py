"""Tests for the coinwatch CLI."""

import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from coinwatch.cli import cli
from coinwatch.db import AlertStore


@pytest.fixture
def config_file():
    """Write a config pointing every database into a temp directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        path = tmp / "config.toml"
        path.write_text(
            f'database_path = "{(tmp / "alerts.db").as_posix()}"\n'
            f'[queue]\ndatabase_path = "{(tmp / "queue.db").as_posix()}"\n'
        )
        yield path


def _invoke(config_file: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config_file), *args])


class TestLazyGroup:
    def test_help_lists_lazy_commands(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("alert", "alerts", "check", "queue", "run", "trigger", "notify-test"):
            assert name in result.output

    def test_unknown_command(self):
        result = CliRunner().invoke(cli, ["nope"])
        assert result.exit_code != 0


class TestUserAndAlertCommands:
    def test_create_and_list_alert(self, config_file: Path):
        assert _invoke(config_file, "user", "add", "Alice", "alice@example.com").exit_code == 0
        store = AlertStore(config_file.parent / "alerts.db")
        user = store.get_users()[0]

        result = _invoke(config_file, "alert", "btc", "50000", "-u", user.id)
        assert result.exit_code == 0, result.output
        assert "Alert Created" in result.output

        duplicate = _invoke(config_file, "alert", "BTC", "50000.00", "-u", user.id)
        assert duplicate.exit_code == 1
        assert "Failed to create alert" in duplicate.output

        listing = _invoke(config_file, "alerts")
        assert "BTC" in listing.output

    def test_deactivate_and_remove(self, config_file: Path):
        store = AlertStore(config_file.parent / "alerts.db")
        user = store.create_user("Alice", "alice@example.com")
        alert = store.create_alert(user.id, "ETH", 3000, "CROSS_DOWN")

        assert _invoke(config_file, "alerts", "--deactivate", alert.id).exit_code == 0
        assert not store.get_alert(alert.id).active
        assert _invoke(config_file, "alerts", "--deactivate", alert.id).exit_code == 1

        assert _invoke(config_file, "alerts", "--remove", alert.id).exit_code == 0
        assert store.list_alerts() == []

    def test_token_requires_value_or_clear(self, config_file: Path):
        result = _invoke(config_file, "user", "token", "some-id")
        assert result.exit_code == 2


class TestQueueCommands:
    def test_trigger_and_stats(self, config_file: Path):
        result = _invoke(config_file, "trigger")
        assert result.exit_code == 0, result.output
        assert "Queued immediate price check" in result.output

        stats = _invoke(config_file, "queue", "stats")
        assert stats.exit_code == 0
        assert "Waiting" in stats.output

    def test_pause_shows_in_status(self, config_file: Path):
        assert _invoke(config_file, "queue", "pause").exit_code == 0
        status = _invoke(config_file, "status")
        assert "paused" in status.output
        assert _invoke(config_file, "queue", "resume").exit_code == 0

    def test_missing_job(self, config_file: Path):
        result = _invoke(config_file, "queue", "job", "does-not-exist")
        assert result.exit_code == 0
        assert "not found" in result.output
