"""CLI wiring; nothing here touches a database."""

from __future__ import annotations

from click.testing import CliRunner

from composa.cli import main


def test_command_groups() -> None:
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    for name in ("serve", "db", "roles"):
        assert name in result.output


def test_db_commands() -> None:
    result = CliRunner().invoke(main, ["db", "--help"])
    assert result.exit_code == 0
    for name in ("upgrade", "downgrade", "migrate", "current", "history"):
        assert name in result.output


def test_grant_action_rejects_unknown_action() -> None:
    result = CliRunner().invoke(main, ["roles", "grant-action", "role-1", "object:read", "object:explode"])
    assert result.exit_code == 2
    assert "object:explode" in result.output
