"""
Tests for the command-line interface.
"""

import logging

import pytest
from typer.testing import CliRunner

from emotibot.cli import _setup_logging, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logging.basicConfig(level=logging.WARNING, force=True)


def _db_args(tmp_path) -> list[str]:
    return ["--db-dialect", "sqlite3", "--db-host", str(tmp_path / "cli.db")]


def test_migrate_then_rollback(tmp_path):
    upgraded = runner.invoke(app, [*_db_args(tmp_path), "migrate"])
    assert upgraded.exit_code == 0, upgraded.output
    assert "Database at version 2024-09-28:create-emotion" in upgraded.output

    rolled_back = runner.invoke(app, [*_db_args(tmp_path), "migrate", "--rollback-last"])
    assert rolled_back.exit_code == 0, rolled_back.output
    assert "Rolled back 2024-09-28:create-emotion" in rolled_back.output


def test_rollback_on_fresh_database_fails(tmp_path):
    result = runner.invoke(app, [*_db_args(tmp_path), "migrate", "--rollback-last"])

    assert result.exit_code == 1


def test_database_options_from_environment(tmp_path):
    result = runner.invoke(
        app,
        ["migrate"],
        env={"DB_DIALECT": "sqlite3", "DB_HOST": str(tmp_path / "env.db")},
    )

    assert result.exit_code == 0, result.output
    assert (tmp_path / "env.db").exists()


def test_run_requires_tokens(tmp_path):
    result = runner.invoke(app, [*_db_args(tmp_path), "run"], env={})

    assert result.exit_code != 0


def test_setup_logging_levels():
    assert _setup_logging("warning") == logging.WARNING
    assert _setup_logging("nonsense") == logging.DEBUG
