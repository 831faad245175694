"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from sqlkv.cli import app
from sqlkv.storage_sqlite import SqliteStore

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the caller's SQLKV_* settings out of CLI tests."""
    for var in ("SQLKV_DB", "SQLKV_STORAGE_URI", "SQLKV_NAME", "SQLKV_CONFIG", "SQLKV_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Temp DB path for the CLI's --db option."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create a DB with some seed data."""
    store = SqliteStore(cli_db)
    store.put("job:001", '{"state": "done"}', "20240101")
    store.put("job:002", '{"state": "done"}', "20240102")
    store.put("job:003", '{"state": "running"}', "20240103")
    store.put("user:alice", '"admin"', "")
    store.close()
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    result = runner.invoke(app, args, catch_exceptions=False)
    return result
