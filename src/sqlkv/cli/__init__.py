"""sqlkv CLI: operator console for inspecting and managing key-value stores."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from sqlkv.cli import admin, entries

app = typer.Typer(
    name="sqlkv",
    help="sqlkv CLI: inspect and manage ordered key-value stores.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str = "sqlkv.db"
    storage_uri: str | None = None
    name: str | None = None
    config: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("sqlkv")
        except Exception:
            v = "unknown"
        print(f"sqlkv {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="SQLKV_DB",
        help="SQLite database file path (default: sqlkv.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="SQLKV_STORAGE_URI",
        help="Backend storage URI (e.g. sqlite:///kv.db or postgresql://user@host/db)",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        envvar="SQLKV_NAME",
        help="Store name; the table is kv_<name> (default: kv)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="SQLKV_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar="SQLKV_LOG_LEVEL", help="Logging level"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all sqlkv commands."""
    from sqlkv.storage import parse_storage_target

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    resolved_db = db or "sqlkv.db"
    if storage_uri:
        try:
            parse_storage_target(storage_uri, db_path=db)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.db = resolved_db
    state.storage_uri = storage_uri
    state.name = name
    state.config = config
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="put")(entries.put_cmd)
app.command(name="get")(entries.get_cmd)
app.command(name="delete")(entries.delete_cmd)
app.command(name="scan")(entries.scan_cmd)
app.command(name="count")(admin.count_cmd)
app.command(name="purge")(admin.purge_cmd)
app.command(name="info")(admin.info_cmd)


def main() -> None:
    """Entry point for the sqlkv CLI."""
    app()
