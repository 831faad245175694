"""sqlkv put/get/delete/scan: single-entry and range commands."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from sqlkv.cli import _exitcodes as ec
from sqlkv.cli._output import VALUE_PREVIEW, print_entries, print_error, print_object
from sqlkv.cli._storage import open_cli_store
from sqlkv.errors import BackendError
from sqlkv.storage import Entry, KVStoreProtocol, StopFlag


def _open() -> KVStoreProtocol:
    try:
        return open_cli_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)


def put_cmd(
    key: str = typer.Argument(..., help="Entry key"),
    value: str = typer.Argument(..., help="Entry value"),
    tag: str = typer.Option("", "--tag", "-t", help="Tag (batch or generation marker)"),
    json_value: bool = typer.Option(
        False, "--json-value", help="Parse VALUE as JSON and store it normalized"
    ),
) -> None:
    """Insert or replace one entry."""
    if not key:
        print_error("KEY must not be empty")
        raise typer.Exit(ec.USAGE_ERROR)
    obj: Any = None
    if json_value:
        try:
            obj = json.loads(value)
        except json.JSONDecodeError as e:
            print_error(f"VALUE is not valid JSON: {e}")
            raise typer.Exit(ec.USAGE_ERROR)

    store = _open()
    try:
        if json_value:
            store.put_json(key, obj, tag)
        else:
            store.put(key, value, tag)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()


def get_cmd(
    key: str = typer.Argument(..., help="Entry key"),
) -> None:
    """Print the value stored under KEY."""
    from sqlkv.cli import state

    store = _open()
    try:
        entry = store.get_entry(key)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()

    if entry is None:
        print_error(f"Key not found: {key}")
        raise typer.Exit(ec.NOT_FOUND)
    if state.json_output:
        print_object({"key": entry.key, "value": entry.value, "tag": entry.tag}, json_mode=True)
    else:
        print(entry.value)


def delete_cmd(
    key: str = typer.Argument(..., help="Entry key"),
) -> None:
    """Delete the entry for KEY (no-op when absent)."""
    from sqlkv.cli import state

    store = _open()
    try:
        deleted = store.delete(key)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    print_object({"deleted": deleted}, json_mode=state.json_output)


def scan_cmd(
    start: Optional[str] = typer.Argument(
        None, help="Bound key: lower bound (ascending) or upper bound (--desc)"
    ),
    desc: bool = typer.Option(False, "--desc", help="Scan keys <= START in descending order"),
    limit: int = typer.Option(100, "--limit", "-l", min=0, help="Maximum rows"),
    full: bool = typer.Option(False, "--full", help="Do not shorten long values"),
) -> None:
    """List entries in key order starting at a bound key."""
    from sqlkv.cli import state

    found: list[Entry] = []

    def _collect(key: str, tag: str, value: Any, stop: StopFlag) -> None:
        found.append(Entry(key=key, value=value, tag=tag))

    store = _open()
    try:
        if desc:
            bound = start if start is not None else store.count_all().max_key
            store.iterate_descending_from(bound, limit, _collect)
        else:
            store.iterate_ascending_from(start or "", limit, _collect)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()

    print_entries(found, json_mode=state.json_output, value_width=0 if full else VALUE_PREVIEW)
