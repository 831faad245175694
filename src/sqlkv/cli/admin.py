"""sqlkv count/purge/info: store-wide commands."""

from __future__ import annotations

from typing import Any, Optional

import typer

from sqlkv.cli import _exitcodes as ec
from sqlkv.cli._output import print_error, print_object
from sqlkv.cli._storage import open_cli_store
from sqlkv.errors import BackendError


def count_cmd() -> None:
    """Show the number of entries and the smallest and largest key."""
    from sqlkv.cli import state

    try:
        store = open_cli_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
    try:
        result = store.count_all()
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    print_object(result._asdict(), json_mode=state.json_output)


def purge_cmd(
    tag: Optional[str] = typer.Option(None, "--tag", help="Delete entries with exactly this tag"),
    before_tag: Optional[str] = typer.Option(
        None, "--before-tag", help="Delete entries whose tag sorts before this one"
    ),
    all_entries: bool = typer.Option(False, "--all", help="Delete every entry"),
    yes: bool = typer.Option(False, "--yes", help="Confirm --all"),
) -> None:
    """Bulk-delete entries by tag, by tag watermark, or all of them."""
    from sqlkv.cli import state

    chosen = [opt for opt in (tag is not None, before_tag is not None, all_entries) if opt]
    if len(chosen) != 1:
        print_error("Pass exactly one of --tag, --before-tag or --all")
        raise typer.Exit(ec.USAGE_ERROR)
    if all_entries and not yes:
        print_error("--all deletes every entry; add --yes to confirm")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        store = open_cli_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
    try:
        if tag is not None:
            deleted = store.delete_all_with_tag(tag)
        elif before_tag is not None:
            deleted = store.delete_where_tag_less_than(before_tag)
        else:
            deleted = store.delete_all()
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    print_object({"deleted": deleted}, json_mode=state.json_output)


def info_cmd() -> None:
    """Show backend details and entry counts."""
    from sqlkv.cli import state

    try:
        store = open_cli_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
    try:
        data: dict[str, Any] = dict(store.storage_info())
        data.update(store.count_all()._asdict())
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    print_object(data, json_mode=state.json_output)
