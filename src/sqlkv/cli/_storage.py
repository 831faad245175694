"""CLI helpers for backend-aware store construction."""

from __future__ import annotations

from sqlkv.config import StoreConfig, config_from_env, load_config
from sqlkv.storage import KVStoreProtocol, open_store


def resolve_storage_binding() -> tuple[str | None, str | None]:
    """Return (db_path, storage_uri) from CLI state."""
    from sqlkv.cli import state

    if state.storage_uri:
        return None, state.storage_uri
    return state.db, None


def resolve_config() -> StoreConfig:
    """Config file (if any) overlaid with SQLKV_* environment variables."""
    from sqlkv.cli import state

    base = load_config(state.config) if state.config else None
    return config_from_env(base)


def open_cli_store() -> KVStoreProtocol:
    """Open the store selected by the global CLI options."""
    from sqlkv.cli import state

    db_path, storage_uri = resolve_storage_binding()
    return open_store(storage_uri, db_path=db_path, name=state.name, config=resolve_config())
