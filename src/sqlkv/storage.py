"""Store contract, shared query/iteration engine, and storage binding."""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, closing
from dataclasses import dataclass
from typing import Any, NamedTuple, Protocol, runtime_checkable
from urllib.parse import urlparse

from sqlkv.codec import decode_value, encode_value
from sqlkv.config import StoreConfig
from sqlkv.errors import BackendError, DecodeError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "sqlkv.db"

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,57}$")


@dataclass(frozen=True)
class Entry:
    """One (key, value, tag) record."""

    key: str
    value: str
    tag: str = ""


class CountResult(NamedTuple):
    count: int
    min_key: str
    max_key: str


class StopFlag:
    """Cooperative early-exit flag handed to iteration callbacks."""

    __slots__ = ("stopped",)

    def __init__(self) -> None:
        self.stopped = False

    def set(self) -> None:
        self.stopped = True

    def __bool__(self) -> bool:
        return self.stopped

    def __repr__(self) -> str:
        return f"StopFlag(stopped={self.stopped})"


EntryCallback = Callable[[str, str, Any, StopFlag], None]
ValueCallback = Callable[[str, str, StopFlag], None]


def validate_store_name(name: str) -> str:
    """Store names end up in table and index identifiers."""
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise ValueError(
            f"Invalid store name {name!r}: use letters, digits and underscores "
            "(max 58 chars, not starting with a digit)"
        )
    return name


# Largest LIMIT both engines accept (signed 64-bit).
MAX_LIMIT = 2**63 - 1


def _check_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or not 0 <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be an integer in [0, {MAX_LIMIT}], got {limit!r}")
    return limit


def _check_text(field: str, text: str) -> None:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"{field} is not valid UTF-8 text: {e.reason}") from e


def _same_sqlite_path(a: str, b: str) -> bool:
    if a == ":memory:" or b == ":memory:":
        return a == b
    return os.path.abspath(a) == os.path.abspath(b)


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from a db path or a storage URI."""

    backend: str
    uri: str
    db_path: str | None = None
    dsn: str | None = None


def parse_storage_target(
    storage_uri: str | None = None,
    *,
    db_path: str | None = None,
) -> StorageTarget:
    """Resolve the backend from a plain sqlite path or a URI.

    ``sqlite:///relative.db``, ``sqlite:////abs/path.db`` and
    ``sqlite:///:memory:`` select SQLite; ``postgresql://`` and ``postgres://``
    select PostgreSQL and are passed through to the driver as the DSN.
    """
    if storage_uri is None:
        path = db_path or DEFAULT_DB_PATH
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{path}", db_path=path)

    parsed = urlparse(storage_uri)

    if parsed.scheme == "sqlite":
        sqlite_path = parsed.path
        if parsed.netloc:
            sqlite_path = f"{parsed.netloc}{sqlite_path}"
        elif sqlite_path.startswith("/"):
            # sqlite:///rel.db -> rel.db, sqlite:////abs.db -> /abs.db
            sqlite_path = sqlite_path[1:]
        if not sqlite_path:
            raise BackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
        if db_path is not None and not _same_sqlite_path(db_path, sqlite_path):
            raise BackendError(
                "parse_storage_uri",
                f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
            )
        return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)

    if parsed.scheme in ("postgres", "postgresql"):
        if db_path is not None:
            raise BackendError(
                "parse_storage_uri",
                "db_path cannot be provided for postgres storage targets",
            )
        return StorageTarget(backend="postgres", uri=storage_uri, dsn=storage_uri)

    raise BackendError(
        "parse_storage_uri",
        f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
    )


@runtime_checkable
class KVStoreProtocol(Protocol):
    """Backend-agnostic store contract used by callers and the CLI."""

    name: str

    def close(self) -> None: ...

    def storage_info(self) -> dict[str, Any]: ...

    def put(self, key: str, value: str, tag: str = "") -> int: ...

    def put_json(self, key: str, obj: Any, tag: str = "") -> int: ...

    def get(self, key: str) -> str | None: ...

    def get_entry(self, key: str) -> Entry | None: ...

    def get_json(self, key: str, shape: Any = Any) -> Any: ...

    def delete(self, key: str) -> int: ...

    def delete_all_with_tag(self, tag: str) -> int: ...

    def delete_where_tag_less_than(self, tag: str) -> int: ...

    def delete_all(self) -> int: ...

    def count_all(self) -> CountResult: ...

    def scan_ascending_from(self, start_key: str, limit: int) -> Iterator[Entry]: ...

    def scan_descending_from(self, start_key: str, limit: int) -> Iterator[Entry]: ...

    def iterate_ascending_from(self, start_key: str, limit: int, callback: EntryCallback) -> int: ...

    def iterate_descending_from(
        self, start_key: str, limit: int, callback: EntryCallback
    ) -> int: ...

    def scan_all_json(self, shape: Any = Any) -> Iterator[tuple[Entry, Any]]: ...

    def iterate_all(self, callback: EntryCallback, shape: Any = Any) -> int: ...

    def iterate_all_decoded(self, callback: EntryCallback, shape: Any = Any) -> int: ...

    def iterate_values(self, limit: int, callback: ValueCallback) -> int: ...


class KVStore(ABC):
    """Shared store engine.

    Backends provide the capability methods (``_execute``, ``_fetch_one``,
    ``_cursor``) plus a ``_sql`` mapping of named query templates:

    ``insert``, ``get``, ``iterate_asc``, ``iterate_desc``, ``iterate_all``,
    ``iterate_first``, ``delete``, ``delete_tag``, ``delete_tag_lt``,
    ``delete_all``, ``count_all``.

    Every operation here is written once against those templates, so both
    backends share the same ordering, limit and decoding behavior.
    """

    backend: str = ""

    def __init__(self, name: str) -> None:
        self.name = validate_store_name(name)
        self.table = f"kv_{name}"
        self._sql: dict[str, str] = {}

    # --- Capability interface ---

    @abstractmethod
    def _execute(self, operation: str, statement: str, params: tuple[Any, ...]) -> int:
        """Run a mutation and return the affected row count."""

    @abstractmethod
    def _fetch_one(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        """Run a query and return its first row, or None."""

    @abstractmethod
    def _cursor(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> AbstractContextManager[Iterator[tuple[Any, ...]]]:
        """Open a cursor; the yielded iterator streams rows until the context exits."""

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def storage_info(self) -> dict[str, Any]: ...

    def __enter__(self) -> KVStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Writes ---

    def put(self, key: str, value: str, tag: str = "") -> int:
        """Insert or replace the entry for key. Value and tag are both overwritten."""
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")
        if not isinstance(value, str):
            raise TypeError(
                f"put() takes a str value, got {type(value).__name__}; use put_json() for objects"
            )
        if not isinstance(tag, str):
            raise TypeError(f"tag must be a str, got {type(tag).__name__}")
        _check_text("key", key)
        _check_text("value", value)
        _check_text("tag", tag)
        return self._execute("put", "insert", (key, value, tag))

    def put_json(self, key: str, obj: Any, tag: str = "") -> int:
        """Encode obj as JSON and store it under key."""
        return self.put(key, encode_value(obj), tag)

    def delete(self, key: str) -> int:
        return self._execute("delete", "delete", (key,))

    def delete_all_with_tag(self, tag: str) -> int:
        return self._execute("delete_all_with_tag", "delete_tag", (tag,))

    def delete_where_tag_less_than(self, tag: str) -> int:
        """Delete every entry whose tag sorts strictly before tag.

        Tags compare as strings. Use fixed-width encodings (for example
        zero-padded timestamps) when tags stand for points in time.
        """
        return self._execute("delete_where_tag_less_than", "delete_tag_lt", (tag,))

    def delete_all(self) -> int:
        return self._execute("delete_all", "delete_all", ())

    # --- Point reads ---

    def get_entry(self, key: str) -> Entry | None:
        row = self._fetch_one("get", "get", (key,))
        if row is None:
            return None
        k, v, t = row
        return Entry(key=k, value=v, tag=t if t is not None else "")

    def get(self, key: str) -> str | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def get_json(self, key: str, shape: Any = Any) -> Any:
        """Decode the value stored under key into shape.

        Returns None if the key is absent. Raises DecodeError if the stored
        value does not fit shape.
        """
        value = self.get(key)
        if value is None:
            return None
        return decode_value(value, shape)

    def count_all(self) -> CountResult:
        """Return (count, min key, max key). An empty store yields (0, "", "")."""
        row = self._fetch_one("count_all", "count_all", ())
        if row is None:
            return CountResult(0, "", "")
        count, min_key, max_key = row
        return CountResult(int(count or 0), min_key or "", max_key or "")

    # --- Scans ---

    def _scan(self, operation: str, statement: str, params: tuple[Any, ...]) -> Iterator[Entry]:
        with self._cursor(operation, statement, params) as rows:
            for k, v, t in rows:
                yield Entry(key=k, value=v, tag=t if t is not None else "")

    def scan_ascending_from(self, start_key: str, limit: int) -> Iterator[Entry]:
        """Yield entries with key >= start_key in ascending key order."""
        _check_limit(limit)
        return self._scan("iterate_ascending_from", "iterate_asc", (start_key, limit))

    def scan_descending_from(self, start_key: str, limit: int) -> Iterator[Entry]:
        """Yield entries with key <= start_key in descending key order."""
        _check_limit(limit)
        return self._scan("iterate_descending_from", "iterate_desc", (start_key, limit))

    def scan_all(self) -> Iterator[Entry]:
        return self._scan("iterate_all", "iterate_all", ())

    @staticmethod
    def _drive(entries: Iterator[Entry], callback: EntryCallback) -> int:
        stop = StopFlag()
        delivered = 0
        # closing() releases the cursor on early stop or callback error
        with closing(entries):  # type: ignore[type-var]
            for entry in entries:
                callback(entry.key, entry.tag, entry.value, stop)
                delivered += 1
                if stop:
                    break
        return delivered

    def iterate_ascending_from(self, start_key: str, limit: int, callback: EntryCallback) -> int:
        """Call callback(key, tag, value, stop) for up to limit entries with key >= start_key.

        Returns the number of rows delivered.
        """
        return self._drive(self.scan_ascending_from(start_key, limit), callback)

    def iterate_descending_from(self, start_key: str, limit: int, callback: EntryCallback) -> int:
        """Call callback(key, tag, value, stop) for up to limit entries with key <= start_key,
        newest key first."""
        return self._drive(self.scan_descending_from(start_key, limit), callback)

    def scan_all_json(self, shape: Any = Any) -> Iterator[tuple[Entry, Any]]:
        """Yield (entry, decoded value) for every entry whose value decodes into shape.

        Rows that fail to decode are logged and skipped; the scan keeps going.
        Point reads through get_json() raise instead.
        """
        entries = self.scan_all()
        with closing(entries):  # type: ignore[type-var]
            for entry in entries:
                try:
                    decoded = decode_value(entry.value, shape)
                except DecodeError as e:
                    logger.warning("iterate_all on %s: skipping key %r: %s", self.name, entry.key, e)
                    continue
                yield entry, decoded

    def _drive_decodable(self, shape: Any, callback: EntryCallback, *, decoded: bool) -> int:
        stop = StopFlag()
        delivered = 0
        rows = self.scan_all_json(shape)
        with closing(rows):  # type: ignore[type-var]
            for entry, obj in rows:
                callback(entry.key, entry.tag, obj if decoded else entry.value, stop)
                delivered += 1
                if stop:
                    break
        return delivered

    def iterate_all(self, callback: EntryCallback, shape: Any = Any) -> int:
        """Call callback(key, tag, value, stop) for every entry in key order.

        value is the stored text, as in the bound iterations. An entry whose
        value does not decode into shape is skipped with a warning.
        """
        return self._drive_decodable(shape, callback, decoded=False)

    def iterate_all_decoded(self, callback: EntryCallback, shape: Any = Any) -> int:
        """Like iterate_all(), but callback receives the value decoded into shape."""
        return self._drive_decodable(shape, callback, decoded=True)

    def iterate_values(self, limit: int, callback: ValueCallback) -> int:
        """Call callback(key, value, stop) for the first limit entries in key order."""
        _check_limit(limit)
        stop = StopFlag()
        delivered = 0
        entries = self._scan("iterate_values", "iterate_first", (limit,))
        with closing(entries):  # type: ignore[type-var]
            for entry in entries:
                callback(entry.key, entry.value, stop)
                delivered += 1
                if stop:
                    break
        return delivered


def open_store(
    storage_uri: str | None = None,
    *,
    db_path: str | None = None,
    name: str | None = None,
    config: StoreConfig | None = None,
) -> KVStoreProtocol:
    """Open a store for a sqlite path or a storage URI."""
    target = parse_storage_target(storage_uri, db_path=db_path)
    cfg = config or StoreConfig()
    store_name = name or cfg.default_name
    if target.backend == "sqlite":
        from sqlkv.storage_sqlite import SqliteStore

        assert target.db_path is not None
        return SqliteStore(target.db_path, name=store_name, config=cfg)
    if target.backend == "postgres":
        from sqlkv.storage_postgres import PostgresStore

        return PostgresStore(store_name, dsn=target.dsn, config=cfg)
    raise BackendError("open_store", f"Unsupported backend '{target.backend}'")


__all__ = [
    "CountResult",
    "Entry",
    "KVStore",
    "KVStoreProtocol",
    "StopFlag",
    "StorageTarget",
    "open_store",
    "parse_storage_target",
    "validate_store_name",
]
