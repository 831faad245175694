"""SQLite storage backend with a single-writer transaction coordinator."""

from __future__ import annotations

import enum
import logging
import os
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlkv.config import StoreConfig
from sqlkv.errors import BackendError, TransactionConflictError
from sqlkv.storage import KVStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Driver-side failures reported as BackendError. The sqlite3 module raises the
# last two directly when encoding parameters (lone surrogates, ints past 64 bits).
_DRIVER_ERRORS = (sqlite3.Error, UnicodeEncodeError, OverflowError)


class TransactionState(enum.Enum):
    IDLE = "idle"
    IN_TRANSACTION = "in_transaction"


class SqliteStore(KVStore):
    """Key-value store in a single SQLite database file (or ``:memory:``)."""

    backend = "sqlite"

    def __init__(
        self,
        db_path: str,
        *,
        name: str | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        cfg = config or StoreConfig()
        super().__init__(name or cfg.default_name)
        self.config = cfg
        self.db_path = db_path
        # Serializes use of the shared connection across threads.
        self._lock = threading.RLock()
        self._tx_guard = threading.Lock()
        self._tx_state = TransactionState.IDLE
        self._closed = False

        started = time.perf_counter()
        try:
            self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        except sqlite3.Error as e:
            raise BackendError("open", f"cannot open {db_path}: {e}") from e
        try:
            self._conn.execute(f"PRAGMA busy_timeout = {int(cfg.busy_timeout_ms)}")
            self._conn.execute(f"PRAGMA journal_mode = {cfg.journal_mode}").fetchone()
            self._create_tables()
        except sqlite3.Error as e:
            self._conn.close()
            raise BackendError("create_tables", str(e)) from e
        self._sql = self._prepare_statements()
        logger.info(
            "opened sqlite store %s (table %s) in %.1f ms",
            db_path,
            self.table,
            (time.perf_counter() - started) * 1000.0,
        )

    @classmethod
    def in_folder(
        cls,
        name: str,
        folder: str = ".",
        *,
        config: StoreConfig | None = None,
    ) -> SqliteStore:
        """Open ``<folder>/<name>.db``; folder ``:memory:`` gives an in-memory store."""
        folder = folder or "."
        if folder == ":memory:":
            db_path = ":memory:"
        else:
            db_path = os.path.join(folder, f"{name}.db")
        return cls(db_path, name=name, config=config)

    def _create_tables(self) -> None:
        self._conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                k TEXT PRIMARY KEY,
                v TEXT,
                t TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS kv_k_{self.name} ON {self.table} (k, t);

            CREATE INDEX IF NOT EXISTS kv_t_{self.name} ON {self.table} (t, k);
        """)

    def _prepare_statements(self) -> dict[str, str]:
        table = self.table
        return {
            "insert": f"INSERT OR REPLACE INTO {table} (k, v, t) VALUES (?, ?, ?)",
            "get": f"SELECT k, v, t FROM {table} WHERE k = ? LIMIT 1",
            "iterate_asc": f"SELECT k, v, t FROM {table} WHERE k >= ? ORDER BY k ASC LIMIT ?",
            "iterate_desc": f"SELECT k, v, t FROM {table} WHERE k <= ? ORDER BY k DESC LIMIT ?",
            "iterate_all": f"SELECT k, v, t FROM {table} ORDER BY k ASC",
            "iterate_first": f"SELECT k, v, t FROM {table} ORDER BY k ASC LIMIT ?",
            "delete": f"DELETE FROM {table} WHERE k = ?",
            "delete_tag": f"DELETE FROM {table} WHERE t = ?",
            "delete_tag_lt": f"DELETE FROM {table} WHERE t < ?",
            "delete_all": f"DELETE FROM {table} WHERE 1",
            "count_all": f"SELECT COUNT(k), MIN(k), MAX(k) FROM {table}",
        }

    # --- Capability interface ---

    def _execute(self, operation: str, statement: str, params: tuple[Any, ...]) -> int:
        with self._lock:
            try:
                cur = self._conn.execute(self._sql[statement], params)
            except _DRIVER_ERRORS as e:
                raise BackendError(operation, str(e)) from e
            return cur.rowcount

    def _fetch_one(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        with self._lock:
            try:
                return self._conn.execute(self._sql[statement], params).fetchone()
            except _DRIVER_ERRORS as e:
                raise BackendError(operation, str(e)) from e

    @contextmanager
    def _cursor(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> Iterator[Iterator[tuple[Any, ...]]]:
        with self._lock:
            try:
                cur = self._conn.execute(self._sql[statement], params)
            except _DRIVER_ERRORS as e:
                raise BackendError(operation, str(e)) from e
        try:
            yield self._rows(operation, cur)
        finally:
            with self._lock:
                if not self._closed:
                    cur.close()

    def _rows(self, operation: str, cur: sqlite3.Cursor) -> Iterator[tuple[Any, ...]]:
        # One row per step so an early stop leaves the rest unfetched.
        while True:
            with self._lock:
                try:
                    row = cur.fetchone()
                except _DRIVER_ERRORS as e:
                    raise BackendError(operation, str(e)) from e
            if row is None:
                return
            yield row

    # --- Transactions ---

    @property
    def transaction_state(self) -> TransactionState:
        return self._tx_state

    @contextmanager
    def transaction(self) -> Iterator[SqliteStore]:
        """Run the enclosed writes as one atomic unit.

        Only one transaction may be active per store; a nested or concurrent
        attempt raises TransactionConflictError. If the block raises, the
        transaction is rolled back and the exception propagates.

        A conflict is a bug in the caller, not a runtime condition. It is
        logged at CRITICAL and raised instead of terminating the process, and
        nothing in sqlkv catches it: left unhandled it ends the program, while
        an embedding application can still catch it at its top level.
        """
        if not self._tx_guard.acquire(blocking=False):
            logger.critical(
                "transaction requested on %s while another is active", self.db_path
            )
            raise TransactionConflictError()
        try:
            self._run_control("begin_transaction", "BEGIN")
            self._tx_state = TransactionState.IN_TRANSACTION
            try:
                yield self
            except BaseException:
                self._rollback()
                raise
            self._commit()
        finally:
            self._tx_state = TransactionState.IDLE
            self._tx_guard.release()

    def run_in_transaction(self, body: Callable[[SqliteStore], T]) -> T:
        """Call body(store) inside a transaction and return its result."""
        with self.transaction() as store:
            return body(store)

    def _run_control(self, operation: str, sql: str) -> None:
        with self._lock:
            try:
                self._conn.execute(sql)
            except sqlite3.Error as e:
                raise BackendError(operation, str(e)) from e

    def _commit(self) -> None:
        try:
            self._run_control("commit_transaction", "COMMIT")
        except BackendError:
            self._rollback()
            raise

    def _rollback(self) -> None:
        with self._lock:
            if not self._conn.in_transaction:
                return
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                raise BackendError("rollback_transaction", str(e)) from e

    # --- Lifecycle ---

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()

    def close_and_delete(self) -> None:
        """Close the store and remove its database file."""
        self.close()
        if self.db_path == ":memory:":
            return
        logger.info("removing sqlite store %s", self.db_path)
        for suffix in ("", "-wal", "-shm", "-journal"):
            try:
                os.remove(self.db_path + suffix)
            except FileNotFoundError:
                pass

    def storage_info(self) -> dict[str, Any]:
        """Return backend info for operator commands."""
        return {
            "backend": self.backend,
            "name": self.name,
            "table": self.table,
            "db_path": self.db_path,
            "journal_mode": self.config.journal_mode,
            "transaction_state": self._tx_state.value,
        }


__all__ = ["SqliteStore", "TransactionState"]
