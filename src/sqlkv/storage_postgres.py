"""PostgreSQL storage backend over a psycopg2 connection pool.

Each operation borrows a pooled connection and commits on its own; there is
no multi-statement transaction API for this backend. Scans use a named
(server-side) cursor so rows stream from the server and an early stop
leaves the remainder unfetched.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection
from psycopg2.pool import AbstractConnectionPool, ThreadedConnectionPool

from sqlkv.config import StoreConfig
from sqlkv.errors import BackendError
from sqlkv.storage import KVStore

logger = logging.getLogger(__name__)

# Rows pulled per round trip by server-side scan cursors.
SCAN_ITERSIZE = 500


class PostgresStore(KVStore):
    """Key-value store in table ``kv_<name>`` of a PostgreSQL database.

    Pass either a libpq ``dsn`` (the store then owns its pool) or an existing
    ``pool`` shared with other stores.
    """

    backend = "postgres"

    def __init__(
        self,
        name: str | None = None,
        *,
        dsn: str | None = None,
        pool: AbstractConnectionPool | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        cfg = config or StoreConfig()
        super().__init__(name or cfg.default_name)
        self.config = cfg
        self.value_type = cfg.value_type
        self.dsn = dsn

        started = time.perf_counter()
        if pool is None:
            if dsn is None:
                raise ValueError("PostgresStore needs a dsn or a connection pool")
            try:
                pool = ThreadedConnectionPool(cfg.pool_min_size, cfg.pool_max_size, dsn)
            except psycopg2.Error as e:
                raise BackendError("open", str(e)) from e
            self._owns_pool = True
        else:
            self._owns_pool = False
        self._pool = pool

        try:
            self._create_tables()
        except BackendError:
            self.close()
            raise
        self._sql = self._prepare_statements()
        logger.info(
            "opened postgres store table %s in %.1f ms",
            self.table,
            (time.perf_counter() - started) * 1000.0,
        )

    def _create_tables(self) -> None:
        with self._connection("create_tables") as conn, conn.cursor() as cur:
            cur.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} ("
                f'k text COLLATE "C" PRIMARY KEY, '
                f"v {self.value_type}, "
                "t text COLLATE \"C\" NOT NULL DEFAULT '')"
            )
            cur.execute(f"CREATE INDEX IF NOT EXISTS kv_k_{self.name} ON {self.table} (k, t)")
            cur.execute(f"CREATE INDEX IF NOT EXISTS kv_t_{self.name} ON {self.table} (t, k)")

    def _prepare_statements(self) -> dict[str, str]:
        table = self.table
        # jsonb/json values are read back as text so both backends return str.
        cols = "k, v::text, t"
        return {
            "insert": (
                f"INSERT INTO {table} (k, v, t) VALUES (%s, %s, %s) "
                "ON CONFLICT (k) DO UPDATE SET v = EXCLUDED.v, t = EXCLUDED.t"
            ),
            "get": f"SELECT {cols} FROM {table} WHERE k = %s LIMIT 1",
            "iterate_asc": f"SELECT {cols} FROM {table} WHERE k >= %s ORDER BY k ASC LIMIT %s",
            "iterate_desc": f"SELECT {cols} FROM {table} WHERE k <= %s ORDER BY k DESC LIMIT %s",
            "iterate_all": f"SELECT {cols} FROM {table} ORDER BY k ASC",
            "iterate_first": f"SELECT {cols} FROM {table} ORDER BY k ASC LIMIT %s",
            "delete": f"DELETE FROM {table} WHERE k = %s",
            "delete_tag": f"DELETE FROM {table} WHERE t = %s",
            "delete_tag_lt": f"DELETE FROM {table} WHERE t < %s",
            "delete_all": f"DELETE FROM {table}",
            "count_all": f"SELECT COUNT(k), MIN(k), MAX(k) FROM {table}",
        }

    # --- Connection handling ---

    @contextmanager
    def _connection(self, operation: str) -> Iterator[PgConnection]:
        """Borrow a pooled connection; commit on success, roll back on error."""
        pool = self._pool
        if pool is None or pool.closed:
            raise BackendError(operation, "store is closed")
        try:
            conn = pool.getconn()
        except psycopg2.Error as e:
            raise BackendError(operation, f"cannot get a pooled connection: {e}") from e
        broken = False
        try:
            try:
                yield conn
                conn.commit()
            except (psycopg2.Error, UnicodeEncodeError) as e:
                broken = conn.closed != 0
                if not broken:
                    conn.rollback()
                raise BackendError(operation, str(e)) from e
            except BaseException:
                broken = conn.closed != 0
                if not broken:
                    conn.rollback()
                raise
        finally:
            pool.putconn(conn, close=broken)

    # --- Capability interface ---

    def _execute(self, operation: str, statement: str, params: tuple[Any, ...]) -> int:
        with self._connection(operation) as conn, conn.cursor() as cur:
            cur.execute(self._sql[statement], params)
            return cur.rowcount

    def _fetch_one(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        with self._connection(operation) as conn, conn.cursor() as cur:
            cur.execute(self._sql[statement], params)
            return cur.fetchone()

    @contextmanager
    def _cursor(
        self, operation: str, statement: str, params: tuple[Any, ...]
    ) -> Iterator[Iterator[tuple[Any, ...]]]:
        with self._connection(operation) as conn:
            with conn.cursor(name=f"sqlkv_{uuid.uuid4().hex}") as cur:
                cur.itersize = SCAN_ITERSIZE
                cur.execute(self._sql[statement], params)
                yield iter(cur)

    # --- Lifecycle ---

    def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None and self._owns_pool and not pool.closed:
            pool.closeall()

    def storage_info(self) -> dict[str, Any]:
        """Return backend info for operator commands."""
        info: dict[str, Any] = {
            "backend": self.backend,
            "name": self.name,
            "table": self.table,
            "value_type": self.value_type,
        }
        if self.dsn is not None:
            info["dsn"] = _redact_dsn(self.dsn)
        return info


def _redact_dsn(dsn: str) -> str:
    """Hide passwords in URI or key=value DSNs."""
    if "://" in dsn:
        parsed = urlparse(dsn)
        if parsed.password:
            netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@")
            return parsed._replace(netloc=netloc).geturl()
        return dsn
    parts = []
    for token in dsn.split():
        if token.startswith("password="):
            token = "password=***"
        parts.append(token)
    return " ".join(parts)


__all__ = ["PostgresStore"]
