"""Shared test fixtures for sqlkv tests."""

from __future__ import annotations

import os
import uuid

import pytest

from sqlkv.config import StoreConfig
from sqlkv.storage_sqlite import SqliteStore

PG_DSN_ENV = "SQLKV_PG_DSN"


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def store(tmp_db):
    """A SqliteStore backed by a temporary file."""
    s = SqliteStore(tmp_db)
    yield s
    s.close()


@pytest.fixture
def pg_dsn() -> str:
    dsn = os.getenv(PG_DSN_ENV)
    if not dsn:
        pytest.skip(f"PostgreSQL tests disabled (set {PG_DSN_ENV})")
    return dsn


def _drop_pg_table(dsn: str, table: str) -> None:
    import psycopg2

    conn = psycopg2.connect(dsn)
    try:
        with conn, conn.cursor() as cur:
            cur.execute(f"DROP TABLE IF EXISTS {table}")
    finally:
        conn.close()


@pytest.fixture
def pg_store_factory(pg_dsn):
    """Open PostgresStores on throwaway tables, dropped after the test."""
    from sqlkv.storage_postgres import PostgresStore

    opened: list[PostgresStore] = []

    def _open(value_type: str = "text") -> PostgresStore:
        name = f"t_{uuid.uuid4().hex[:12]}"
        s = PostgresStore(name, dsn=pg_dsn, config=StoreConfig(value_type=value_type))
        opened.append(s)
        return s

    yield _open
    for s in opened:
        s.close()
        _drop_pg_table(pg_dsn, s.table)


@pytest.fixture(params=["sqlite", pytest.param("postgres", marks=pytest.mark.postgres)])
def any_store(request, tmp_db):
    """The same store contract on every backend."""
    if request.param == "sqlite":
        s = SqliteStore(tmp_db)
        yield s
        s.close()
    else:
        factory = request.getfixturevalue("pg_store_factory")
        yield factory()


@pytest.fixture
def seeded(any_store):
    """The k / kk / kkk dataset, all tagged "t"."""
    any_store.put("k", "3", "t")
    any_store.put("kk", "33", "t")
    any_store.put("kkk", "333", "t")
    return any_store
