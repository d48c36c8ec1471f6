"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

from codequery.db.connection import Database
from codequery.db.migrations import CACHE_MIGRATIONS, MIGRATIONS, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


def test_run_migrations_creates_collections_registry(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    assert _table_exists(conn, "collections")
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_cache_migrations_on_plain_sqlite(tmp_path):
    conn = sqlite3.connect(tmp_path / "cache.db")
    run_migrations(conn, CACHE_MIGRATIONS)
    assert _table_exists(conn, "seen")
    assert not _table_exists(conn, "collections")
    conn.close()
