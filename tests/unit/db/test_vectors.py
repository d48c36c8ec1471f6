"""Tests for per-collection records + sqlite-vec tables."""

from __future__ import annotations

import pytest

from codequery.db.connection import Database
from codequery.db.migrations import run_migrations
from codequery.db.vectors import (
    collection_slug,
    drop_collection,
    ensure_collection,
    get_dimensions,
)
from codequery.errors import StoreError


@pytest.fixture
def conn(tmp_path):
    conn = Database(tmp_path / "vectors.db").connect()
    run_migrations(conn)
    yield conn
    conn.close()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE name = ?", (name,)
    ).fetchone() is not None


@pytest.mark.parametrize("name,expected", [
    ("swiftide-tutorial", "swiftide_tutorial"),
    ("My Code", "my_code"),
    ("codequery", "codequery"),
])
def test_collection_slug(name, expected):
    assert collection_slug(name) == expected


@pytest.mark.parametrize("name", ["", "---", "  "])
def test_collection_slug_rejects_empty(name):
    with pytest.raises(StoreError, match="Invalid collection name"):
        collection_slug(name)


def test_ensure_collection_creates_tables(conn):
    slug = ensure_collection(conn, "my-code", 4)
    assert slug == "my_code"
    assert _table_exists(conn, "records_my_code")
    assert _table_exists(conn, "vec_my_code")
    assert get_dimensions(conn, "my-code") == 4


def test_ensure_collection_idempotent(conn):
    ensure_collection(conn, "c", 4)
    ensure_collection(conn, "c", 4)
    rows = conn.execute("SELECT COUNT(*) FROM collections").fetchone()[0]
    assert rows == 1


def test_ensure_collection_dimension_mismatch(conn):
    ensure_collection(conn, "c", 4)
    with pytest.raises(StoreError, match="4-dimensional"):
        ensure_collection(conn, "c", 8)


def test_ensure_collection_rejects_zero_dimensions(conn):
    with pytest.raises(StoreError, match="dimensions"):
        ensure_collection(conn, "c", 0)


def test_drop_collection(conn):
    ensure_collection(conn, "c", 4)
    assert drop_collection(conn, "c") is True
    assert not _table_exists(conn, "records_c")
    assert not _table_exists(conn, "vec_c")
    assert get_dimensions(conn, "c") is None


def test_drop_missing_collection_returns_false(conn):
    assert drop_collection(conn, "never-created") is False


def test_ensure_collection_rejects_slug_collision(conn):
    ensure_collection(conn, "a-b", 4)
    with pytest.raises(StoreError, match="would share tables with collection 'a-b'"):
        ensure_collection(conn, "a_b", 4)
    assert get_dimensions(conn, "a_b") is None
    assert get_dimensions(conn, "a-b") == 4


def test_ensure_collection_wraps_sqlite_errors(conn):
    conn.execute("CREATE INDEX records_clash ON collections(name)")
    with pytest.raises(StoreError, match="Cannot create collection 'clash'"):
        ensure_collection(conn, "clash", 4)
    assert get_dimensions(conn, "clash") is None
