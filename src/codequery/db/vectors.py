"""Per-collection tables: a records table plus a sqlite-vec virtual table.

A collection named ``"my-code"`` is stored as:

- ``records_my_code``: id (TEXT PRIMARY KEY), path, text, metadata, updated_at.
- ``vec_my_code``: ``vec0(embedding float[N])`` keyed by the records rowid.

Dimensionality is fixed when the collection is created.
"""

from __future__ import annotations

import re
import sqlite3

from codequery.errors import StoreError


def collection_slug(name: str) -> str:
    """Convert a collection name to a valid table name suffix.

    Examples:
        "swiftide-tutorial" -> "swiftide_tutorial"
        "My Code"           -> "my_code"
    """
    slug = re.sub(r"[^a-z0-9]", "_", name.lower())
    if not slug.strip("_"):
        raise StoreError(f"Invalid collection name: {name!r}")
    return slug


def records_table(slug: str) -> str:
    return f"records_{slug}"


def vec_table(slug: str) -> str:
    return f"vec_{slug}"


def get_dimensions(conn: sqlite3.Connection, name: str) -> int | None:
    """Return the vector size of collection *name*, or None if it does not exist."""
    row = conn.execute(
        "SELECT dimensions FROM collections WHERE name = ?", (name,)
    ).fetchone()
    return row["dimensions"] if row else None


def ensure_collection(conn: sqlite3.Connection, name: str, dimensions: int) -> str:
    """Create the tables for collection *name* if they don't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        name: Collection name.
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The collection slug.

    Raises:
        StoreError: If *dimensions* is invalid or differs from the existing
            collection's dimensions. Also raised when another collection
            name maps to the same tables.
    """
    if dimensions < 1:
        raise StoreError(f"dimensions must be >= 1, got {dimensions}")
    slug = collection_slug(name)

    existing = get_dimensions(conn, name)
    if existing is not None:
        if existing != dimensions:
            raise StoreError(
                f"Collection '{name}' has {existing}-dimensional vectors, "
                f"not {dimensions}. Delete the collection to change models."
            )
        return slug

    row = conn.execute("SELECT name FROM collections WHERE slug = ?", (slug,)).fetchone()
    if row is not None:
        raise StoreError(
            f"Collection '{name}' would share tables with collection '{row['name']}'. "
            "Choose a different collection name."
        )

    try:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {records_table(slug)} (
                id          TEXT PRIMARY KEY,
                path        TEXT NOT NULL,
                text        TEXT NOT NULL,
                metadata    TEXT NOT NULL DEFAULT '{{}}',
                updated_at  DATETIME NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
        conn.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {vec_table(slug)} "
            f"USING vec0(embedding float[{dimensions}])"
        )
        conn.execute(
            "INSERT INTO collections (name, slug, dimensions) VALUES (?, ?, ?)",
            (name, slug, dimensions),
        )
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise StoreError(f"Cannot create collection '{name}': {exc}") from exc
    return slug


def drop_collection(conn: sqlite3.Connection, name: str) -> bool:
    """Drop collection *name*. Returns False if it did not exist."""
    row = conn.execute("SELECT slug FROM collections WHERE name = ?", (name,)).fetchone()
    if row is None:
        return False
    slug = row["slug"]
    conn.execute(f"DROP TABLE IF EXISTS {vec_table(slug)}")
    conn.execute(f"DROP TABLE IF EXISTS {records_table(slug)}")
    conn.execute("DELETE FROM collections WHERE name = ?", (name,))
    conn.commit()
    return True
