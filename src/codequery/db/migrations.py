"""Forward-only migration runner for the codequery database schema.

Per-collection tables (records_* and vec_*) are NOT migration-managed; they are
created and dropped by codequery.db.vectors.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS collections (
    name        TEXT PRIMARY KEY,
    slug        TEXT NOT NULL UNIQUE,
    dimensions  INTEGER NOT NULL,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Dedup cache lives in its own database file (addressed by URL), but uses the
# same runner so it is versioned the same way.
_CACHE_V1_SQL = """
CREATE TABLE IF NOT EXISTS seen (
    namespace   TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    seen_at     DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (namespace, fingerprint)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]

CACHE_MIGRATIONS: list[tuple[int, str]] = [
    (1, _CACHE_V1_SQL),
]


def run_migrations(
    conn: sqlite3.Connection,
    migrations: list[tuple[int, str]] | None = None,
) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.

    Args:
        conn: Open connection.
        migrations: Migration list to apply (defaults to the store schema).
    """
    migrations = MIGRATIONS if migrations is None else migrations
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in migrations:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
