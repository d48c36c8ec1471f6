"""Dedup cache: fingerprints of items indexed by earlier runs.

The cache is addressed by URL so it can live outside the vector store:

    sqlite:///relative/path.db     (relative to the working directory)
    sqlite:////absolute/path.db
    sqlite:///:memory:

It fails open: if the backing database cannot be opened or queried, a warning
is logged and every item is treated as unseen. A broken cache costs a
re-index, never a crashed run.
"""

from __future__ import annotations

import sqlite3

from loguru import logger

from codequery.config import ConfigError
from codequery.db.migrations import CACHE_MIGRATIONS, run_migrations
from codequery.ingest.stages import NodeCache

_SQLITE_PREFIX = "sqlite:///"


class DedupCache(NodeCache):
    """``contains`` / ``insert`` over a namespaced set of fingerprints.

    Args:
        conn: Open connection, or None when the backing store is unavailable.
        namespace: Key prefix (usually the collection name) so several
            collections can share one cache file.
    """

    def __init__(self, conn: sqlite3.Connection | None, namespace: str) -> None:
        self._conn = conn
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str) -> DedupCache:
        """Open the cache at *url*.

        Raises:
            ConfigError: If the URL scheme is not supported. An unreachable
                database is not an error (fail-open).
        """
        if not url.startswith(_SQLITE_PREFIX):
            raise ConfigError(
                f"Unsupported cache URL '{url}'. Use sqlite:///path/to/cache.db"
            )
        path = url[len(_SQLITE_PREFIX):]
        try:
            conn = sqlite3.connect(path)
            run_migrations(conn, CACHE_MIGRATIONS)
        except sqlite3.Error as exc:
            logger.warning("Dedup cache at {} unavailable, indexing everything: {}", url, exc)
            return cls(None, namespace)
        return cls(conn, namespace)

    @property
    def available(self) -> bool:
        return self._conn is not None

    def contains(self, fingerprint: str) -> bool:
        """True if *fingerprint* was recorded. False when the cache is unavailable."""
        if self._conn is None:
            return False
        try:
            row = self._conn.execute(
                "SELECT 1 FROM seen WHERE namespace = ? AND fingerprint = ?",
                (self.namespace, fingerprint),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Dedup cache lookup failed, treating item as unseen: {}", exc)
            return False
        return row is not None

    def insert(self, fingerprint: str) -> None:
        """Record *fingerprint* as seen. Errors are logged and ignored."""
        if self._conn is None:
            return
        try:
            self._conn.execute(
                "INSERT OR IGNORE INTO seen (namespace, fingerprint) VALUES (?, ?)",
                (self.namespace, fingerprint),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Dedup cache insert failed: {}", exc)

    def clear(self) -> None:
        """Forget every fingerprint in this namespace."""
        if self._conn is None:
            return
        try:
            self._conn.execute("DELETE FROM seen WHERE namespace = ?", (self.namespace,))
            self._conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Dedup cache clear failed: {}", exc)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
