"""Vector store over SQLite + sqlite-vec.

Single interface for collections, idempotent record upserts, nearest-neighbour
search and collection re-provisioning. The store owns its connection.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from loguru import logger

from codequery.db.connection import Database
from codequery.db.migrations import run_migrations
from codequery.db.models import ScoredRecord, StoredRecord
from codequery.db.vectors import (
    collection_slug,
    drop_collection,
    ensure_collection,
    get_dimensions,
    records_table,
    vec_table,
)
from codequery.errors import StoreError, StoreUnavailableError


class VectorStore:
    """Collections of (id, path, text, metadata, vector) records.

    Writes are upserts keyed by record id: writing an id twice leaves one
    record holding the latest content.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open connection (sqlite-vec loaded, schema migrated)."""
        self._conn = conn

    @classmethod
    def open(cls, db_path: Path | str) -> VectorStore:
        """Open (or create) the store at *db_path* and run migrations.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        conn = Database(db_path).connect()
        try:
            run_migrations(conn)
        except sqlite3.Error as exc:
            conn.close()
            raise StoreUnavailableError(f"Cannot migrate database '{db_path}': {exc}") from exc
        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def ensure_collection(self, name: str, dimensions: int) -> None:
        """Create *name* with fixed *dimensions* if missing (see db.vectors)."""
        ensure_collection(self._conn, name, dimensions)

    def delete_collection(self, name: str) -> bool:
        """Drop *name* and all its records. Absence is not an error.

        Returns:
            True if the collection existed, False otherwise.
        """
        existed = drop_collection(self._conn, name)
        if existed:
            logger.info("Deleted collection {}", name)
        else:
            logger.debug("Collection {} does not exist; nothing to delete", name)
        return existed

    def list_collections(self) -> list[str]:
        rows = self._conn.execute("SELECT name FROM collections ORDER BY name").fetchall()
        return [r["name"] for r in rows]

    def count(self, collection: str) -> int:
        """Return the number of records in *collection* (0 if it does not exist)."""
        if get_dimensions(self._conn, collection) is None:
            return 0
        table = records_table(collection_slug(collection))
        return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def upsert(self, collection: str, records: list[StoredRecord]) -> None:
        """Insert or overwrite *records* by id.

        Raises:
            StoreError: If the collection is missing, a vector has the wrong
                size, or the database rejects the write.
        """
        dims = self._require(collection)
        slug = collection_slug(collection)
        records_tbl, vec_tbl = records_table(slug), vec_table(slug)

        for record in records:
            if len(record.vector) != dims:
                raise StoreError(
                    f"Record {record.id} has a {len(record.vector)}-dimensional vector; "
                    f"collection '{collection}' expects {dims}"
                )

        try:
            for record in records:
                self._conn.execute(
                    f"""
                    INSERT INTO {records_tbl} (id, path, text, metadata)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        path = excluded.path,
                        text = excluded.text,
                        metadata = excluded.metadata,
                        updated_at = datetime('now')
                    """,
                    (record.id, record.path, record.text, record.metadata_json),
                )
                rowid = self._conn.execute(
                    f"SELECT rowid FROM {records_tbl} WHERE id = ?", (record.id,)
                ).fetchone()[0]
                # vec0 rows are replaced rather than updated in place
                self._conn.execute(f"DELETE FROM {vec_tbl} WHERE rowid = ?", (rowid,))
                self._conn.execute(
                    f"INSERT INTO {vec_tbl}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(record.vector)),
                )
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreError(f"Upsert into '{collection}' failed: {exc}") from exc

    def get(self, collection: str, record_id: str) -> StoredRecord | None:
        """Return a record by id, or None if not found."""
        self._require(collection)
        slug = collection_slug(collection)
        row = self._conn.execute(
            f"SELECT rowid, id, path, text, metadata FROM {records_table(slug)} WHERE id = ?",
            (record_id,),
        ).fetchone()
        return self._row_to_record(slug, row) if row else None

    def search(
        self, collection: str, vector: list[float], top_k: int = 10
    ) -> list[ScoredRecord]:
        """Nearest-neighbour search. Returns hits sorted by distance, closest first.

        Raises:
            StoreError: If the collection is missing or the query vector has the
                wrong size.
        """
        dims = self._require(collection)
        if len(vector) != dims:
            raise StoreError(
                f"Query vector has {len(vector)} dimensions; collection "
                f"'{collection}' expects {dims}"
            )
        slug = collection_slug(collection)
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {vec_table(slug)} "
            "WHERE embedding MATCH ? AND k = ? ORDER BY distance",
            (json.dumps(vector), top_k),
        ).fetchall()

        results: list[ScoredRecord] = []
        for vec_row in vec_rows:
            row = self._conn.execute(
                f"SELECT rowid, id, path, text, metadata FROM {records_table(slug)} "
                "WHERE rowid = ?",
                (vec_row["rowid"],),
            ).fetchone()
            if row is not None:
                results.append(
                    ScoredRecord(self._row_to_record(slug, row), vec_row["distance"])
                )
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, collection: str) -> int:
        dims = get_dimensions(self._conn, collection)
        if dims is None:
            raise StoreError(
                f"Collection '{collection}' does not exist. Run 'codequery index' first."
            )
        return dims

    def _row_to_record(self, slug: str, row: sqlite3.Row) -> StoredRecord:
        vec_row = self._conn.execute(
            f"SELECT vec_to_json(embedding) AS v FROM {vec_table(slug)} WHERE rowid = ?",
            (row["rowid"],),
        ).fetchone()
        return StoredRecord(
            id=row["id"],
            path=row["path"],
            text=row["text"],
            vector=json.loads(vec_row["v"]) if vec_row else [],
            metadata=json.loads(row["metadata"]),
        )
