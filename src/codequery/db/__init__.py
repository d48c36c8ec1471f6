"""codequery database layer: vector store and dedup cache."""

from codequery.db.cache import DedupCache
from codequery.db.connection import Database
from codequery.db.migrations import MIGRATIONS, run_migrations
from codequery.db.models import ScoredRecord, StoredRecord
from codequery.db.store import VectorStore
from codequery.db.vectors import collection_slug, ensure_collection

__all__ = [
    "Database",
    "DedupCache",
    "MIGRATIONS",
    "ScoredRecord",
    "StoredRecord",
    "VectorStore",
    "collection_slug",
    "ensure_collection",
    "run_migrations",
]
