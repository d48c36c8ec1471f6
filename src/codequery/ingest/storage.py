"""Store writer: persist embedded chunks as vector store records."""

from __future__ import annotations

from codequery.db.models import StoredRecord
from codequery.db.store import VectorStore
from codequery.errors import StoreError
from codequery.ingest.models import Chunk
from codequery.ingest.stages import Storage


def to_record(chunk: Chunk) -> StoredRecord:
    """Convert an embedded chunk to its store record.

    Raises:
        StoreError: If the chunk has no vector.
    """
    if chunk.vector is None:
        raise StoreError(f"Chunk {chunk.path}@{chunk.offset} has no embedding")
    metadata = dict(chunk.metadata)
    metadata["path"] = chunk.path
    metadata["offset"] = chunk.offset
    return StoredRecord(
        id=chunk.id,
        path=chunk.path,
        text=chunk.text,
        vector=chunk.vector,
        metadata=metadata,
    )


class VectorStorage(Storage):
    """Upsert each chunk into *collection*, keyed by the chunk id.

    Args:
        store: Open VectorStore.
        collection: Target collection name.
        dimensions: Vector size used to create the collection on setup().
    """

    def __init__(self, store: VectorStore, collection: str, dimensions: int) -> None:
        self._store = store
        self.collection = collection
        self.dimensions = dimensions

    def setup(self) -> None:
        self._store.ensure_collection(self.collection, self.dimensions)

    async def store(self, chunk: Chunk) -> Chunk:
        self._store.upsert(self.collection, [to_record(chunk)])
        return chunk
