"""Similarity retriever: top-K nearest records for an embedded question."""

from __future__ import annotations

from codequery.db.models import ScoredRecord
from codequery.db.store import VectorStore
from codequery.errors import QueryError
from codequery.rag.question import Document, Question


def to_document(hit: ScoredRecord) -> Document:
    record = hit.record
    return Document(
        id=record.id,
        path=record.path,
        text=record.text,
        distance=hit.distance,
        metadata=dict(record.metadata),
    )


class SimilarityRetriever:
    """Attach the *top_k* records closest to ``question.embedding``.

    Args:
        store: Open VectorStore.
        collection: Collection to search.
        top_k: Maximum number of documents to attach.
    """

    def __init__(self, store: VectorStore, collection: str, top_k: int = 20) -> None:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        self._store = store
        self.collection = collection
        self.top_k = top_k

    async def retrieve(self, question: Question) -> Question:
        """Raises QueryError if the question has not been embedded."""
        if question.embedding is None:
            raise QueryError(
                "Question has no embedding; add an EmbedQuery transformer before retrieval",
                question=question,
            )
        hits = self._store.search(self.collection, question.embedding, top_k=self.top_k)
        question.retrieved([to_document(hit) for hit in hits])
        return question
