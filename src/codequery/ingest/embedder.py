"""Batch embedder: one embedding request per batch of chunks.

What is embedded: one ``key: value`` line per metadata entry followed by the
chunk text, so enrichment improves retrieval. The chunk text itself is stored
unchanged.
"""

from __future__ import annotations

from typing import ClassVar

from codequery.errors import PipelineError
from codequery.ingest.models import Chunk
from codequery.ingest.stages import BatchTransformer
from codequery.rag.llm_client import LLMClient


def embeddable_text(chunk: Chunk) -> str:
    """Return the text sent to the embedding model for *chunk*."""
    if not chunk.metadata:
        return chunk.text
    header = "\n".join(f"{key}: {value}" for key, value in sorted(chunk.metadata.items()))
    return f"{header}\n\n{chunk.text}"


class Embed(BatchTransformer):
    """Attach a vector to every chunk of a batch.

    Retries are the client's business; a failed request raises, and the
    pipeline fails every chunk of the batch.
    """

    name: ClassVar[str] = "embed"

    def __init__(self, client: LLMClient) -> None:
        self._client = client

    async def transform_batch(self, chunks: list[Chunk]) -> list[Chunk]:
        vectors = await self._client.embed([embeddable_text(c) for c in chunks])
        if len(vectors) != len(chunks):
            raise PipelineError(
                f"Embedding returned {len(vectors)} vectors for {len(chunks)} chunks"
            )
        for chunk, vector in zip(chunks, vectors):
            chunk.vector = list(vector)
        return chunks
