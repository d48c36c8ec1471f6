"""Typed stage interfaces composed by codequery.ingest.pipeline.Pipeline.

Every stage declares the unit type it consumes (``input_type``) and produces
(``output_type``). The pipeline builder compares them when a stage is appended,
so a miswired pipeline fails at construction time instead of mid-run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import ClassVar

from codequery.ingest.models import Chunk, Failure, Item


class Loader(ABC):
    """Produces Items (or load Failures) for one run."""

    output_type: ClassVar[type] = Item

    @abstractmethod
    def iter_items(self) -> Iterator[Item | Failure]:
        """Enumerate items lazily.

        Raises:
            LoaderError: If enumeration itself cannot start or continue.
        """


class Chunker(ABC):
    """Item → zero or more Chunks. CPU bound, runs inline."""

    input_type: ClassVar[type] = Item
    output_type: ClassVar[type] = Chunk

    @abstractmethod
    def chunk(self, item: Item) -> list[Chunk]:
        """Split *item* into chunks, in source order."""


class Transformer(ABC):
    """Chunk → Chunk, one outbound call per chunk."""

    input_type: ClassVar[type] = Chunk
    output_type: ClassVar[type] = Chunk
    name: ClassVar[str] = "transform"

    @abstractmethod
    async def transform(self, chunk: Chunk) -> Chunk:
        """Return *chunk* (same text) with additional metadata."""


class BatchTransformer(ABC):
    """list[Chunk] → list[Chunk], one outbound call per batch."""

    input_type: ClassVar[type] = Chunk
    output_type: ClassVar[type] = Chunk
    name: ClassVar[str] = "batch"

    @abstractmethod
    async def transform_batch(self, chunks: list[Chunk]) -> list[Chunk]:
        """Return exactly one chunk per input chunk, in the same order."""


class Storage(ABC):
    """Persists chunks; terminal stage of an ingestion pipeline."""

    input_type: ClassVar[type] = Chunk
    output_type: ClassVar[type] = Chunk

    def setup(self) -> None:
        """Prepare the destination before the first write (create collection)."""

    @abstractmethod
    async def store(self, chunk: Chunk) -> Chunk:
        """Persist *chunk* and return it."""


class NodeCache(ABC):
    """Narrow contains/insert contract of the dedup cache."""

    @abstractmethod
    def contains(self, fingerprint: str) -> bool: ...

    @abstractmethod
    def insert(self, fingerprint: str) -> None: ...
