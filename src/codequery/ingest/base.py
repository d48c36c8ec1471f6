"""Base chunker: segment, pack within a size range, drop what stays too small."""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable, Iterable

from codequery.ingest.models import Chunk, Item
from codequery.ingest.stages import Chunker

Span = tuple[int, int]


class BaseChunker(Chunker):
    """Abstract base for the size-bounded chunkers.

    Subclasses only decide *where* content may be cut (``boundaries()``).
    The base class then:

    - turns the boundaries into contiguous segments covering the content;
    - greedily packs adjacent segments while the result fits ``max_size``;
    - slices a segment longer than ``max_size`` on line boundaries, and a
      single line longer than ``max_size`` by raw character count;
    - drops packed pieces shorter than ``min_size`` (or whitespace only).

    Chunk text is the exact slice of the source, never stripped, so chunks
    never overlap and every character not in a chunk belongs to a dropped piece.
    Sizes are measured in characters.
    """

    def __init__(self, min_size: int = 50, max_size: int = 1024) -> None:
        if min_size < 1:
            raise ValueError("min_size must be >= 1")
        if max_size < min_size:
            raise ValueError("max_size must be >= min_size")
        self.min_size = min_size
        self.max_size = max_size

    @classmethod
    def from_chunk_range(cls, chunk_range: range | tuple[int, int]) -> BaseChunker:
        """Build from ``range(50, 1024)`` or ``(50, 1024)``."""
        min_size, max_size = cls.range_bounds(chunk_range)
        return cls(min_size=min_size, max_size=max_size)

    @staticmethod
    def range_bounds(chunk_range: range | tuple[int, int]) -> tuple[int, int]:
        """Both bounds are sizes a chunk may have: 50..1024 allows 50 and 1024."""
        if isinstance(chunk_range, range):
            return chunk_range.start, chunk_range.stop
        low, high = chunk_range
        return low, high

    def chunk(self, item: Item) -> list[Chunk]:
        content = item.content
        if not content.strip():
            return []
        points = sorted({0, *(b for b in self.boundaries(content) if 0 < b < len(content))})
        points.append(len(content))
        segments = list(zip(points, points[1:]))
        spans = self._pack(content, segments, self._split_lines)
        return self._make_chunks(item, spans)

    @abstractmethod
    def boundaries(self, content: str) -> Iterable[int]:
        """Offsets where a new segment may start. 0 and len(content) are implied."""

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(
        self,
        content: str,
        segments: Iterable[Span],
        split: Callable[[str, int, int], list[Span]],
    ) -> list[Span]:
        pieces: list[Span] = []
        current: Span | None = None
        for start, end in segments:
            if end - start > self.max_size:
                if current is not None:
                    pieces.append(current)
                    current = None
                pieces.extend(split(content, start, end))
            elif current is None:
                current = (start, end)
            elif end - current[0] <= self.max_size:
                current = (current[0], end)
            else:
                pieces.append(current)
                current = (start, end)
        if current is not None:
            pieces.append(current)
        return pieces

    def _split_lines(self, content: str, start: int, end: int) -> list[Span]:
        """Split an oversized segment on newlines, then raw for overlong lines."""
        lines: list[Span] = []
        pos = start
        while pos < end:
            nl = content.find("\n", pos, end)
            stop = end if nl == -1 else nl + 1
            lines.append((pos, stop))
            pos = stop
        return self._pack(content, lines, self._split_raw)

    def _split_raw(self, content: str, start: int, end: int) -> list[Span]:
        return [(i, min(i + self.max_size, end)) for i in range(start, end, self.max_size)]

    def _make_chunks(self, item: Item, spans: Iterable[Span]) -> list[Chunk]:
        chunks: list[Chunk] = []
        for start, end in spans:
            text = item.content[start:end]
            if len(text) < self.min_size or not text.strip():
                continue
            chunks.append(
                Chunk(path=item.path, fingerprint=item.fingerprint, offset=start, text=text)
            )
        return chunks


class WholeFileChunker(Chunker):
    """One chunk per item, unbounded. Used when chunking is switched off."""

    def chunk(self, item: Item) -> list[Chunk]:
        if not item.content.strip():
            return []
        return [Chunk(path=item.path, fingerprint=item.fingerprint, offset=0, text=item.content)]
