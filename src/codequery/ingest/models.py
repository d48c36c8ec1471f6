"""Units that flow through the ingestion pipeline."""

from __future__ import annotations

import hashlib
import uuid
from collections import Counter
from dataclasses import dataclass, field
from pathlib import PurePath

# Fixed namespace so chunk ids are identical across runs and machines.
_CHUNK_NAMESPACE = uuid.UUID("6f1c2b1e-8a9d-4c55-9b7e-3d2a4f0c9e11")


def fingerprint(path: str, content: bytes) -> str:
    """SHA-256 over the path and the raw content bytes."""
    h = hashlib.sha256()
    h.update(path.encode("utf-8"))
    h.update(b"\0")
    h.update(content)
    return h.hexdigest()


@dataclass(frozen=True)
class Item:
    """One loaded file."""

    path: str
    content: str
    fingerprint: str

    @classmethod
    def from_text(cls, path: str, content: str) -> Item:
        return cls(path=path, content=content, fingerprint=fingerprint(path, content.encode("utf-8")))

    @property
    def extension(self) -> str:
        return PurePath(self.path).suffix.lstrip(".").lower()


@dataclass
class Chunk:
    """A contiguous slice ``content[offset:offset + len(text)]`` of an Item.

    ``path`` and ``fingerprint`` refer back to the parent Item; the Item itself
    is not kept alive by its chunks.
    """

    path: str
    fingerprint: str
    offset: int
    text: str
    metadata: dict[str, str] = field(default_factory=dict)
    vector: list[float] | None = None

    @property
    def id(self) -> str:
        """Stable identifier derived from path + offset."""
        return str(uuid.uuid5(_CHUNK_NAMESPACE, f"{self.path}:{self.offset}"))

    @property
    def size(self) -> int:
        return len(self.text)

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


@dataclass
class Failure:
    """The error half of a unit: travels downstream in place of the failed unit.

    Attributes:
        error: The exception raised by the stage.
        stage: Name of the stage that failed (load, chunk, metadata, embed, store).
        path: Path of the affected file, when known.
        fingerprint: Fingerprint of the affected item, when known.
    """

    error: BaseException
    stage: str
    path: str | None = None
    fingerprint: str | None = None

    @classmethod
    def of(cls, unit: Item | Chunk, error: BaseException, stage: str) -> Failure:
        return cls(error=error, stage=stage, path=unit.path, fingerprint=unit.fingerprint)

    def __str__(self) -> str:
        where = f" ({self.path})" if self.path else ""
        return f"{self.stage} failed{where}: {self.error}"


@dataclass
class RunStats:
    """Counters reported by an ingestion run."""

    items_loaded: int = 0
    items_cached: int = 0
    items_empty: int = 0
    chunks: int = 0
    stored: int = 0
    failed: int = 0
    items_failed: int = 0
    failures_by_stage: Counter = field(default_factory=Counter)
    _failed_items: set[str] = field(default_factory=set, init=False, repr=False)

    def record_failure(self, failure: Failure) -> None:
        """Count one failed unit; an item counts once however many of its chunks fail."""
        self.failed += 1
        self.failures_by_stage[failure.stage] += 1
        key = failure.fingerprint or failure.path
        if key is None or key not in self._failed_items:
            self.items_failed += 1
        if key is not None:
            self._failed_items.add(key)
