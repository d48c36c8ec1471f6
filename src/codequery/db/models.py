"""Domain models for the vector store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field


@dataclass
class StoredRecord:
    id: str
    path: str
    text: str
    vector: list[float]
    metadata: dict = field(default_factory=dict)

    @property
    def metadata_json(self) -> str:
        return json.dumps(self.metadata, sort_keys=True)


@dataclass
class ScoredRecord:
    """A search hit. ``distance`` is the sqlite-vec distance (lower = closer)."""

    record: StoredRecord
    distance: float
