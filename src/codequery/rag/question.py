"""Question: the unit of the query pipeline and its lifecycle.

    RAW -> TRANSFORMED -> RETRIEVED -> ANSWERED

States only move forward. Staying in a state is allowed (several transformers
in a row); moving back raises InvalidTransitionError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from codequery.errors import InvalidTransitionError


class QueryState(IntEnum):
    RAW = 0
    TRANSFORMED = 1
    RETRIEVED = 2
    ANSWERED = 3


@dataclass
class Document:
    """A retrieved record, as seen by the answerer."""

    id: str
    path: str
    text: str
    distance: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Question:
    """A question moving through the query pipeline.

    Attributes:
        original: The question as asked.
        current: Text after the latest transformation (starts as ``original``).
        history: Previous values of ``current``, oldest first.
        embedding: Vector of ``current``, set by an embedding transformer.
        documents: Context attached by the retriever, closest first.
        answer: Final answer, set by the answerer.
        error: Message of the failure that stopped this question, if any.
    """

    original: str
    current: str = ""
    history: list[str] = field(default_factory=list)
    embedding: list[float] | None = None
    documents: list[Document] = field(default_factory=list)
    answer: str | None = None
    error: str | None = None
    state: QueryState = QueryState.RAW

    def __post_init__(self) -> None:
        if not self.current:
            self.current = self.original

    @property
    def transformations(self) -> list[str]:
        """Every text this question was rewritten to, in order."""
        return [*self.history[1:], self.current] if self.history else []

    @property
    def context(self) -> str:
        """Retrieved document texts, joined for a prompt."""
        return "\n---\n".join(doc.text for doc in self.documents)

    def transformed(self, text: str) -> None:
        self._advance(QueryState.TRANSFORMED)
        self.history.append(self.current)
        self.current = text

    def embedded(self, vector: list[float]) -> None:
        self._advance(QueryState.TRANSFORMED)
        self.embedding = list(vector)

    def retrieved(self, documents: list[Document]) -> None:
        self._advance(QueryState.RETRIEVED)
        self.documents = list(documents)

    def answered(self, answer: str) -> None:
        self._advance(QueryState.ANSWERED)
        self.answer = answer

    def _advance(self, target: QueryState) -> None:
        if target < self.state:
            raise InvalidTransitionError(
                f"Cannot move question from {self.state.name} back to {target.name}",
                question=self,
            )
        self.state = target
