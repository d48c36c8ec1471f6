"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from codequery.context import RunContext
from codequery.db.store import VectorStore
from codequery.ingest.languages import SupportedLanguage

DIMS = 4


class FakeClient:
    """Deterministic stand-in for LLMClient: records calls, never hits the network.

    Attributes:
        completion: Reply to every prompt, or a callable ``prompt -> reply``.
        complete_error / embed_error: Raised by the next calls when set.
    """

    def __init__(self, dimensions: int = DIMS, completion="Q1: What?\nA1: This.") -> None:
        self.dimensions = dimensions
        self.completion = completion
        self.complete_error: Exception | None = None
        self.embed_error: Exception | None = None
        self.complete_calls: list[str] = []
        self.embed_calls: list[list[str]] = []

    async def complete(self, prompt: str) -> str:
        self.complete_calls.append(prompt)
        if self.complete_error is not None:
            raise self.complete_error
        if callable(self.completion):
            return self.completion(prompt)
        return self.completion

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        if self.embed_error is not None:
            raise self.embed_error
        return [self.vector_for(t) for t in texts]

    def vector_for(self, text: str) -> list[float]:
        values = [
            float(len(text) % 7 + 1),
            float(text.count("a") + 1),
            float(text.count("e") + 1),
            float(text.count("o") + 1),
        ]
        return (values * (self.dimensions // len(values) + 1))[: self.dimensions]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def tmp_store(tmp_path):
    """File-based vector store in tmp_path, closed after test."""
    store = VectorStore.open(tmp_path / "store.db")
    yield store
    store.close()


@pytest.fixture
def run_context(fake_client, tmp_store) -> RunContext:
    """RunContext over the fake client and tmp store, no dedup cache."""
    return RunContext(
        client=fake_client,
        answer_client=fake_client,
        store=tmp_store,
        collection="test",
        language=SupportedLanguage.PYTHON,
        concurrency=4,
        dimensions=DIMS,
        cache=None,
    )
