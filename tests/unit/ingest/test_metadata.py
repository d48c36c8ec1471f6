"""Tests for the question/answer metadata enrichers."""

from __future__ import annotations

import asyncio

import pytest

from codequery.ingest.metadata import (
    QA_CODE_KEY,
    QA_TEXT_KEY,
    MetadataQACode,
    MetadataQAText,
    _MetadataQA,
)
from codequery.ingest.models import Chunk


def _chunk(text: str = "def add(a, b):\n    return a + b\n", path: str = "math.py") -> Chunk:
    return Chunk(path=path, fingerprint="fp", offset=0, text=text)


def test_code_enricher_stores_stripped_response(fake_client):
    fake_client.completion = "  Q1: What does add do?\nA1: Sums two numbers.\n\n"
    chunk = asyncio.run(MetadataQACode(fake_client).transform(_chunk()))
    assert chunk.metadata[QA_CODE_KEY] == "Q1: What does add do?\nA1: Sums two numbers."


def test_code_enricher_leaves_text_untouched(fake_client):
    original = _chunk()
    chunk = asyncio.run(MetadataQACode(fake_client).transform(original))
    assert chunk.text == "def add(a, b):\n    return a + b\n"
    assert chunk.offset == 0


def test_code_prompt_includes_snippet_path_and_count(fake_client):
    asyncio.run(MetadataQACode(fake_client, num_questions=3).transform(_chunk()))
    prompt = fake_client.complete_calls[0]
    assert "def add(a, b):" in prompt
    assert "math.py" in prompt
    assert "write 3 questions" in prompt


def test_text_enricher_uses_text_key_and_prompt(fake_client):
    chunk = _chunk(text="Install with pip.", path="README.md")
    asyncio.run(MetadataQAText(fake_client).transform(chunk))
    assert QA_TEXT_KEY in chunk.metadata
    assert QA_CODE_KEY not in chunk.metadata
    assert "documentation assistant" in fake_client.complete_calls[0]
    assert "Install with pip." in fake_client.complete_calls[0]


def test_one_call_per_chunk(fake_client):
    enricher = MetadataQACode(fake_client)

    async def go():
        await asyncio.gather(*(enricher.transform(_chunk()) for _ in range(3)))

    asyncio.run(go())
    assert len(fake_client.complete_calls) == 3


def test_client_error_propagates(fake_client):
    fake_client.complete_error = RuntimeError("rate limited")
    with pytest.raises(RuntimeError, match="rate limited"):
        asyncio.run(MetadataQACode(fake_client).transform(_chunk()))


def test_invalid_num_questions(fake_client):
    with pytest.raises(ValueError, match="num_questions"):
        MetadataQAText(fake_client, num_questions=0)


def test_transformer_name_is_metadata(fake_client):
    assert MetadataQACode(fake_client).name == "metadata"
    assert MetadataQAText(fake_client).name == "metadata"


def test_base_enricher_requires_a_prompt(fake_client):
    with pytest.raises(TypeError, match="prompt"):
        _MetadataQA(fake_client)
