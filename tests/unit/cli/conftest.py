"""Fixtures for CLI tests: real config and store, fake LLM client."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from loguru import logger

from codequery.context import RunContext
from codequery.db.cache import DedupCache
from codequery.db.store import VectorStore


def reply(prompt: str) -> str:
    """Canned completions keyed on the prompt that asks for them."""
    if "additional questions" in prompt:
        return "Where is it defined?"
    if "generate 2 questions" in prompt:
        return "What is handler?\nWhat does it return?"
    if "What is the" in prompt and "project" in prompt:
        return "A tiny project with one handler."
    if "explode" in prompt:
        raise RuntimeError("model refused")
    return "It returns 42."


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    root.mkdir()
    (root / "b.py").write_text(
        "def handler():\n    return 42\n" + "#" * 60 + "\n", encoding="utf-8"
    )
    return root


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "store.db"


@pytest.fixture
def cli_env(tmp_path, monkeypatch, fake_client):
    """Isolated config + API key; build_context wired to the fake client.

    Yields the fake client so tests can inspect calls or inject errors.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("codequery.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in (
        "CODEQUERY_PROMPT_MODEL",
        "CODEQUERY_ANSWER_MODEL",
        "CODEQUERY_EMBEDDING_MODEL",
        "CODEQUERY_CACHE_URL",
        "CODEQUERY_STORE_PATH",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    fake_client.completion = reply

    def fake_build(cfg, language, *, use_cache=True, db_path=None):
        store = VectorStore.open(db_path)
        cache = None
        if use_cache:
            cache = DedupCache.from_url(
                f"sqlite:///{tmp_path / 'cache.db'}", namespace=cfg.retrieval.collection
            )
        return RunContext(
            client=fake_client,
            answer_client=fake_client,
            store=store,
            collection=cfg.retrieval.collection,
            language=language,
            concurrency=4,
            dimensions=fake_client.dimensions,
            cache=cache,
        )

    with patch("codequery.cli.common.build_context", side_effect=fake_build):
        yield fake_client


@pytest.fixture(autouse=True)
def _reset_logging():
    """The CLI callback points loguru at the runner's stderr; drop that sink after."""
    yield
    logger.remove()
