"""End-to-end ingestion tests: files on disk into a real vector store."""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path

import pytest

from codequery.config import load_config
from codequery.db.cache import DedupCache
from codequery.errors import LoaderError, StoreError
from codequery.ingest.indexer import IngestSettings, build_pipeline, is_markdown, run_ingestion
from codequery.ingest.languages import SupportedLanguage
from codequery.ingest.metadata import QA_CODE_KEY, QA_TEXT_KEY
from codequery.ingest.models import Item

CODE = "def handler():\n    return 42\n"


def _write_project(root: Path) -> None:
    """a.md is 40 characters (below the 50 minimum), b.py is 300."""
    md = "# Notes\n"
    (root / "a.md").write_text(md + "n" * (39 - len(md)) + "\n", encoding="utf-8")
    (root / "b.py").write_text(CODE + "#" * (299 - len(CODE)) + "\n", encoding="utf-8")


def _settings(root: Path, **overrides) -> IngestSettings:
    return IngestSettings(root=root, language=SupportedLanguage.PYTHON, **overrides)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    _write_project(root)
    return root


@pytest.fixture
def cached_context(run_context):
    cache = DedupCache.from_url("sqlite:///:memory:", namespace="test")
    yield dataclasses.replace(run_context, cache=cache)
    cache.close()


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------


def test_project_file_sizes(project):
    assert len((project / "a.md").read_text()) == 40
    assert len((project / "b.py").read_text()) == 300


def test_is_markdown():
    assert is_markdown(Item.from_text("README.md", ""))
    assert is_markdown(Item.from_text("docs/x.markdown", ""))
    assert not is_markdown(Item.from_text("main.py", ""))


def test_settings_extensions_include_markdown(tmp_path):
    settings = _settings(tmp_path)
    assert settings.extensions == ["py", "md", "markdown"]


def test_settings_from_config(tmp_path):
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    cfg.ingest.exclude = ["vendor"]
    settings = IngestSettings.from_config(cfg, tmp_path, SupportedLanguage.RUST)
    assert settings.chunk_range == (50, 1024)
    assert settings.batch_size == 50
    assert settings.exclude == ["vendor"]
    assert "rs" in settings.extensions


def test_build_pipeline_is_runnable(project, run_context):
    pipeline = build_pipeline(_settings(project), run_context)
    stats = asyncio.run(pipeline.run())
    assert stats.items_loaded == 2


# ------------------------------------------------------------------
# Runs
# ------------------------------------------------------------------


def test_small_markdown_dropped_code_stored(project, run_context, fake_client):
    stats = asyncio.run(run_ingestion(_settings(project), run_context))

    assert run_context.store.count("test") == 1
    assert stats.items_loaded == 2
    assert stats.items_empty == 1
    assert stats.chunks == 1
    assert stats.stored == 1
    assert stats.failed == 0
    assert len(fake_client.complete_calls) == 1
    assert len(fake_client.embed_calls) == 1


def test_stored_record_carries_metadata(project, run_context):
    asyncio.run(run_ingestion(_settings(project), run_context))
    hit = run_context.store.search("test", [1.0, 1.0, 1.0, 1.0], top_k=1)[0]
    assert hit.record.path.endswith("b.py")
    assert hit.record.text.startswith("def handler()")
    assert QA_CODE_KEY in hit.record.metadata
    assert hit.record.metadata["offset"] == 0


def test_rerun_with_cache_skips_everything(project, cached_context, fake_client):
    asyncio.run(run_ingestion(_settings(project), cached_context))
    completions, embeds = len(fake_client.complete_calls), len(fake_client.embed_calls)

    stats = asyncio.run(run_ingestion(_settings(project), cached_context))

    assert stats.items_cached == 2
    assert stats.stored == 0
    assert len(fake_client.complete_calls) == completions
    assert len(fake_client.embed_calls) == embeds
    assert cached_context.store.count("test") == 1


def test_changed_file_is_reindexed(project, cached_context):
    asyncio.run(run_ingestion(_settings(project), cached_context))
    (project / "b.py").write_text(CODE.replace("42", "43") + "#" * 280 + "\n", encoding="utf-8")

    stats = asyncio.run(run_ingestion(_settings(project), cached_context))

    assert stats.items_cached == 1
    assert stats.stored == 1
    assert cached_context.store.count("test") == 1


def test_delete_then_ingest_restores_collection(project, cached_context):
    asyncio.run(run_ingestion(_settings(project), cached_context))
    cached_context.store.delete_collection("test")
    cached_context.cache.clear()

    stats = asyncio.run(run_ingestion(_settings(project), cached_context))

    assert stats.stored == 1
    assert cached_context.store.count("test") == 1


def test_chunking_disabled_keeps_whole_files(project, run_context):
    stats = asyncio.run(run_ingestion(_settings(project, chunk=False), run_context))
    assert stats.stored == 2
    assert run_context.store.count("test") == 2


def test_metadata_disabled_skips_enrichment(project, run_context, fake_client):
    asyncio.run(run_ingestion(_settings(project, metadata=False), run_context))
    hit = run_context.store.search("test", [1.0, 1.0, 1.0, 1.0], top_k=1)[0]
    assert fake_client.complete_calls == []
    assert QA_CODE_KEY not in hit.record.metadata
    assert QA_TEXT_KEY not in hit.record.metadata


def test_markdown_uses_text_enricher(tmp_path, run_context, fake_client):
    (tmp_path / "guide.md").write_text("# Guide\n\n" + "Run the tool with care. " * 5, encoding="utf-8")
    asyncio.run(run_ingestion(_settings(tmp_path), run_context))
    hit = run_context.store.search("test", [1.0, 1.0, 1.0, 1.0], top_k=1)[0]
    assert QA_TEXT_KEY in hit.record.metadata
    assert "documentation assistant" in fake_client.complete_calls[0]


def test_embedding_failure_reported_not_raised(project, run_context, fake_client):
    fake_client.embed_error = RuntimeError("embedding service down")
    stats = asyncio.run(run_ingestion(_settings(project), run_context))
    assert stats.stored == 0
    assert stats.failures_by_stage["embed"] == 1
    assert run_context.store.count("test") == 0


def test_failed_item_not_cached(project, cached_context, fake_client):
    fake_client.embed_error = RuntimeError("embedding service down")
    asyncio.run(run_ingestion(_settings(project), cached_context))
    fake_client.embed_error = None

    stats = asyncio.run(run_ingestion(_settings(project), cached_context))

    # a.md was empty and is cached; b.py failed and is retried
    assert stats.items_cached == 1
    assert stats.stored == 1


def test_missing_root_raises(tmp_path, run_context):
    with pytest.raises(LoaderError):
        asyncio.run(run_ingestion(_settings(tmp_path / "missing"), run_context))


def test_dimension_mismatch_raises(project, run_context):
    run_context.store.ensure_collection("test", 8)
    with pytest.raises(StoreError, match="8-dimensional"):
        asyncio.run(run_ingestion(_settings(project), run_context))


def test_excluded_files_are_skipped(project, run_context):
    stats = asyncio.run(run_ingestion(_settings(project, exclude=["b.py"]), run_context))
    assert stats.items_loaded == 1
    assert run_context.store.count("test") == 0
