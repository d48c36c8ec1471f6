"""Tests for codequery index."""

from __future__ import annotations

from typer.testing import CliRunner

from codequery.cli.main import app
from codequery.db.store import VectorStore

runner = CliRunner()


def _index(project, db_path, *extra: str):
    return runner.invoke(
        app, ["index", "-l", "python", "-p", str(project), "--db", str(db_path), *extra]
    )


# ------------------------------------------------------------------
# Input validation
# ------------------------------------------------------------------


def test_missing_path_exits_1(cli_env, tmp_path, db_path):
    result = _index(tmp_path / "nope", db_path)
    assert result.exit_code == 1
    assert "Path not found" in result.output


def test_unsupported_language_exits_1(cli_env, project, db_path):
    result = runner.invoke(app, ["index", "-l", "cobol", "-p", str(project), "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Unsupported language 'cobol'" in result.output


def test_missing_api_key_exits_1(cli_env, project, db_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = _index(project, db_path)
    assert result.exit_code == 1
    assert "No API key for 'openai'" in result.output
    assert "OPENAI_API_KEY" in result.output


def test_invalid_config_exits_1(cli_env, project, db_path, tmp_path):
    (tmp_path / "codequery.yaml").write_text("retrieval:\n  top_k: 0\n", encoding="utf-8")
    result = _index(project, db_path)
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_unopenable_store_exits_1(cli_env, project, tmp_path):
    result = _index(project, tmp_path)  # a directory, not a database file
    assert result.exit_code == 1
    assert "Cannot open the vector store" in result.output


# ------------------------------------------------------------------
# Runs
# ------------------------------------------------------------------


def test_index_stores_and_reports(cli_env, project, db_path):
    result = _index(project, db_path)
    assert result.exit_code == 0, result.output
    assert "1 loaded · 0 cached · 0 empty · 1 chunks · 1 stored" in result.output

    store = VectorStore.open(db_path)
    assert store.count("codequery") == 1
    store.close()


def test_second_index_uses_cache(cli_env, project, db_path):
    _index(project, db_path)
    calls = len(cli_env.complete_calls)

    result = _index(project, db_path)

    assert result.exit_code == 0
    assert "1 cached" in result.output
    assert "0 stored" in result.output
    assert len(cli_env.complete_calls) == calls


def test_no_cache_reindexes(cli_env, project, db_path):
    _index(project, db_path)
    result = _index(project, db_path, "--no-cache")
    assert result.exit_code == 0
    assert "0 cached" in result.output
    assert "1 stored" in result.output


def test_failures_reported_not_fatal(cli_env, project, db_path):
    cli_env.embed_error = RuntimeError("embedding service down")
    result = _index(project, db_path)
    assert result.exit_code == 0
    assert "1 items failed · 1 failures (embed: 1)" in result.output
    assert "Re-run the command" in result.output


def test_dimension_mismatch_exits_1(cli_env, project, db_path):
    store = VectorStore.open(db_path)
    store.ensure_collection("codequery", 8)
    store.close()

    result = _index(project, db_path)

    assert result.exit_code == 1
    assert "Vector store error" in result.output


def test_colliding_collection_name_exits_1(cli_env, project, db_path, tmp_path):
    store = VectorStore.open(db_path)
    store.ensure_collection("code_base", 4)
    store.close()
    (tmp_path / "codequery.yaml").write_text(
        "retrieval:\n  collection: code-base\n", encoding="utf-8"
    )

    result = _index(project, db_path)

    assert result.exit_code == 1
    assert "Vector store error" in result.output
    assert "share tables" in result.output
