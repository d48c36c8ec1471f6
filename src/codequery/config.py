"""codequery configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CODEQUERY_PROMPT_MODEL, CODEQUERY_ANSWER_MODEL,
     CODEQUERY_EMBEDDING_MODEL, CODEQUERY_CACHE_URL, CODEQUERY_STORE_PATH)
  3. Per-project codequery.yaml  (in the working directory)
  4. Global ~/.codequery/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codequery.errors import CodequeryError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".codequery"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "codequery.yaml"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens or num_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["models", "ingest", "retrieval", "cache", "store"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(CodequeryError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ModelsCfg:
    """LLM + embedding models (codequery.yaml: models:).

    Attributes:
        prompt_model: Model for metadata generation and query rewriting.
        answer_model: Model that writes the final grounded answer.
        embedding_model: Embedding model; fixes the collection dimensionality.
        dimensions: Vector size produced by ``embedding_model``.
        num_retries: Retries handed to litellm for transient API errors.
    """

    prompt_model: str = "openai/gpt-4o-mini"
    answer_model: str = "openai/gpt-4o"
    embedding_model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    num_retries: int = 3


@dataclass
class IngestCfg:
    """Ingestion pipeline configuration (codequery.yaml: ingest:).

    ``chunk`` and ``metadata`` switch whole stages on or off; they are read
    once when the pipeline is built.
    """

    concurrency: int = 50
    batch_size: int = 50
    chunk_min: int = 50
    chunk_max: int = 1024
    chunk: bool = True
    metadata: bool = True
    exclude: list[str] = field(default_factory=list)


@dataclass
class RetrievalCfg:
    """Query-time retrieval (codequery.yaml: retrieval:)."""

    collection: str = "codequery"
    top_k: int = 20


@dataclass
class CacheCfg:
    """Dedup cache (codequery.yaml: cache:)."""

    enabled: bool = True
    url: str = "sqlite:///.codequery-cache.db"


@dataclass
class StoreCfg:
    """Vector store location (codequery.yaml: store:)."""

    path: str = ".codequery.db"


@dataclass
class CodequeryConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    models: ModelsCfg = field(default_factory=ModelsCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    cache: CacheCfg = field(default_factory=CacheCfg)
    store: StoreCfg = field(default_factory=StoreCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CodequeryConfig) -> None:
    ing = cfg.ingest
    if ing.concurrency < 1:
        raise ConfigError(f"ingest.concurrency must be >= 1, got {ing.concurrency}")
    if ing.batch_size < 1:
        raise ConfigError(f"ingest.batch_size must be >= 1, got {ing.batch_size}")
    if not 0 < ing.chunk_min <= ing.chunk_max:
        raise ConfigError(
            f"ingest chunk range is invalid: {ing.chunk_min}..{ing.chunk_max} "
            "(need 0 < chunk_min <= chunk_max)"
        )
    if cfg.models.dimensions < 1:
        raise ConfigError(f"models.dimensions must be >= 1, got {cfg.models.dimensions}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> CodequeryConfig:
    """Build a *CodequeryConfig* from a merged raw YAML dict."""
    cfg = CodequeryConfig()

    if "models" in data:
        m = data["models"] or {}
        cfg.models = ModelsCfg(
            prompt_model=str(m.get("prompt_model", cfg.models.prompt_model)),
            answer_model=str(m.get("answer_model", cfg.models.answer_model)),
            embedding_model=str(m.get("embedding_model", cfg.models.embedding_model)),
            dimensions=int(m.get("dimensions", cfg.models.dimensions)),
            num_retries=int(m.get("num_retries", cfg.models.num_retries)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            concurrency=int(i.get("concurrency", cfg.ingest.concurrency)),
            batch_size=int(i.get("batch_size", cfg.ingest.batch_size)),
            chunk_min=int(i.get("chunk_min", cfg.ingest.chunk_min)),
            chunk_max=int(i.get("chunk_max", cfg.ingest.chunk_max)),
            chunk=bool(i.get("chunk", cfg.ingest.chunk)),
            metadata=bool(i.get("metadata", cfg.ingest.metadata)),
            exclude=[str(p) for p in i.get("exclude", cfg.ingest.exclude)],
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            collection=str(r.get("collection", cfg.retrieval.collection)),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
        )

    if "cache" in data:
        c = data["cache"] or {}
        cfg.cache = CacheCfg(
            enabled=bool(c.get("enabled", cfg.cache.enabled)),
            url=str(c.get("url", cfg.cache.url)),
        )

    if "store" in data:
        s = data["store"] or {}
        cfg.store = StoreCfg(path=str(s.get("path", cfg.store.path)))

    return cfg


def _apply_env_overrides(cfg: CodequeryConfig) -> CodequeryConfig:
    """Apply CODEQUERY_* environment variable overrides."""
    if model := os.environ.get("CODEQUERY_PROMPT_MODEL"):
        cfg.models.prompt_model = model
    if model := os.environ.get("CODEQUERY_ANSWER_MODEL"):
        cfg.models.answer_model = model
    if model := os.environ.get("CODEQUERY_EMBEDDING_MODEL"):
        cfg.models.embedding_model = model
    if url := os.environ.get("CODEQUERY_CACHE_URL"):
        cfg.cache.url = url
    if path := os.environ.get("CODEQUERY_STORE_PATH"):
        cfg.store.path = path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CodequeryConfig:
    """Load and return a merged *CodequeryConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *codequery.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
