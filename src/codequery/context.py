"""Run context: the handles every stage of one run shares.

Stages receive the context (or the handles they need from it) through their
constructors; nothing is read from module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from codequery.config import CodequeryConfig
from codequery.db.cache import DedupCache
from codequery.db.store import VectorStore
from codequery.ingest.languages import SupportedLanguage
from codequery.rag.llm_client import LLMClient


@dataclass
class RunContext:
    """Clients, store, cache and run parameters for one index or query run.

    Attributes:
        client: Prompt-model client, used for enrichment, query rewriting and
            embeddings.
        answer_client: Client bound to the answer model.
        store: Open vector store.
        collection: Collection written by ingestion and read by retrieval.
        language: Language of the code being indexed.
        concurrency: In-flight limit of the network-bound stages.
        dimensions: Embedding size of ``collection``.
        cache: Dedup cache, or None when caching is disabled.
    """

    client: LLMClient
    answer_client: LLMClient
    store: VectorStore
    collection: str
    language: SupportedLanguage
    concurrency: int = 50
    dimensions: int = 1536
    cache: DedupCache | None = None

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
        self.store.close()


def build_context(
    cfg: CodequeryConfig,
    language: SupportedLanguage,
    *,
    use_cache: bool = True,
    db_path: Path | None = None,
) -> RunContext:
    """Open the store and cache described by *cfg*.

    Raises:
        StoreUnavailableError: If the vector store cannot be opened.
        ConfigError: If the cache URL is not supported.
    """
    models = cfg.models
    client = LLMClient(
        prompt_model=models.prompt_model,
        embedding_model=models.embedding_model,
        num_retries=models.num_retries,
    )
    answer_client = LLMClient(
        prompt_model=models.answer_model,
        embedding_model=models.embedding_model,
        num_retries=models.num_retries,
    )
    store = VectorStore.open(db_path or Path(cfg.store.path))

    cache: DedupCache | None = None
    if use_cache and cfg.cache.enabled:
        try:
            cache = DedupCache.from_url(cfg.cache.url, namespace=cfg.retrieval.collection)
        except Exception:
            store.close()
            raise
    else:
        logger.debug("Dedup cache disabled")

    return RunContext(
        client=client,
        answer_client=answer_client,
        store=store,
        collection=cfg.retrieval.collection,
        language=language,
        concurrency=cfg.ingest.concurrency,
        dimensions=models.dimensions,
        cache=cache,
    )
