"""Ingestion orchestrator: build the pipeline from settings, once, and run it.

Layout of the pipeline::

    FileLoader -> filter_cached -> split_by(markdown?)
        markdown: MarkdownChunker -> MetadataQAText
        code:     CodeChunker     -> MetadataQACode
    -> merge -> Embed (batched) -> log_errors -> filter_errors -> VectorStorage
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from codequery.config import CodequeryConfig
from codequery.context import RunContext
from codequery.ingest.base import WholeFileChunker
from codequery.ingest.code import CodeChunker
from codequery.ingest.embedder import Embed
from codequery.ingest.languages import SupportedLanguage
from codequery.ingest.loader import FileLoader
from codequery.ingest.markdown import MarkdownChunker
from codequery.ingest.metadata import MetadataQACode, MetadataQAText
from codequery.ingest.models import Item, RunStats
from codequery.ingest.pipeline import Pipeline
from codequery.ingest.storage import VectorStorage

MARKDOWN_EXTENSIONS: tuple[str, ...] = ("md", "markdown")


def is_markdown(item: Item) -> bool:
    return item.extension in MARKDOWN_EXTENSIONS


@dataclass
class IngestSettings:
    """Everything ``build_pipeline`` decides on, fixed before the run starts.

    Attributes:
        root: Directory (or file) to index.
        language: Language of the code files; decides extensions and chunker.
        chunk_range: Inclusive (min, max) chunk size in characters.
        chunk: When False every file becomes a single chunk.
        metadata: When False the question/answer enrichers are skipped.
        batch_size: Chunks per embedding request.
        exclude: fnmatch patterns for files and directories to skip.
    """

    root: Path
    language: SupportedLanguage
    chunk_range: tuple[int, int] = (50, 1024)
    chunk: bool = True
    metadata: bool = True
    batch_size: int = 50
    exclude: list[str] = field(default_factory=list)

    @classmethod
    def from_config(
        cls, cfg: CodequeryConfig, root: Path, language: SupportedLanguage
    ) -> IngestSettings:
        ing = cfg.ingest
        return cls(
            root=root,
            language=language,
            chunk_range=(ing.chunk_min, ing.chunk_max),
            chunk=ing.chunk,
            metadata=ing.metadata,
            batch_size=ing.batch_size,
            exclude=list(ing.exclude),
        )

    @property
    def extensions(self) -> list[str]:
        return [*self.language.file_extensions, *MARKDOWN_EXTENSIONS]


def build_pipeline(settings: IngestSettings, context: RunContext) -> Pipeline:
    """Wire the ingestion pipeline for *settings*. Stages are chosen here, once."""
    loader = FileLoader(settings.root, extensions=settings.extensions, exclude=settings.exclude)

    pipeline = Pipeline.from_loader(loader, context).with_concurrency(context.concurrency)
    if context.cache is not None:
        pipeline = pipeline.filter_cached(context.cache)

    markdown, code = pipeline.split_by(is_markdown)

    if settings.chunk:
        markdown = markdown.then_chunk(MarkdownChunker.from_chunk_range(settings.chunk_range))
        code = code.then_chunk(CodeChunker.for_language(settings.language, settings.chunk_range))
    else:
        markdown = markdown.then_chunk(WholeFileChunker())
        code = code.then_chunk(WholeFileChunker())

    if settings.metadata:
        markdown = markdown.then(MetadataQAText(context.client))
        code = code.then(MetadataQACode(context.client))

    return (
        markdown.merge(code)
        .then_in_batch(Embed(context.client), batch_size=settings.batch_size)
        .log_errors()
        .filter_errors()
        .then_store_with(
            VectorStorage(context.store, context.collection, context.dimensions)
        )
    )


async def run_ingestion(settings: IngestSettings, context: RunContext) -> RunStats:
    """Index ``settings.root`` into ``context.collection``.

    Raises:
        LoaderError: If the root cannot be enumerated.
        StoreError: If the collection exists with other dimensions.
    """
    logger.info(
        "Indexing {} ({}) into collection {}",
        settings.root,
        settings.language.value,
        context.collection,
    )
    return await build_pipeline(settings, context).run()
