"""codequery ingest pipeline: loader, chunkers, enrichers, embedder, store writer."""

from codequery.ingest.base import BaseChunker, WholeFileChunker
from codequery.ingest.code import CodeChunker
from codequery.ingest.languages import SupportedLanguage
from codequery.ingest.markdown import MarkdownChunker
from codequery.ingest.models import Chunk, Failure, Item, RunStats

__all__ = [
    "BaseChunker",
    "Chunk",
    "CodeChunker",
    "Failure",
    "Item",
    "MarkdownChunker",
    "RunStats",
    "SupportedLanguage",
    "WholeFileChunker",
]
