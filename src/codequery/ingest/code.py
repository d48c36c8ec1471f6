"""Code chunker: syntax-aware boundaries with line slicing as the fallback.

Python sources are parsed with the ``ast`` module, every other supported
language with tree-sitter (grammars from ``tree-sitter-language-pack``). Every
top-level statement or declaration, with the comments and blank lines above
it, is one segment; a node too large for one chunk contributes the statements
of its body as further cut points. Sources that fail to parse are cut on lines
only, so a cut never lands inside a string literal or block comment of a
source that parsed.
"""

from __future__ import annotations

import ast
import re
from functools import lru_cache

from loguru import logger
from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_parser

from codequery.ingest.base import BaseChunker
from codequery.ingest.languages import SupportedLanguage

_BLOCK_NODES = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


class CodeChunker(BaseChunker):
    """Size-bounded chunker for source files of one language."""

    def __init__(
        self,
        language: SupportedLanguage,
        min_size: int = 50,
        max_size: int = 1024,
    ) -> None:
        super().__init__(min_size=min_size, max_size=max_size)
        self.language = language

    @classmethod
    def for_language(
        cls, language: str | SupportedLanguage, chunk_range: range | tuple[int, int]
    ) -> CodeChunker:
        """Build a chunker for *language* (name or enum) and a size range.

        Raises:
            ValueError: If the language is not supported.
        """
        if not isinstance(language, SupportedLanguage):
            language = SupportedLanguage.from_name(language)
        min_size, max_size = cls.range_bounds(chunk_range)
        return cls(language, min_size=min_size, max_size=max_size)

    def boundaries(self, content: str) -> list[int]:
        line_starts = _line_starts(content)
        if self.language is SupportedLanguage.PYTHON:
            return self._python_boundaries(content, line_starts)
        return self._tree_sitter_boundaries(content, line_starts)

    # ------------------------------------------------------------------
    # Python
    # ------------------------------------------------------------------

    def _python_boundaries(self, content: str, line_starts: list[int]) -> list[int]:
        try:
            tree = ast.parse(content)
        except (SyntaxError, ValueError) as exc:
            logger.debug("Python parse failed, slicing on lines: {}", exc)
            return []
        points: list[int] = []
        self._statement_boundaries(tree.body, line_starts, len(content), points)
        return points

    def _statement_boundaries(
        self,
        body: list[ast.stmt],
        line_starts: list[int],
        length: int,
        points: list[int],
    ) -> None:
        previous_end: int | None = None
        for node in body:
            first_line = min(
                [node.lineno] + [d.lineno for d in getattr(node, "decorator_list", [])]
            )
            # Comments between two statements travel with the one below them.
            start_line = first_line if previous_end is None else previous_end + 1
            start = _offset(line_starts, start_line, length)
            points.append(start)

            end_line = node.end_lineno or node.lineno
            end = _offset(line_starts, end_line + 1, length)
            if isinstance(node, _BLOCK_NODES) and end - start > self.max_size:
                self._statement_boundaries(node.body, line_starts, length, points)
            previous_end = end_line

    # ------------------------------------------------------------------
    # tree-sitter
    # ------------------------------------------------------------------

    def _tree_sitter_boundaries(self, content: str, line_starts: list[int]) -> list[int]:
        tree = _parser(self.language.value).parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            logger.debug("{} parse failed, slicing on lines", self.language.value)
            return []
        points: list[int] = []
        self._node_boundaries(tree.root_node.named_children, line_starts, len(content), points)
        return points

    def _node_boundaries(
        self,
        nodes: list[Node],
        line_starts: list[int],
        length: int,
        points: list[int],
    ) -> None:
        comment_start: int | None = None
        for node in nodes:
            start = _offset(line_starts, node.start_point[0] + 1, length)
            if "comment" in node.type:
                # A run of comments travels with the node below it.
                if comment_start is None:
                    comment_start = start
                continue
            points.append(start if comment_start is None else comment_start)
            comment_start = None

            end = _offset(line_starts, node.end_point[0] + 2, length)
            body = node.child_by_field_name("body")
            if body is not None and end - start > self.max_size:
                self._node_boundaries(body.named_children, line_starts, length, points)


@lru_cache(maxsize=None)
def _parser(language: str) -> Parser:
    return get_parser(language)


def _line_starts(content: str) -> list[int]:
    """Offsets of the first character of each line (index 0 = line 1)."""
    return [0] + [m.end() for m in re.finditer("\n", content)]


def _offset(line_starts: list[int], lineno: int, length: int) -> int:
    if lineno - 1 < len(line_starts):
        return line_starts[lineno - 1]
    return length
