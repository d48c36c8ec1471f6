"""Markdown chunker: block-aware splits on headings and paragraphs."""

from __future__ import annotations

import re

from codequery.ingest.base import BaseChunker

# H1–H6 headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,6}[ \t]", re.MULTILINE)

# One or more blank lines; the next block starts after them.
_PARAGRAPH_BREAK_RE = re.compile(r"\n(?:[ \t]*\n)+")

# Fenced code blocks are atomic: no cut inside them.
_FENCE_RE = re.compile(r"^(```|~~~)[^\n]*\n.*?^\1[^\n]*$", re.MULTILINE | re.DOTALL)


class MarkdownChunker(BaseChunker):
    """Split Markdown into blocks and pack them into size-bounded chunks.

    A block starts at every H1–H6 heading and after every blank-line
    paragraph break. Fenced code blocks are never cut unless a single fence
    is longer than ``max_size`` on its own, in which case it is sliced on
    line boundaries like any oversized block.
    """

    def boundaries(self, content: str) -> list[int]:
        points = {m.start() for m in _HEADING_RE.finditer(content)}
        points.update(m.end() for m in _PARAGRAPH_BREAK_RE.finditer(content))

        fences = [(m.start(), m.end()) for m in _FENCE_RE.finditer(content)]
        return sorted(
            p for p in points if not any(start < p < end for start, end in fences)
        )
