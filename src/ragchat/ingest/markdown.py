"""Markdown chunker — structure-aware splits with fixed-window fallback."""

from __future__ import annotations

import re

from ragchat.ingest.base import BaseChunker

# Matches H1–H6 headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,6}[ \t]", re.MULTILINE)
# One or more blank lines; the split falls after the run.
_BLANK_RUN_RE = re.compile(r"\n(?:[ \t]*\n)+")
_FENCE_RE = re.compile(r"^[ \t]*(```|~~~)", re.MULTILINE)


class MarkdownChunker(BaseChunker):
    """Split Markdown preferring semantic boundaries.

    Strategy, coarsest level first:
    - heading sections (a heading plus the content up to the next heading),
    - blocks separated by blank lines (paragraphs, lists, tables),
    - single lines,
    - fixed-length windows.

    Adjacent pieces are merged up to ``max_chunk_size``; only a piece that is
    still too large descends to the next level. Boundaries inside fenced code
    blocks are ignored at the heading and block levels.
    """

    def _segments(self, text: str) -> list[str]:
        return self._split_level(text, 0)

    def _split_level(self, text: str, level: int) -> list[str]:
        if len(text) <= self.max_chunk_size:
            return [text]
        if level >= len(self._LEVELS):
            return self._split_fixed_window(text)

        offsets = getattr(self, self._LEVELS[level])(text)
        segments = self._cut(text, offsets)
        if len(segments) <= 1:
            return self._split_level(text, level + 1)
        return self._pack(segments, lambda i: self._split_level(segments[i], level + 1))

    # ------------------------------------------------------------------
    # Boundary finders
    # ------------------------------------------------------------------

    @staticmethod
    def _fence_spans(text: str) -> list[tuple[int, int]]:
        """Return (start, end) offsets of fenced code blocks.

        An unterminated fence runs to the end of the text.
        """
        spans: list[tuple[int, int]] = []
        opening: re.Match[str] | None = None
        for match in _FENCE_RE.finditer(text):
            if opening is None:
                opening = match
            elif match.group(1) == opening.group(1):
                spans.append((opening.start(), match.end()))
                opening = None
        if opening is not None:
            spans.append((opening.start(), len(text)))
        return spans

    @classmethod
    def _outside_fences(cls, text: str, offsets: list[int]) -> list[int]:
        spans = cls._fence_spans(text)
        return [o for o in offsets if not any(a < o < b for a, b in spans)]

    @classmethod
    def _heading_offsets(cls, text: str) -> list[int]:
        return cls._outside_fences(text, [m.start() for m in _HEADING_RE.finditer(text)])

    @classmethod
    def _block_offsets(cls, text: str) -> list[int]:
        return cls._outside_fences(text, [m.end() for m in _BLANK_RUN_RE.finditer(text)])

    @staticmethod
    def _line_offsets(text: str) -> list[int]:
        return [m.end() for m in re.finditer(r"\n", text)]

    _LEVELS = ("_heading_offsets", "_block_offsets", "_line_offsets")
