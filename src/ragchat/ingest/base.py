"""Base chunker interface shared by the markdown and source-code chunkers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from ragchat.errors import ConfigurationError
from ragchat.models import Chunk


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``_segments()``, returning contiguous slices of the
    input. ``split()`` strips each slice and drops empty ones, so joining the
    output reproduces the input up to whitespace at chunk edges.

    Sizes are measured in characters.
    """

    def __init__(self, max_chunk_size: int = 1000) -> None:
        if max_chunk_size < 1:
            raise ConfigurationError(
                f"max_chunk_size must be >= 1, got {max_chunk_size}"
            )
        self.max_chunk_size = max_chunk_size

    @abstractmethod
    def _segments(self, text: str) -> list[str]:
        """Split *text* into contiguous pieces of at most ``max_chunk_size``."""

    def split(self, text: str) -> list[str]:
        """Return the ordered, non-empty chunk texts for *text*."""
        if not text.strip():
            return []
        pieces = (segment.strip() for segment in self._segments(text))
        return [p for p in pieces if p]

    def chunk(self, source_name: str, content: str) -> list[Chunk]:
        """Split *content* into Chunk objects tagged with *source_name*."""
        return [Chunk(source_name=source_name, text=t) for t in self.split(content)]

    def _split_fixed_window(self, text: str) -> list[str]:
        """Hard split *text* into consecutive windows of ``max_chunk_size``.

        Unlike ``split()`` the windows are not stripped, so they stay contiguous.
        """
        size = self.max_chunk_size
        return [text[pos : pos + size] for pos in range(0, len(text), size)]

    def _pack(
        self,
        segments: Sequence[str],
        refine: Callable[[int], list[str]],
    ) -> list[str]:
        """Greedily merge adjacent *segments* into pieces within the size limit.

        Segments are taken in order. A segment that alone exceeds the limit is
        replaced by ``refine(index)``, which must return contiguous pieces that
        each fit. The output is always contiguous with the input.
        """
        out: list[str] = []
        current = ""
        for i, segment in enumerate(segments):
            if len(segment) > self.max_chunk_size:
                if current:
                    out.append(current)
                    current = ""
                out.extend(refine(i))
                continue
            if len(current) + len(segment) > self.max_chunk_size:
                out.append(current)
                current = segment
            else:
                current += segment
        if current:
            out.append(current)
        return out

    @staticmethod
    def _cut(text: str, offsets: Sequence[int]) -> list[str]:
        """Slice *text* at each of the (sorted) *offsets*; empty slices omitted."""
        bounds = [0, *(o for o in offsets if 0 < o < len(text)), len(text)]
        return [text[a:b] for a, b in zip(bounds, bounds[1:]) if b > a]
