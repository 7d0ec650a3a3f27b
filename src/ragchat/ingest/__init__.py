"""ragchat ingest pipeline — chunkers and the document store."""

from __future__ import annotations

from enum import Enum

from ragchat.ingest.base import BaseChunker
from ragchat.ingest.markdown import MarkdownChunker
from ragchat.ingest.solidity import SolidityChunker


class ChunkKind(str, Enum):
    MARKDOWN = "markdown"
    SOURCE_CODE = "source_code"


def make_chunker(kind: ChunkKind, max_chunk_size: int = 1000) -> BaseChunker:
    """Return the chunker for *kind*."""
    if kind is ChunkKind.MARKDOWN:
        return MarkdownChunker(max_chunk_size=max_chunk_size)
    return SolidityChunker(max_chunk_size=max_chunk_size)


def split(text: str, kind: ChunkKind, max_chunk_size: int = 1000) -> list[str]:
    """Split *text* into ordered, non-empty pieces of at most *max_chunk_size*."""
    return make_chunker(kind, max_chunk_size).split(text)


__all__ = [
    "BaseChunker",
    "ChunkKind",
    "MarkdownChunker",
    "SolidityChunker",
    "make_chunker",
    "split",
]
