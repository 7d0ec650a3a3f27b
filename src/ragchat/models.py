"""Domain models for chunks, index entries, and conversation history."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Chunk:
    source_name: str
    text: str

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Chunk text must be non-empty")


@dataclass(frozen=True)
class EmbeddedChunk:
    chunk: Chunk
    vector: tuple[float, ...]


@dataclass(frozen=True)
class SearchResult:
    """A ranked index hit. ``score`` is cosine distance (lower = closer)."""

    score: float
    chunk: EmbeddedChunk

    @property
    def source_name(self) -> str:
        return self.chunk.chunk.source_name

    @property
    def text(self) -> str:
        return self.chunk.chunk.text


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str

    def to_message(self) -> dict[str, str]:
        """Return an OpenAI-style chat message dict."""
        return {"role": self.role.value, "content": self.content}
