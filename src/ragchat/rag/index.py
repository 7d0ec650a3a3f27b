"""In-memory embedding index with exact cosine-distance search.

Build:
  chunks are embedded in batches of ``embedding.batch_size`` through
  litellm, at most ``embedding.max_concurrent`` batches in flight. Any failed
  or malformed batch fails the whole build — no partial index is returned.

Search:
  distance(q, d) = 1 - cos(q, d)    lower = more relevant, sorted ascending

The index is immutable after build; rebuild it to pick up new files.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import numpy as np

from ragchat.config import EmbeddingCfg
from ragchat.errors import EmbeddingServiceError, RetrievalError
from ragchat.models import Chunk, EmbeddedChunk, SearchResult
from ragchat.rag.llm_client import aembed

logger = logging.getLogger(__name__)


class EmbeddingIndex:
    """Immutable collection of embedded chunks supporting top-k search.

    Use ``await EmbeddingIndex.build(chunks, config)``; the constructor takes
    already-embedded entries.
    """

    def __init__(
        self,
        entries: Sequence[EmbeddedChunk],
        config: EmbeddingCfg | None = None,
        api_key: str | None = None,
    ) -> None:
        self._config = config or EmbeddingCfg()
        self._api_key = api_key
        self._entries: tuple[EmbeddedChunk, ...] = tuple(entries)

        if self._entries:
            dims = {len(e.vector) for e in self._entries}
            if len(dims) != 1:
                raise EmbeddingServiceError(
                    f"Inconsistent embedding dimensions: {sorted(dims)}"
                )
            self._matrix = _normalise(np.asarray([e.vector for e in self._entries], dtype=float))
        else:
            self._matrix = np.zeros((0, 0), dtype=float)
        self._matrix.setflags(write=False)

    @classmethod
    async def build(
        cls,
        chunks: Sequence[Chunk],
        config: EmbeddingCfg | None = None,
        api_key: str | None = None,
    ) -> EmbeddingIndex:
        """Embed every chunk and return the index.

        Raises:
            EmbeddingServiceError: If any batch fails or is malformed.
        """
        config = config or EmbeddingCfg()
        batches = [
            list(chunks[i : i + config.batch_size])
            for i in range(0, len(chunks), config.batch_size)
        ]
        semaphore = asyncio.Semaphore(config.max_concurrent)

        async def _embed_batch(batch: list[Chunk]) -> list[list[float]]:
            async with semaphore:
                return await aembed(config.model, [c.text for c in batch], api_key=api_key)

        logger.info("Embedding %d chunks in %d batches", len(chunks), len(batches))
        results = await asyncio.gather(*(_embed_batch(b) for b in batches))

        entries = [
            EmbeddedChunk(chunk=chunk, vector=tuple(vector))
            for batch, vectors in zip(batches, results)
            for chunk, vector in zip(batch, vectors, strict=True)
        ]
        return cls(entries, config=config, api_key=api_key)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[EmbeddedChunk, ...]:
        return self._entries

    @property
    def dimensions(self) -> int:
        return int(self._matrix.shape[1]) if self._entries else 0

    async def search(self, query: str, k: int) -> list[SearchResult]:
        """Return the *k* entries closest to *query*, best-first.

        An empty index returns ``[]`` without calling the embedding service.

        Raises:
            RetrievalError: If embedding the query fails or its dimensions do
                not match the index.
        """
        if not self._entries or k < 1:
            return []

        try:
            vectors = await aembed(self._config.model, [query], api_key=self._api_key)
        except EmbeddingServiceError as exc:
            raise RetrievalError(f"Query embedding failed: {exc}") from exc

        query_vec = np.asarray(vectors[0], dtype=float)
        if query_vec.shape != (self.dimensions,):
            raise RetrievalError(
                f"Query vector has {query_vec.size} dimensions, index has {self.dimensions}"
            )
        return self.rank(query_vec, k)

    def rank(self, query_vector: np.ndarray, k: int) -> list[SearchResult]:
        """Rank all entries against an already-embedded query vector."""
        norm = np.linalg.norm(query_vector)
        if norm == 0:
            similarities = np.zeros(len(self._entries))
        else:
            similarities = self._matrix @ (query_vector / norm)
        distances = 1.0 - similarities

        # Stable sort: ties keep insertion order.
        order = np.argsort(distances, kind="stable")[:k]
        return [
            SearchResult(score=float(distances[i]), chunk=self._entries[i]) for i in order
        ]


def _normalise(matrix: np.ndarray) -> np.ndarray:
    """L2-normalise rows; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms
