"""Tests for EmbeddingIndex — build batching, cosine ranking, failure modes."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ragchat.config import EmbeddingCfg
from ragchat.errors import EmbeddingServiceError, RetrievalError
from ragchat.models import Chunk, EmbeddedChunk
from ragchat.rag.index import EmbeddingIndex

VECTORS = {
    "alpha": [1.0, 0.0, 0.0],
    "beta": [0.0, 1.0, 0.0],
    "gamma": [0.9, 0.1, 0.0],
    "query": [1.0, 0.0, 0.0],
}


def _chunks(*texts: str) -> list[Chunk]:
    return [Chunk(source_name=f"docs/{t}.md", text=t) for t in texts]


class FakeEmbedder:
    """Async stand-in for aembed(); records every batch it sees."""

    def __init__(self, vectors=VECTORS, fail: bool = False):
        self.vectors = vectors
        self.fail = fail
        self.batches: list[list[str]] = []

    async def __call__(self, model, texts, *, api_key=None):
        self.batches.append(list(texts))
        if self.fail:
            raise EmbeddingServiceError("service down")
        return [self.vectors[t] for t in texts]


async def _build(chunks, embedder, config=None) -> EmbeddingIndex:
    with patch("ragchat.rag.index.aembed", new=embedder):
        return await EmbeddingIndex.build(chunks, config)


# ------------------------------------------------------------------
# build()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_build_embeds_every_chunk_once():
    embedder = FakeEmbedder()
    index = await _build(_chunks("alpha", "beta", "gamma"), embedder)

    assert len(index) == 3
    assert index.dimensions == 3
    assert [e.chunk.text for e in index.entries] == ["alpha", "beta", "gamma"]
    assert sum(len(b) for b in embedder.batches) == 3


@pytest.mark.asyncio
async def test_build_respects_batch_size():
    embedder = FakeEmbedder()
    await _build(_chunks("alpha", "beta", "gamma"), embedder, EmbeddingCfg(batch_size=2))

    assert sorted(len(b) for b in embedder.batches) == [1, 2]


@pytest.mark.asyncio
async def test_build_of_empty_corpus_makes_no_calls():
    embedder = FakeEmbedder()
    index = await _build([], embedder)

    assert len(index) == 0
    assert embedder.batches == []


@pytest.mark.asyncio
async def test_build_failure_propagates_without_partial_index():
    with pytest.raises(EmbeddingServiceError, match="service down"):
        await _build(_chunks("alpha", "beta"), FakeEmbedder(fail=True))


def test_inconsistent_dimensions_rejected():
    entries = [
        EmbeddedChunk(chunk=Chunk("docs/a.md", "a"), vector=(1.0, 0.0)),
        EmbeddedChunk(chunk=Chunk("docs/b.md", "b"), vector=(1.0, 0.0, 0.0)),
    ]
    with pytest.raises(EmbeddingServiceError, match="Inconsistent"):
        EmbeddingIndex(entries)


# ------------------------------------------------------------------
# search()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_orders_by_ascending_distance():
    embedder = FakeEmbedder()
    index = await _build(_chunks("alpha", "beta", "gamma"), embedder)

    with patch("ragchat.rag.index.aembed", new=embedder):
        results = await index.search("query", 3)

    assert [r.text for r in results] == ["alpha", "gamma", "beta"]
    assert results[0].score == pytest.approx(0.0)
    assert results[2].score == pytest.approx(1.0)
    assert [r.score for r in results] == sorted(r.score for r in results)


@pytest.mark.asyncio
async def test_search_returns_at_most_k():
    embedder = FakeEmbedder()
    index = await _build(_chunks("alpha", "beta", "gamma"), embedder)

    with patch("ragchat.rag.index.aembed", new=embedder):
        results = await index.search("query", 2)

    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_k_larger_than_index_returns_all():
    embedder = FakeEmbedder()
    index = await _build(_chunks("alpha", "beta"), embedder)

    with patch("ragchat.rag.index.aembed", new=embedder):
        results = await index.search("query", 30)

    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_empty_index_makes_no_embedding_call():
    embedder = FakeEmbedder()
    index = EmbeddingIndex([])

    with patch("ragchat.rag.index.aembed", new=embedder):
        assert await index.search("query", 5) == []
    assert embedder.batches == []


@pytest.mark.asyncio
async def test_search_ties_keep_insertion_order():
    vectors = {"first": [0.0, 1.0], "second": [0.0, 1.0], "third": [1.0, 0.0], "query": [0.0, 1.0]}
    embedder = FakeEmbedder(vectors)
    index = await _build(_chunks("first", "second", "third"), embedder)

    with patch("ragchat.rag.index.aembed", new=embedder):
        results = await index.search("query", 3)

    assert [r.text for r in results] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_search_is_deterministic():
    embedder = FakeEmbedder()
    index = await _build(_chunks("alpha", "beta", "gamma"), embedder)

    with patch("ragchat.rag.index.aembed", new=embedder):
        first = await index.search("query", 3)
        second = await index.search("query", 3)

    assert first == second


@pytest.mark.asyncio
async def test_rebuilt_index_ranks_identically():
    chunks = _chunks("alpha", "beta", "gamma")
    config = EmbeddingCfg(batch_size=1, max_concurrent=4)
    first_index = await _build(chunks, FakeEmbedder(), config)
    second_index = await _build(chunks, FakeEmbedder(), config)

    embedder = FakeEmbedder()
    with patch("ragchat.rag.index.aembed", new=embedder):
        first = await first_index.search("query", 3)
        second = await second_index.search("query", 3)

    assert [(r.text, r.score) for r in first] == [(r.text, r.score) for r in second]
    assert [e.chunk.text for e in second_index.entries] == ["alpha", "beta", "gamma"]


@pytest.mark.asyncio
async def test_search_failure_becomes_retrieval_error():
    index = await _build(_chunks("alpha"), FakeEmbedder())

    with patch("ragchat.rag.index.aembed", new=FakeEmbedder(fail=True)):
        with pytest.raises(RetrievalError, match="service down"):
            await index.search("query", 3)


@pytest.mark.asyncio
async def test_search_dimension_mismatch_raises():
    index = await _build(_chunks("alpha"), FakeEmbedder())
    short = FakeEmbedder({"query": [1.0, 0.0]})

    with patch("ragchat.rag.index.aembed", new=short):
        with pytest.raises(RetrievalError, match="dimensions"):
            await index.search("query", 3)
