"""Context assembler: relevance threshold, context budget, prompt wrapping.

Pipeline:
  1. Search the embedding index for ``sample_count`` nearest chunks.
     No results → the query is returned unchanged.
  2. Drop results whose cosine distance is >= ``distance_threshold``.
  3. Apply the character budget: admit chunks in ranked order until the
     next one would overflow ``max_context_chars``, then stop.
  4. Format each admitted chunk with its source and wrap the block plus the
     original query into the next user message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ragchat.config import RetrievalCfg
from ragchat.models import SearchResult
from ragchat.rag.index import EmbeddingIndex

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n---\n\n"
_PROMPT_TEMPLATE = (
    "You have access to the following relevant documentation: \n\n"
    "{context}\n\n --- \n\nUser: {query}"
)


@dataclass
class AssembledContext:
    """Result of one assembly pass.

    Attributes:
        prompt: The message to send — the augmented prompt, or the original
            query when nothing was admitted.
        results: Admitted search results, in ranked order.
        retrieved: Number of results the index returned before filtering.
        total_chars: Cumulative length of admitted chunk texts.
    """

    prompt: str
    results: list[SearchResult] = field(default_factory=list)
    retrieved: int = 0
    total_chars: int = 0

    @property
    def injected(self) -> bool:
        return bool(self.results)


class ContextAssembler:
    """Turn a user query into a context-enriched prompt.

    Args:
        index: Built embedding index to search.
        config: Retrieval configuration (sample count, threshold, budget).
    """

    def __init__(self, index: EmbeddingIndex, config: RetrievalCfg | None = None) -> None:
        self._index = index
        self._config = config or RetrievalCfg()

    async def augment(self, query: str) -> str:
        """Return *query* wrapped with retrieved context (or unchanged).

        Raises:
            RetrievalError: If the index search fails.
        """
        return (await self.assemble(query)).prompt

    async def assemble(self, query: str) -> AssembledContext:
        """Search, filter, and budget; see the module docstring.

        Raises:
            RetrievalError: If the index search fails.
        """
        candidates = await self._index.search(query, self._config.sample_count)
        if not candidates:
            return AssembledContext(prompt=query)

        relevant = filter_relevant(candidates, self._config.distance_threshold)
        admitted, total = apply_context_budget(relevant, self._config.max_context_chars)
        logger.debug(
            "Retrieved %d, relevant %d, admitted %d (%d chars)",
            len(candidates),
            len(relevant),
            len(admitted),
            total,
        )

        if not admitted:
            return AssembledContext(prompt=query, retrieved=len(candidates))

        return AssembledContext(
            prompt=format_prompt(query, admitted),
            results=admitted,
            retrieved=len(candidates),
            total_chars=total,
        )


# ------------------------------------------------------------------
# Steps
# ------------------------------------------------------------------


def filter_relevant(results: list[SearchResult], threshold: float) -> list[SearchResult]:
    """Keep results strictly closer than *threshold*; a score equal to it is dropped."""
    return [r for r in results if r.score < threshold]


def apply_context_budget(
    results: list[SearchResult],
    budget: int,
) -> tuple[list[SearchResult], int]:
    """Select results that fit within *budget* characters. Returns (selected, total_chars)."""
    selected: list[SearchResult] = []
    total = 0
    for result in results:
        size = len(result.text)
        if total + size > budget:
            break
        selected.append(result)
        total += size
    return selected, total


def format_prompt(query: str, results: list[SearchResult]) -> str:
    """Join admitted chunks with source attribution and append the query verbatim."""
    context = SEPARATOR.join(
        f"Source: {r.source_name}\nContent: {r.text}" for r in results
    )
    return _PROMPT_TEMPLATE.format(context=context, query=query)
