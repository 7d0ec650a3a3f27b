"""Solidity chunker — syntax-tree splits with fixed-window fallback.

Parsing uses the tree-sitter Solidity grammar from tree-sitter-language-pack.
Split points fall on syntax-node boundaries: top-level declarations first,
then the children of any declaration that is still too large. The text
between nodes (whitespace, comments) travels with the node that follows it.
"""

from __future__ import annotations

import logging

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_language

from ragchat.errors import ConfigurationError
from ragchat.ingest.base import BaseChunker

logger = logging.getLogger(__name__)

_GRAMMAR = "solidity"


class SolidityChunker(BaseChunker):
    """Split Solidity source along statement and declaration boundaries.

    Input the grammar cannot parse cleanly falls back to fixed-length windows.

    Raises:
        ConfigurationError: If the Solidity grammar cannot be loaded.
    """

    def __init__(self, max_chunk_size: int = 1000) -> None:
        super().__init__(max_chunk_size=max_chunk_size)
        try:
            self._language = get_language(_GRAMMAR)
        except Exception as exc:
            raise ConfigurationError(
                f"Cannot load the tree-sitter '{_GRAMMAR}' grammar: {exc}"
            ) from exc

    def _segments(self, text: str) -> list[str]:
        if len(text) <= self.max_chunk_size:
            return [text]

        data = text.encode("utf-8")
        # Parsers are not shared between threads; one per call.
        tree = Parser(self._language).parse(data)
        if tree.root_node.has_error:
            logger.debug("Solidity parse errors; using fixed-window split")
            return self._split_fixed_window(text)
        return self._split_node(tree.root_node, data, 0, len(data))

    def _split_node(self, node: Node, data: bytes, start: int, end: int) -> list[str]:
        """Split ``data[start:end]`` at the boundaries of *node*'s children."""
        spans: list[tuple[int, int, Node | None]] = []
        cursor = start
        for child in node.children:
            if child.end_byte <= cursor or child.start_byte >= end:
                continue
            stop = min(child.end_byte, end)
            spans.append((cursor, stop, child))
            cursor = stop
        if cursor < end:
            spans.append((cursor, end, None))

        texts = [data[a:b].decode("utf-8") for a, b, _ in spans]

        def refine(i: int) -> list[str]:
            a, b, child = spans[i]
            if child is not None and child.child_count > 0:
                return self._split_node(child, data, a, b)
            return self._split_fixed_window(texts[i])

        return self._pack(texts, refine)
