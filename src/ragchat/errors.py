"""Exception taxonomy shared across ragchat.

Startup failures (configuration, index build, tool server) are fatal.
Per-turn failures (retrieval, completion) are caught at the turn boundary.
"""

from __future__ import annotations


class RagChatError(Exception):
    """Base class for all ragchat errors."""


class ConfigurationError(RagChatError, ValueError):
    """Missing or invalid startup configuration."""


class IngestError(RagChatError):
    """A single file could not be read or chunked.

    Attributes:
        path: The offending file (or root directory).
        reason: Human-readable cause.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class EmbeddingServiceError(RagChatError):
    """The embedding service failed or returned malformed results."""


class RetrievalError(RagChatError):
    """A search against the embedding index failed."""


class CompletionError(RagChatError):
    """The completion service failed for one conversation turn."""


class ToolProviderError(RagChatError):
    """The remote tool server could not be reached or listed."""
