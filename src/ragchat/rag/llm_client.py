"""LiteLLM client wrapper with retry, backoff, and API key env lookup.

All completion + embedding calls route through this module.
LiteLLM's built-in retry is used (num_retries=3, exponential backoff).
Calls are async so index builds and per-turn requests never block the loop.
"""

from __future__ import annotations

import logging
from typing import Any

import litellm

from ragchat.errors import CompletionError, EmbeddingServiceError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Provider → env var mapping for API key lookup
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string (default openai)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def api_key_env(model: str) -> str | None:
    """Return the env var holding the API key for *model*, or None if not needed.

    Unknown providers map to ``<PROVIDER>_API_KEY``.
    """
    provider = provider_of(model)
    if provider in _PROVIDER_ENV:
        return _PROVIDER_ENV[provider]
    return f"{provider.upper()}_API_KEY"


async def acomplete(
    model: str,
    messages: list[dict[str, Any]],
    *,
    tools: list[dict[str, Any]] | None = None,
    api_key: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> Any:
    """Call litellm.acompletion() with retry/backoff. Returns the first choice's message.

    The returned message exposes ``content`` and ``tool_calls``.

    Raises:
        CompletionError: On persistent API failure or an empty response.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "num_retries": num_retries,
    }
    if tools:
        kwargs["tools"] = tools
    if api_key:
        kwargs["api_key"] = api_key

    try:
        response = await litellm.acompletion(**kwargs)
    except Exception as exc:
        raise CompletionError(f"Completion request to '{model}' failed: {exc}") from exc

    if not response.choices:
        raise CompletionError(f"Completion model '{model}' returned no choices")
    return response.choices[0].message


async def aembed(
    model: str,
    texts: list[str],
    *,
    api_key: str | None = None,
    num_retries: int = 3,
) -> list[list[float]]:
    """Call litellm.aembedding() for a batch. Returns one vector per input, in order.

    Raises:
        EmbeddingServiceError: If the service fails or the response does not
            contain exactly one vector per input.
    """
    if not texts:
        return []

    kwargs: dict[str, Any] = {"model": model, "input": texts, "num_retries": num_retries}
    if api_key:
        kwargs["api_key"] = api_key

    try:
        response = await litellm.aembedding(**kwargs)
    except Exception as exc:
        raise EmbeddingServiceError(f"Embedding request to '{model}' failed: {exc}") from exc

    data = list(response.data or [])
    if len(data) != len(texts):
        raise EmbeddingServiceError(
            f"Embedding model '{model}' returned {len(data)} vectors for {len(texts)} inputs"
        )

    try:
        # Sort by index to maintain order
        data.sort(key=lambda item: item["index"])
        vectors = [list(map(float, item["embedding"])) for item in data]
    except (KeyError, TypeError, ValueError) as exc:
        raise EmbeddingServiceError(f"Malformed embedding response from '{model}': {exc}") from exc

    logger.debug("Embedded %d texts with %s", len(texts), model)
    return vectors
