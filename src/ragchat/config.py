"""ragchat configuration loader.

Priority (high → low):
  1. CLI flags               (handled at call site — not in this module)
  2. Environment variables   (connection, credentials, preamble, RAG roots, model overrides)
  3. Per-project ragchat.yaml (tunables only — no API keys)
  4. Hardcoded defaults

The resulting RagChatConfig is frozen: it is built once at startup and passed
explicitly into every component that needs it.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from ragchat.errors import ConfigurationError
from ragchat.rag.llm_client import api_key_env

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_PROJECT_CONFIG_NAME: str = "ragchat.yaml"

ENV_SERVER_ADDRESS = "MCP_SERVER_ADDRESS"
ENV_SERVER_PORT = "MCP_SERVER_PORT"
ENV_PREAMBLE = "RAGCHAT_PREAMBLE"
ENV_RAG_DIRS = "RAGCHAT_RAG_DIRS"
ENV_GENERATION_MODEL = "RAGCHAT_GENERATION_MODEL"
ENV_EMBEDDING_MODEL = "RAGCHAT_EMBEDDING_MODEL"
ENV_LOG_LEVEL = "RAGCHAT_LOG_LEVEL"

# Key names that look like credentials are forbidden in ragchat.yaml.
# Does NOT match legitimate keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["generation", "embedding", "chunking", "retrieval", "tools"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationCfg:
    """Completion model configuration (ragchat.yaml: generation:)."""

    model: str = "anthropic/claude-3-5-sonnet-20241022"
    max_turns: int = 20
    max_tokens: int = 4096


@dataclass(frozen=True)
class EmbeddingCfg:
    """Embedding model configuration (ragchat.yaml: embedding:)."""

    model: str = "openai/text-embedding-ada-002"
    batch_size: int = 100
    max_concurrent: int = 4


@dataclass(frozen=True)
class ChunkingCfg:
    """Chunker configuration (ragchat.yaml: chunking:).

    Attributes:
        max_chunk_size: Upper bound on chunk length, in characters.
        markdown_extensions: File suffixes routed to the markdown chunker.
        source_extension: File suffix routed to the Solidity chunker.
        workers: Thread pool size for per-file chunking.
    """

    max_chunk_size: int = 1000
    markdown_extensions: tuple[str, ...] = (".md",)
    source_extension: str = ".sol"
    workers: int = 4


@dataclass(frozen=True)
class RetrievalCfg:
    """Context assembly configuration (ragchat.yaml: retrieval:).

    Attributes:
        sample_count: Number of nearest neighbours requested per query.
        distance_threshold: Results at or above this cosine distance are dropped.
        max_context_chars: Budget for retrieved text in one prompt.
        clear_history_on_context: Reset conversation history whenever fresh
            retrieval context is injected into a turn.
    """

    sample_count: int = 30
    distance_threshold: float = 0.9
    max_context_chars: int = 30_000
    clear_history_on_context: bool = True


@dataclass(frozen=True)
class ToolsCfg:
    """Remote tool server configuration (ragchat.yaml: tools:)."""

    enabled: bool = True
    timeout: float = 30.0


@dataclass(frozen=True)
class RagChatConfig:
    """Root configuration object, built by load_config()."""

    server_host: str = ""
    server_port: int = 0
    completion_api_key: str = ""
    embedding_api_key: str = ""
    preamble: str = ""
    rag_directories: tuple[Path, ...] = ()
    log_level: str = "WARNING"
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    tools: ToolsCfg = field(default_factory=ToolsCfg)

    @property
    def bind_address(self) -> str:
        return f"{self.server_host}:{self.server_port}"

    @property
    def tool_server_url(self) -> str:
        return f"http://{self.bind_address}/sse"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigurationError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigurationError(
                        f"Config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"Required environment variable {name} is not set.")
    return value


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_SERVER_PORT} must be an integer, got '{raw}'."
        ) from None
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"{ENV_SERVER_PORT} must be in 1..65535, got {port}.")
    return port


def parse_rag_dirs(raw: str) -> tuple[Path, ...]:
    """Split an ``os.pathsep``-separated directory list, dropping blanks."""
    return tuple(Path(p.strip()) for p in raw.split(os.pathsep) if p.strip())


def _credential(env: Mapping[str, str], model: str, strict: bool) -> str:
    var = api_key_env(model)
    if var is None:
        return ""  # local provider, no key required
    if strict:
        return _require(env, var)
    return env.get(var, "")


# ---------------------------------------------------------------------------
# Build from YAML
# ---------------------------------------------------------------------------


def _cfg_from_dict(data: dict[str, Any]) -> RagChatConfig:
    """Build a *RagChatConfig* carrying only the YAML tunables."""
    cfg = RagChatConfig()

    try:
        if "generation" in data:
            g = data["generation"] or {}
            cfg = replace(
                cfg,
                generation=GenerationCfg(
                    model=str(g.get("model", cfg.generation.model)),
                    max_turns=int(g.get("max_turns", cfg.generation.max_turns)),
                    max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
                ),
            )

        if "embedding" in data:
            e = data["embedding"] or {}
            cfg = replace(
                cfg,
                embedding=EmbeddingCfg(
                    model=str(e.get("model", cfg.embedding.model)),
                    batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
                    max_concurrent=int(e.get("max_concurrent", cfg.embedding.max_concurrent)),
                ),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            md_exts = c.get("markdown_extensions", cfg.chunking.markdown_extensions)
            if isinstance(md_exts, str):
                md_exts = [md_exts]
            cfg = replace(
                cfg,
                chunking=ChunkingCfg(
                    max_chunk_size=int(c.get("max_chunk_size", cfg.chunking.max_chunk_size)),
                    markdown_extensions=tuple(str(x).lower() for x in md_exts),
                    source_extension=str(
                        c.get("source_extension", cfg.chunking.source_extension)
                    ).lower(),
                    workers=int(c.get("workers", cfg.chunking.workers)),
                ),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg = replace(
                cfg,
                retrieval=RetrievalCfg(
                    sample_count=int(r.get("sample_count", cfg.retrieval.sample_count)),
                    distance_threshold=float(
                        r.get("distance_threshold", cfg.retrieval.distance_threshold)
                    ),
                    max_context_chars=int(
                        r.get("max_context_chars", cfg.retrieval.max_context_chars)
                    ),
                    clear_history_on_context=bool(
                        r.get("clear_history_on_context", cfg.retrieval.clear_history_on_context)
                    ),
                ),
            )

        if "tools" in data:
            t = data["tools"] or {}
            cfg = replace(
                cfg,
                tools=ToolsCfg(
                    enabled=bool(t.get("enabled", cfg.tools.enabled)),
                    timeout=float(t.get("timeout", cfg.tools.timeout)),
                ),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid value in {_PROJECT_CONFIG_NAME}: {exc}") from exc

    return cfg


def _validate(cfg: RagChatConfig) -> None:
    if cfg.chunking.max_chunk_size < 1:
        raise ConfigurationError("chunking.max_chunk_size must be >= 1")
    if cfg.embedding.batch_size < 1:
        raise ConfigurationError("embedding.batch_size must be >= 1")
    if cfg.embedding.max_concurrent < 1:
        raise ConfigurationError("embedding.max_concurrent must be >= 1")
    if cfg.retrieval.sample_count < 1:
        raise ConfigurationError("retrieval.sample_count must be >= 1")
    if cfg.retrieval.max_context_chars < 0:
        raise ConfigurationError("retrieval.max_context_chars must be >= 0")
    if cfg.generation.max_turns < 1:
        raise ConfigurationError("generation.max_turns must be >= 1")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    strict: bool = True,
) -> RagChatConfig:
    """Load and return a frozen *RagChatConfig*.

    Args:
        project_dir: Directory to search for *ragchat.yaml*. Defaults to CWD.
        env: Environment mapping (defaults to ``os.environ``).
        strict: When False only the RAG directories are required; the server
            address, credentials and preamble may be absent (used by
            ``ragchat ingest``).

    Raises:
        ConfigurationError: On a missing required value, a malformed value,
            or a credential-like key in ragchat.yaml.
    """
    env = os.environ if env is None else env
    search_dir = project_dir if project_dir is not None else Path.cwd()

    raw: dict[str, Any] = {}
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        try:
            raw = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {project_cfg_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{project_cfg_path} must contain a mapping.")
        _check_no_api_keys(raw, project_cfg_path)
        _warn_unknown_keys(raw, project_cfg_path)

    cfg = _cfg_from_dict(raw)

    # Env var model overrides
    if model := env.get(ENV_GENERATION_MODEL):
        cfg = replace(cfg, generation=replace(cfg.generation, model=model))
    if model := env.get(ENV_EMBEDDING_MODEL):
        cfg = replace(cfg, embedding=replace(cfg.embedding, model=model))

    rag_directories = parse_rag_dirs(_require(env, ENV_RAG_DIRS))

    if strict:
        host = _require(env, ENV_SERVER_ADDRESS)
        port = _parse_port(_require(env, ENV_SERVER_PORT))
        preamble = _require(env, ENV_PREAMBLE)
    else:
        host = env.get(ENV_SERVER_ADDRESS, "")
        port_raw = env.get(ENV_SERVER_PORT, "")
        port = _parse_port(port_raw) if port_raw else 0
        preamble = env.get(ENV_PREAMBLE, "")

    cfg = replace(
        cfg,
        server_host=host,
        server_port=port,
        completion_api_key=_credential(env, cfg.generation.model, strict),
        embedding_api_key=_credential(env, cfg.embedding.model, strict),
        preamble=preamble,
        rag_directories=rag_directories,
        log_level=env.get(ENV_LOG_LEVEL, "WARNING"),
    )
    _validate(cfg)
    return cfg
