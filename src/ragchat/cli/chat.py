"""ragchat chat — ingest, index, connect tools, and start the REPL.

Startup order:
  config → logging → document store → embedding index → tool server → REPL

Any startup failure prints an actionable error and exits with status 1.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from ragchat.agent.repl import ConversationLoop
from ragchat.agent.session import ChatSession
from ragchat.cli.errors import (
    err_config,
    err_embedding_failed,
    err_tool_server,
    warn_empty_corpus,
    warn_ingest_errors,
)
from ragchat.config import RagChatConfig, load_config
from ragchat.errors import ConfigurationError, EmbeddingServiceError, ToolProviderError
from ragchat.ingest.store import DocumentStore
from ragchat.log import configure_logging
from ragchat.rag.assembler import ContextAssembler
from ragchat.rag.index import EmbeddingIndex
from ragchat.tools.registry import ToolRegistry, connect_tool_server

console = Console()
logger = logging.getLogger(__name__)


def chat_cmd(
    no_tools: Annotated[
        bool,
        typer.Option("--no-tools", help="Do not connect to the MCP tool server."),
    ] = False,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", help="Directory containing ragchat.yaml (default: CWD)."),
    ] = None,
) -> None:
    """Start an interactive chat over the indexed documentation."""
    try:
        cfg = load_config(project_dir)
    except ConfigurationError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    configure_logging(cfg.log_level)
    use_tools = cfg.tools.enabled and not no_tools

    try:
        asyncio.run(_run(cfg, use_tools=use_tools))
    except ConfigurationError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    except EmbeddingServiceError as exc:
        console.print(err_embedding_failed(str(exc)))
        raise typer.Exit(1)
    except ToolProviderError as exc:
        console.print(err_tool_server(cfg.tool_server_url, str(exc)))
        raise typer.Exit(1)


async def build_index(cfg: RagChatConfig) -> EmbeddingIndex:
    """Ingest the RAG directories and embed every chunk.

    Raises:
        ConfigurationError: If a chunker cannot be constructed.
        EmbeddingServiceError: If embedding fails.
    """
    store = DocumentStore(cfg.chunking)
    with console.status("Ingesting documentation…"):
        chunks = await asyncio.to_thread(store.ingest, cfg.rag_directories)

    if store.errors:
        console.print(warn_ingest_errors(len(store.errors)))
    if not chunks:
        console.print(warn_empty_corpus([str(d) for d in cfg.rag_directories]))

    with console.status(f"Embedding {len(chunks)} chunks…"):
        index = await EmbeddingIndex.build(
            chunks, cfg.embedding, api_key=cfg.embedding_api_key or None
        )
    console.print(f"[green]✓[/] Indexed {len(index)} chunks")
    return index


async def _run(cfg: RagChatConfig, use_tools: bool) -> None:
    index = await build_index(cfg)

    async with AsyncExitStack() as stack:
        if use_tools:
            registry = await stack.enter_async_context(
                connect_tool_server(cfg.tool_server_url, timeout=cfg.tools.timeout)
            )
        else:
            registry = ToolRegistry()

        session = ChatSession(
            cfg.generation,
            cfg.preamble,
            tools=registry,
            api_key=cfg.completion_api_key or None,
        )
        loop = ConversationLoop(
            ContextAssembler(index, cfg.retrieval),
            session,
            clear_history_on_context=cfg.retrieval.clear_history_on_context,
            console=console,
        )
        logger.info("Starting interactive REPL")
        await loop.run()
