"""ragchat ingest — dry run of the ingestion step.

Walks the RAG directories, chunks every routable file, and prints per-kind
counts plus any files that failed. Nothing is embedded and no API key is
needed.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from ragchat.cli.errors import err_config
from ragchat.config import ENV_RAG_DIRS, load_config
from ragchat.errors import ConfigurationError
from ragchat.ingest.store import DocumentStore
from ragchat.log import configure_logging

console = Console()


def ingest_cmd(
    directory: Annotated[
        list[Path] | None,
        typer.Option("--dir", "-d", help=f"RAG directory (repeatable; default: ${ENV_RAG_DIRS})."),
    ] = None,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", help="Directory containing ragchat.yaml (default: CWD)."),
    ] = None,
    show_chunks: Annotated[
        bool,
        typer.Option("--show-chunks", help="List every chunk's source and length."),
    ] = False,
) -> None:
    """Chunk the RAG directories and report what would be indexed."""
    env = dict(os.environ)
    if directory:
        env[ENV_RAG_DIRS] = os.pathsep.join(str(d) for d in directory)

    try:
        cfg = load_config(project_dir, env=env, strict=False)
        configure_logging(cfg.log_level)
        store = DocumentStore(cfg.chunking)
    except ConfigurationError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    chunks = store.ingest(cfg.rag_directories)

    table = Table(title="Ingestion summary")
    table.add_column("Kind")
    table.add_column("Files", justify="right")
    table.add_column("Chunks", justify="right")
    for kind, stats in store.report.stats.items():
        table.add_row(kind.value, str(stats.files), str(stats.chunks))
    console.print(table)

    if show_chunks:
        for chunk in chunks:
            console.print(f"  {chunk.source_name}  [dim]{len(chunk.text)} chars[/]")

    for error in store.errors:
        console.print(f"  [red]✗[/] {error.path}: {error.reason}")

    if not chunks:
        console.print("[yellow]No chunks produced.[/]")
