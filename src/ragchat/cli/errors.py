"""ragchat rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragchat.cli.errors import err_config
    console.print(err_config(str(exc)))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


def err_config(detail: str) -> str:
    """Missing or invalid startup configuration."""
    return (
        f"[red]Error:[/] Invalid configuration: {escape(detail)}\n"
        "  Required:  MCP_SERVER_ADDRESS, MCP_SERVER_PORT, RAGCHAT_PREAMBLE,\n"
        "             RAGCHAT_RAG_DIRS and the API keys for your models.\n"
        "  Tunables:  ragchat.yaml in the project directory (no API keys)."
    )


def err_embedding_failed(detail: str) -> str:
    """The index build could not embed the corpus."""
    return (
        f"[red]Error:[/] Building the embedding index failed: {escape(detail)}\n"
        "  Check the embedding API key and model name, then restart.\n"
        "  Override the model with:  export RAGCHAT_EMBEDDING_MODEL=<provider/model>"
    )


def err_tool_server(url: str, detail: str) -> str:
    """The MCP tool server is unreachable."""
    return (
        f"[red]Error:[/] Cannot load tools from '{escape(url)}': {escape(detail)}\n"
        "  Start the tool server or check MCP_SERVER_ADDRESS / MCP_SERVER_PORT.\n"
        "  Run without tools:  ragchat chat --no-tools"
    )


def err_completion_failed(detail: str) -> str:
    """One conversation turn failed; the loop continues."""
    return (
        f"[red]Sorry, there was an error processing your input:[/] {escape(detail)}\n"
        "  Your message was kept in history. Try again or type '/reset'."
    )


def warn_retrieval_failed(detail: str) -> str:
    """Retrieval failed; the query is sent without documentation context."""
    return (
        f"[yellow]⚠ Documentation search failed:[/] {escape(detail)}\n"
        "  Answering without retrieved context."
    )


def warn_ingest_errors(count: int) -> str:
    """Some files were skipped during ingestion."""
    return (
        f"[yellow]⚠ {count} file(s) could not be ingested and were skipped.[/]\n"
        "  Run:  ragchat ingest  to see the details."
    )


def warn_empty_corpus(dirs: list[str]) -> str:
    """No chunks found in the RAG directories."""
    listing = ", ".join(dirs) if dirs else "(none)"
    return (
        f"[yellow]⚠ No documentation found in:[/] {escape(listing)}\n"
        "  Add .md or .sol files, or point RAGCHAT_RAG_DIRS at another directory."
    )
