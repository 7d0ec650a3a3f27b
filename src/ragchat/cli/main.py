"""ragchat CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from ragchat.cli.chat import chat_cmd
from ragchat.cli.ingest import ingest_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragchat")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragchat {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="ragchat",
    help=(
        "ragchat — documentation-aware chat REPL.\n\n"
        "  ragchat chat    Index the RAG directories and start chatting.\n"
        "  ragchat ingest  Show what would be indexed, without embedding."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """ragchat — documentation-aware chat REPL."""


app.command("chat")(chat_cmd)
app.command("ingest")(ingest_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragchat version."""
    typer.echo(f"ragchat {_installed_version()}")


if __name__ == "__main__":
    app()
