"""Process logging setup.

Logs go to stderr through a rich handler; stdout belongs to the REPL.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("litellm", "LiteLLM", "httpx", "httpcore", "mcp")


def configure_logging(level: str = "WARNING") -> None:
    """Install a stderr RichHandler on the root logger at *level*.

    Unknown level names fall back to WARNING. Third-party client loggers are
    held at WARNING unless DEBUG is requested.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=numeric,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if numeric <= logging.DEBUG else logging.WARNING
        )
