"""Interactive conversation loop.

States:  IDLE → AWAITING_INPUT → PROCESSING → DISPLAYING_RESULT → AWAITING_INPUT
         AWAITING_INPUT → TERMINATED   on 'quit' / 'exit' or end of input

One query is processed to completion before the next line is read.
Retrieval and completion failures are reported and the loop continues.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from rich.console import Console
from rich.markup import escape

from ragchat.agent.session import ChatSession
from ragchat.cli.errors import err_completion_failed, warn_retrieval_failed
from ragchat.errors import CompletionError, RetrievalError
from ragchat.models import ConversationTurn, Role
from ragchat.rag.assembler import ContextAssembler

logger = logging.getLogger(__name__)

PROMPT = ">>> "
QUIT_COMMANDS = frozenset({"quit", "exit"})
RESET_COMMAND = "/reset"


class LoopState(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    PROCESSING = "processing"
    DISPLAYING_RESULT = "displaying_result"
    TERMINATED = "terminated"


class ConversationLoop:
    """Read lines, augment them with retrieved context, and print replies.

    Args:
        assembler: Context assembler used on every query.
        session: Completion session (model + tools).
        clear_history_on_context: Reset history whenever retrieval context is
            injected into a turn.
        console: Output console (stdout by default).
        read_line: Blocking line reader; raises EOFError at end of input.
    """

    def __init__(
        self,
        assembler: ContextAssembler,
        session: ChatSession,
        *,
        clear_history_on_context: bool = True,
        console: Console | None = None,
        read_line: Callable[[str], str] | None = None,
    ) -> None:
        self._assembler = assembler
        self._session = session
        self._clear_history_on_context = clear_history_on_context
        self._console = console or Console()
        self._read_line = read_line or self._console.input
        self.history: list[ConversationTurn] = []
        self.state = LoopState.IDLE

    async def run(self) -> None:
        """Run until a quit command or end of input."""
        tools = len(self._session.tools)
        self._console.print(
            f"[bold]ragchat[/] — ask about the indexed docs ({tools} tools available). "
            "Type 'quit' to exit, '/reset' to clear history."
        )

        while True:
            self.state = LoopState.AWAITING_INPUT
            try:
                line = await asyncio.to_thread(self._read_line, PROMPT)
            except (EOFError, KeyboardInterrupt):
                self._console.print()
                break

            text = line.strip()
            if text.lower() in QUIT_COMMANDS:
                break
            if not text:
                continue
            if text == RESET_COMMAND:
                self.history.clear()
                self._console.print("[dim]History cleared.[/]")
                continue

            await self.process(line)

        self.state = LoopState.TERMINATED
        logger.info("Conversation loop terminated")

    async def process(self, line: str) -> str | None:
        """Handle one user line. Returns the reply, or None if the turn failed."""
        self.state = LoopState.PROCESSING
        self._console.print("[dim]Processing request...[/]")

        prompt = line
        try:
            assembled = await self._assembler.assemble(line)
        except RetrievalError as exc:
            logger.warning("Retrieval failed, sending query without context: %s", exc)
            self._console.print(warn_retrieval_failed(str(exc)))
        else:
            prompt = assembled.prompt
            if assembled.injected and self._clear_history_on_context:
                self.history.clear()

        user_turn = ConversationTurn(role=Role.USER, content=prompt)
        try:
            reply = await self._session.respond(prompt, list(self.history))
        except CompletionError as exc:
            logger.warning("Completion failed: %s", exc)
            self.history.append(user_turn)
            self.state = LoopState.DISPLAYING_RESULT
            self._console.print(err_completion_failed(str(exc)))
            return None

        self.history.append(user_turn)
        self.history.append(ConversationTurn(role=Role.ASSISTANT, content=reply))
        self.state = LoopState.DISPLAYING_RESULT
        self.display_response(reply)
        return reply

    def display_response(self, reply: str) -> None:
        self._console.print(f"\n[bold cyan]Assistant:[/]\n{escape(reply)}\n")
