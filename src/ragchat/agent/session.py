"""Completion session: one user message → final reply, with tool use.

Each completion call is one turn. While the model answers with tool calls,
the calls are executed through the ToolRegistry and their outputs are fed
back; the first plain reply ends the exchange. Exceeding ``max_turns`` is a
CompletionError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ragchat.config import GenerationCfg
from ragchat.errors import CompletionError
from ragchat.models import ConversationTurn
from ragchat.rag.llm_client import acomplete
from ragchat.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ChatSession:
    """Bind a completion model, a system preamble, and a tool registry.

    Args:
        config: Generation settings (model, turn cap, max tokens).
        preamble: System prompt sent ahead of every exchange.
        tools: Registry of callable tools; empty means no tools are offered.
        api_key: Credential for the completion provider.
    """

    def __init__(
        self,
        config: GenerationCfg,
        preamble: str,
        tools: ToolRegistry | None = None,
        api_key: str | None = None,
    ) -> None:
        self._config = config
        self._preamble = preamble
        self._tools = tools or ToolRegistry()
        self._api_key = api_key

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    async def respond(self, message: str, history: Sequence[ConversationTurn]) -> str:
        """Return the final assistant reply to *message* given *history*.

        *history* is read, never modified.

        Raises:
            CompletionError: On service failure or when the turn cap is hit.
        """
        messages: list[dict[str, Any]] = []
        if self._preamble:
            messages.append({"role": "system", "content": self._preamble})
        messages.extend(turn.to_message() for turn in history)
        messages.append({"role": "user", "content": message})

        schemas = self._tools.schemas()
        for turn in range(self._config.max_turns):
            reply = await acomplete(
                self._config.model,
                messages,
                tools=schemas or None,
                api_key=self._api_key,
                max_tokens=self._config.max_tokens,
            )
            tool_calls = list(getattr(reply, "tool_calls", None) or [])
            if not tool_calls:
                return reply.content or ""

            logger.debug("Turn %d: %d tool call(s)", turn + 1, len(tool_calls))
            messages.append(_assistant_tool_message(reply.content, tool_calls))
            for call in tool_calls:
                output = await self._tools.call(call.function.name, call.function.arguments)
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "content": output}
                )

        raise CompletionError(
            f"No final reply after {self._config.max_turns} turns of tool use"
        )


def _assistant_tool_message(content: str | None, tool_calls: list[Any]) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": content or "",
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.function.name,
                    "arguments": call.function.arguments,
                },
            }
            for call in tool_calls
        ],
    }
