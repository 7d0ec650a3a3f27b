"""Tool registry backed by a remote MCP server.

The server is reached over the SSE transport at ``http://host:port/sse``.
Its tool listing is folded into a ToolRegistry: a mapping from tool name to
an invocable binding, handed opaquely to the completion session.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client

from ragchat.errors import ToolProviderError

logger = logging.getLogger(__name__)

ToolInvoker = Callable[[dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True)
class ToolBinding:
    name: str
    description: str
    input_schema: dict[str, Any]
    invoke: ToolInvoker

    def schema(self) -> dict[str, Any]:
        """OpenAI function-tool descriptor, as accepted by litellm."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema or {"type": "object", "properties": {}},
            },
        }


@dataclass
class ToolRegistry:
    """Name → ToolBinding mapping."""

    bindings: dict[str, ToolBinding] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.bindings)

    def __contains__(self, name: object) -> bool:
        return name in self.bindings

    def names(self) -> list[str]:
        return list(self.bindings)

    def register(self, binding: ToolBinding) -> None:
        if binding.name in self.bindings:
            logger.warning("Duplicate tool '%s' — keeping the first", binding.name)
            return
        self.bindings[binding.name] = binding

    def schemas(self) -> list[dict[str, Any]]:
        return [b.schema() for b in self.bindings.values()]

    async def call(self, name: str, arguments: dict[str, Any] | str | None) -> str:
        """Invoke *name* and return its text output.

        Failures are returned as text so the model can react to them.
        """
        binding = self.bindings.get(name)
        if binding is None:
            return f"Error: unknown tool '{name}'"

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as exc:
                return f"Error: invalid JSON arguments for tool '{name}': {exc}"
        if not isinstance(arguments, dict):
            arguments = {}

        logger.info("Calling tool %s", name)
        try:
            return await binding.invoke(arguments)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return f"Error: tool '{name}' failed: {exc}"

    @classmethod
    def from_mcp(cls, tools: Iterable[Any], session: ClientSession) -> ToolRegistry:
        """Build a registry from MCP tool descriptors bound to *session*."""
        registry = cls()
        for tool in tools:
            registry.register(
                ToolBinding(
                    name=tool.name,
                    description=tool.description or "",
                    input_schema=dict(tool.inputSchema or {}),
                    invoke=_mcp_invoker(session, tool.name),
                )
            )
        return registry


def _mcp_invoker(session: ClientSession, name: str) -> ToolInvoker:
    async def _invoke(arguments: dict[str, Any]) -> str:
        result = await session.call_tool(name, arguments)
        text = render_tool_content(result.content)
        if result.isError:
            return f"Error: {text}" if text else f"Error: tool '{name}' failed"
        return text

    return _invoke


def render_tool_content(content: Iterable[Any]) -> str:
    """Flatten MCP content blocks to text; non-text blocks are summarised."""
    parts: list[str] = []
    for block in content:
        text = getattr(block, "text", None)
        if text is not None:
            parts.append(str(text))
        else:
            parts.append(f"[{getattr(block, 'type', 'content')}]")
    return "\n".join(parts)


@asynccontextmanager
async def connect_tool_server(url: str, timeout: float = 30.0) -> AsyncIterator[ToolRegistry]:
    """Open an MCP session at *url*, list its tools, and yield a registry.

    The session stays open for the lifetime of the context.

    Raises:
        ToolProviderError: If the server cannot be reached, initialised, or listed.
    """
    logger.info("Retrieving tools from %s", url)
    async with AsyncExitStack() as stack:
        try:
            read_stream, write_stream = await stack.enter_async_context(
                sse_client(url, timeout=timeout)
            )
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
            listing = await session.list_tools()
        except Exception as exc:
            raise ToolProviderError(f"Cannot load tools from {url}: {exc}") from exc

        registry = ToolRegistry.from_mcp(listing.tools, session)
        logger.info("Loaded %d tools: %s", len(registry), ", ".join(registry.names()))
        yield registry
