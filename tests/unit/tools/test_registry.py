"""Tests for ToolRegistry and the MCP tool-server connection."""

from __future__ import annotations

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragchat.errors import ToolProviderError
from ragchat.tools.registry import (
    ToolBinding,
    ToolRegistry,
    connect_tool_server,
    render_tool_content,
)


def _binding(name: str = "get_price", output: str = "42", error: Exception | None = None):
    invoke = AsyncMock(return_value=output, side_effect=error)
    return ToolBinding(
        name=name,
        description=f"{name} tool",
        input_schema={"type": "object", "properties": {"token": {"type": "string"}}},
        invoke=invoke,
    )


def _mcp_tool(name: str, description: str | None = "desc", schema=None):
    return SimpleNamespace(name=name, description=description, inputSchema=schema)


def _text(text: str):
    return SimpleNamespace(type="text", text=text)


# ------------------------------------------------------------------
# ToolRegistry
# ------------------------------------------------------------------


def test_schema_is_function_descriptor():
    schema = _binding().schema()
    assert schema["type"] == "function"
    assert schema["function"]["name"] == "get_price"
    assert schema["function"]["parameters"]["properties"]["token"]["type"] == "string"


def test_empty_input_schema_defaults_to_object():
    binding = ToolBinding("ping", "", {}, AsyncMock())
    assert binding.schema()["function"]["parameters"] == {"type": "object", "properties": {}}


def test_duplicate_registration_keeps_first():
    registry = ToolRegistry()
    first, second = _binding(output="first"), _binding(output="second")
    registry.register(first)
    registry.register(second)

    assert len(registry) == 1
    assert registry.bindings["get_price"] is first


@pytest.mark.asyncio
async def test_call_parses_json_arguments():
    binding = _binding()
    registry = ToolRegistry({"get_price": binding})

    output = await registry.call("get_price", '{"token": "ETH"}')

    assert output == "42"
    binding.invoke.assert_awaited_once_with({"token": "ETH"})


@pytest.mark.asyncio
async def test_call_empty_arguments_become_empty_dict():
    binding = _binding()
    registry = ToolRegistry({"get_price": binding})

    await registry.call("get_price", "")

    binding.invoke.assert_awaited_once_with({})


@pytest.mark.asyncio
async def test_call_unknown_tool_returns_error_text():
    output = await ToolRegistry().call("missing", {})
    assert output.startswith("Error:")
    assert "missing" in output


@pytest.mark.asyncio
async def test_call_invalid_json_returns_error_text():
    registry = ToolRegistry({"get_price": _binding()})
    output = await registry.call("get_price", "{not json")
    assert "invalid JSON" in output


@pytest.mark.asyncio
async def test_call_tool_exception_returns_error_text():
    registry = ToolRegistry({"get_price": _binding(error=RuntimeError("upstream 500"))})
    output = await registry.call("get_price", {})
    assert output.startswith("Error:")
    assert "upstream 500" in output


# ------------------------------------------------------------------
# MCP adaptation
# ------------------------------------------------------------------


def test_render_tool_content_joins_text_and_summarises_others():
    blocks = [_text("line one"), SimpleNamespace(type="image"), _text("line two")]
    assert render_tool_content(blocks) == "line one\n[image]\nline two"


@pytest.mark.asyncio
async def test_from_mcp_binds_tools_to_session():
    session = MagicMock()
    session.call_tool = AsyncMock(
        return_value=SimpleNamespace(content=[_text("3000")], isError=False)
    )
    registry = ToolRegistry.from_mcp(
        [_mcp_tool("get_price", schema={"type": "object"}), _mcp_tool("ping", description=None)],
        session,
    )

    assert registry.names() == ["get_price", "ping"]
    assert registry.bindings["ping"].description == ""
    assert await registry.call("get_price", {"token": "ETH"}) == "3000"
    session.call_tool.assert_awaited_once_with("get_price", {"token": "ETH"})


@pytest.mark.asyncio
async def test_mcp_error_result_is_reported_as_text():
    session = MagicMock()
    session.call_tool = AsyncMock(
        return_value=SimpleNamespace(content=[_text("bad token")], isError=True)
    )
    registry = ToolRegistry.from_mcp([_mcp_tool("get_price")], session)

    assert await registry.call("get_price", {}) == "Error: bad token"


# ------------------------------------------------------------------
# connect_tool_server()
# ------------------------------------------------------------------


@asynccontextmanager
async def _fake_sse(url, timeout=30.0):
    yield MagicMock(), MagicMock()


class _FakeClientSession:
    def __init__(self, read_stream, write_stream):
        self.initialize = AsyncMock()
        self.list_tools = AsyncMock(
            return_value=SimpleNamespace(tools=[_mcp_tool("get_price"), _mcp_tool("ping")])
        )
        self.call_tool = AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.mark.asyncio
async def test_connect_tool_server_yields_registry():
    with (
        patch("ragchat.tools.registry.sse_client", _fake_sse),
        patch("ragchat.tools.registry.ClientSession", _FakeClientSession),
    ):
        async with connect_tool_server("http://127.0.0.1:4000/sse") as registry:
            assert registry.names() == ["get_price", "ping"]


@pytest.mark.asyncio
async def test_connect_tool_server_unreachable_raises():
    @asynccontextmanager
    async def _refused(url, timeout=30.0):
        raise ConnectionError("connection refused")
        yield  # pragma: no cover

    with patch("ragchat.tools.registry.sse_client", _refused):
        with pytest.raises(ToolProviderError, match="connection refused"):
            async with connect_tool_server("http://127.0.0.1:4000/sse"):
                pass
