"""Tests for ChatSession — message assembly and the tool-use loop."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from ragchat.agent.session import ChatSession
from ragchat.config import GenerationCfg
from ragchat.errors import CompletionError
from ragchat.models import ConversationTurn, Role
from ragchat.tools.registry import ToolBinding, ToolRegistry


def _reply(content: str | None = None, tool_calls=None):
    return SimpleNamespace(content=content, tool_calls=tool_calls)


def _tool_call(call_id: str, name: str, arguments: str):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _registry(output: str = "3000") -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        ToolBinding("get_price", "Price lookup", {"type": "object"}, AsyncMock(return_value=output))
    )
    return registry


@pytest.mark.asyncio
async def test_plain_reply_single_call():
    mock = AsyncMock(return_value=_reply("Hello!"))
    session = ChatSession(GenerationCfg(), "Be brief.")
    history = [
        ConversationTurn(Role.USER, "earlier question"),
        ConversationTurn(Role.ASSISTANT, "earlier answer"),
    ]

    with patch("ragchat.agent.session.acomplete", mock):
        reply = await session.respond("hi", history)

    assert reply == "Hello!"
    messages = mock.call_args.args[1]
    assert messages == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "earlier question"},
        {"role": "assistant", "content": "earlier answer"},
        {"role": "user", "content": "hi"},
    ]
    assert mock.call_args.kwargs["tools"] is None


@pytest.mark.asyncio
async def test_history_is_not_modified():
    history = [ConversationTurn(Role.USER, "q")]
    with patch("ragchat.agent.session.acomplete", AsyncMock(return_value=_reply("a"))):
        await ChatSession(GenerationCfg(), "p").respond("next", history)
    assert history == [ConversationTurn(Role.USER, "q")]


@pytest.mark.asyncio
async def test_tool_call_then_final_reply():
    registry = _registry()
    mock = AsyncMock(
        side_effect=[
            _reply(None, [_tool_call("call_1", "get_price", '{"token": "ETH"}')]),
            _reply("ETH is 3000."),
        ]
    )
    session = ChatSession(GenerationCfg(), "p", tools=registry, api_key="sk-ant-test")

    with patch("ragchat.agent.session.acomplete", mock):
        reply = await session.respond("price?", [])

    assert reply == "ETH is 3000."
    assert mock.await_count == 2
    assert mock.call_args.kwargs["tools"][0]["function"]["name"] == "get_price"
    assert mock.call_args.kwargs["api_key"] == "sk-ant-test"

    second_messages = mock.call_args_list[1].args[1]
    assistant, tool = second_messages[-2], second_messages[-1]
    assert assistant["tool_calls"][0]["function"]["name"] == "get_price"
    assert tool == {"role": "tool", "tool_call_id": "call_1", "content": "3000"}
    registry.bindings["get_price"].invoke.assert_awaited_once_with({"token": "ETH"})


@pytest.mark.asyncio
async def test_turn_cap_raises_completion_error():
    looping = _reply(None, [_tool_call("c", "get_price", "{}")])
    mock = AsyncMock(return_value=looping)
    session = ChatSession(GenerationCfg(max_turns=3), "p", tools=_registry())

    with patch("ragchat.agent.session.acomplete", mock):
        with pytest.raises(CompletionError, match="3 turns"):
            await session.respond("loop", [])

    assert mock.await_count == 3


@pytest.mark.asyncio
async def test_completion_failure_propagates():
    mock = AsyncMock(side_effect=CompletionError("service unavailable"))
    with patch("ragchat.agent.session.acomplete", mock):
        with pytest.raises(CompletionError, match="service unavailable"):
            await ChatSession(GenerationCfg(), "p").respond("hi", [])


@pytest.mark.asyncio
async def test_empty_preamble_sends_no_system_message():
    mock = AsyncMock(return_value=_reply("ok"))
    with patch("ragchat.agent.session.acomplete", mock):
        await ChatSession(GenerationCfg(), "").respond("hi", [])
    assert mock.call_args.args[1] == [{"role": "user", "content": "hi"}]
