"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture
def rag_dir(tmp_path: Path) -> Path:
    """A docs/ tree with one markdown file, one Solidity file, and one ignored file."""
    root = tmp_path / "docs"
    (root / "contracts").mkdir(parents=True)
    (root / "guide.md").write_text("# Guide\n\nSwaps route through pools.\n", encoding="utf-8")
    (root / "contracts" / "Pool.sol").write_text(
        "pragma solidity ^0.8.0;\n\ncontract Pool {\n    uint256 public reserve;\n}\n",
        encoding="utf-8",
    )
    (root / "notes.txt").write_text("not indexed", encoding="utf-8")
    return root


@pytest.fixture
def base_env(tmp_path: Path) -> dict[str, str]:
    """A complete, valid environment for load_config(env=...)."""
    docs = tmp_path / "docs"
    src = tmp_path / "src"
    return {
        "MCP_SERVER_ADDRESS": "127.0.0.1",
        "MCP_SERVER_PORT": "4000",
        "ANTHROPIC_API_KEY": "sk-ant-test",
        "OPENAI_API_KEY": "sk-test",
        "RAGCHAT_PREAMBLE": "You are a helpful assistant.",
        "RAGCHAT_RAG_DIRS": os.pathsep.join([str(docs), str(src)]),
    }
