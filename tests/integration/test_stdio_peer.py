"""End-to-end check of the subprocess transport against a real MCP server."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from peer_bridge.client import PeerBridgeClient
from peer_bridge.errors import (
    BridgeError,
    BridgeErrorCode,
    PeerBinaryNotFoundError,
    classify_bridge_error,
)

PEER_SCRIPT = Path(__file__).resolve().parent.parent / "fixtures" / "echo_peer.py"


def test_list_and_call_over_stdio() -> None:
    client = PeerBridgeClient(
        (sys.executable, str(PEER_SCRIPT)),
        connect_timeout_ms=30000,
        list_timeout_ms=10000,
        call_timeout_ms=10000,
    )

    async def scenario():
        await client.connect_once()
        try:
            status = client.get_status()
            tools = await client.list_tools()
            result = await client.call_tool("Echo", {"text": "hello"})
        finally:
            await client.disconnect()
        return status, tools, result

    status, tools, result = asyncio.run(scenario())

    assert status.connected is True
    assert status.peer_pid is not None
    assert {tool.name for tool in tools} >= {"Echo", "ListWindows"}
    echo = next(tool for tool in tools if tool.name == "Echo")
    assert echo.input_schema["properties"]["text"]["type"] == "string"
    assert result["content"][0]["text"] == "hello"
    assert client.connected is False


def test_missing_peer_binary() -> None:
    client = PeerBridgeClient(("definitely-not-an-installed-peer-4711",), connect_timeout_ms=5000)

    with pytest.raises(PeerBinaryNotFoundError, match="Peer binary not found"):
        asyncio.run(client.connect_once())

    assert client.get_status().last_error.startswith("Peer binary not found")


def test_non_executable_peer_is_unavailable_not_approval(tmp_path: Path) -> None:
    peer = tmp_path / "peer"
    peer.write_text("#!/bin/sh\nexit 0\n")
    peer.chmod(0o644)
    client = PeerBridgeClient((str(peer),), connect_timeout_ms=5000)

    with pytest.raises(BridgeError) as excinfo:
        asyncio.run(client.connect_once())

    assert "Failed to spawn peer process" in str(excinfo.value)
    assert classify_bridge_error(excinfo.value, "list", connected=False) is BridgeErrorCode.UNAVAILABLE
