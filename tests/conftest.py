"""Global test fixtures: in-process stand-ins for the peer session and probe."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Callable, Optional

import pytest

from peer_bridge.client import PeerBridgeClient
from peer_bridge.discovery import PeerAvailability


def make_tool(name: str, description: str = "", **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": name,
        "description": description or f"{name} tool",
        "inputSchema": extra.pop("inputSchema", {"type": "object", "properties": {}}),
    }
    payload.update(extra)
    return payload


class FakePeerSession:
    """Scripted peer: serves ``tools`` and records every call."""

    def __init__(self, tools: Optional[list[dict[str, Any]]] = None, *, pid: int = 4242) -> None:
        self.pid = pid
        self.closed = asyncio.Event()
        self.tools = list(tools or [])
        self.page_size: Optional[int] = None
        self.list_delay = 0.0
        self.call_delay = 0.0
        self.list_error: Optional[BaseException] = None
        self.call_error: Optional[BaseException] = None
        self.call_results: dict[str, Any] = {}
        self.list_calls = 0
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self, cursor: Optional[str] = None) -> Any:
        self.list_calls += 1
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        if self.page_size is None:
            return SimpleNamespace(tools=list(self.tools), nextCursor=None)
        start = int(cursor or 0)
        end = start + self.page_size
        next_cursor = str(end) if end < len(self.tools) else None
        return SimpleNamespace(tools=self.tools[start:end], nextCursor=next_cursor)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, dict(arguments)))
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        if self.call_error is not None:
            raise self.call_error
        if name in self.call_results:
            return self.call_results[name]
        return {"content": [{"type": "text", "text": f"{name} ok"}], "isError": False}


class FakeSessionFactory:
    """Drop-in for ``open_stdio_peer`` that never spawns a process."""

    def __init__(self, session: Optional[FakePeerSession] = None) -> None:
        self.session = session or FakePeerSession()
        self.handshake_delay = 0.0
        self.error: Optional[BaseException] = None
        self.spawn_count = 0
        self.exit_count = 0
        self.command: Optional[tuple[str, ...]] = None
        self.message_handler: Optional[Callable[[Any], Any]] = None

    @asynccontextmanager
    async def __call__(self, command, env, message_handler):
        self.spawn_count += 1
        self.command = tuple(command)
        self.message_handler = message_handler
        if self.handshake_delay:
            await asyncio.sleep(self.handshake_delay)
        if self.error is not None:
            raise self.error
        try:
            yield self.session
        finally:
            self.exit_count += 1


class FakeProbe:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.calls = 0

    async def __call__(self) -> PeerAvailability:
        self.calls += 1
        if self.available:
            return PeerAvailability(available=True, path="/usr/bin/mcpbridge")
        return PeerAvailability(available=False, issues=["xcrun exited with 1"])


def client_factory_for(factory: FakeSessionFactory, **timeouts: int):
    def _build(*, on_tools_changed, on_close) -> PeerBridgeClient:
        return PeerBridgeClient(
            ("xcrun", "mcpbridge"),
            connect_timeout_ms=timeouts.get("connect_timeout_ms", 1000),
            list_timeout_ms=timeouts.get("list_timeout_ms", 1000),
            call_timeout_ms=timeouts.get("call_timeout_ms", 1000),
            on_tools_changed=on_tools_changed,
            on_close=on_close,
            session_factory=factory,
        )

    return _build


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds or ``timeout`` elapses."""

    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture()
def peer_fakes() -> SimpleNamespace:
    """Namespace of fake classes and helpers shared by the bridge tests."""

    return SimpleNamespace(
        Session=FakePeerSession,
        SessionFactory=FakeSessionFactory,
        Probe=FakeProbe,
        make_tool=make_tool,
        client_factory_for=client_factory_for,
        eventually=eventually,
    )


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "BRIDGE_ENABLED",
        "BRIDGE_COMMAND",
        "BRIDGE_PROBE_COMMAND",
        "BRIDGE_TOOL_PREFIX",
        "BRIDGE_SYNC_ON_STARTUP",
        "BRIDGE_DEBUG_TOOLS",
        "LOG_LEVEL",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)
