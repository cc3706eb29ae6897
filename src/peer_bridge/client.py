"""Subprocess-backed MCP client session to the peer process.

The peer is spawned with :func:`asyncio.create_subprocess_exec` and spoken to
over newline-delimited JSON-RPC on its stdio pipes. An :class:`mcp.ClientSession`
runs on top of those pipes inside a single long-lived session task, because
the session's anyio task group must be entered and exited by the same task.
Tests replace the transport through the ``session_factory`` hook.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Optional, Protocol

import anyio
from mcp import ClientSession, types
from mcp.shared.message import SessionMessage
from pydantic import BaseModel, ValidationError

from tool_host import __version__
from tool_host.constants import SERVICE_NAME
from tool_host.logging import get_logger

from .errors import (
    BridgeError,
    BridgeErrorCode,
    BridgeNotConnectedError,
    BridgeTimeoutError,
    DeferredResultUnsupportedError,
    PeerBinaryNotFoundError,
    UnexpectedResultShapeError,
)
from .models import BridgeConnectionStatus, RemoteToolDescriptor

logger = get_logger(__name__)

STREAM_LIMIT_BYTES = 16 * 1024 * 1024
SHUTDOWN_GRACE_SECONDS = 2.0
MAX_LIST_PAGES = 100

MessageHandler = Callable[[Any], Awaitable[None]]


class PeerSession(Protocol):
    """Live session to the peer as seen by :class:`PeerBridgeClient`."""

    pid: Optional[int]
    closed: asyncio.Event

    async def list_tools(self, cursor: Optional[str] = None) -> Any: ...

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> Any: ...


SessionFactory = Callable[
    [Sequence[str], Optional[Mapping[str, str]], MessageHandler],
    AbstractAsyncContextManager[PeerSession],
]


class StdioPeerSession:
    """:class:`PeerSession` backed by an initialised ``mcp.ClientSession``."""

    def __init__(self, session: ClientSession, *, pid: Optional[int], closed: asyncio.Event):
        self._session = session
        self.pid = pid
        self.closed = closed

    async def list_tools(self, cursor: Optional[str] = None) -> types.ListToolsResult:
        if cursor is None:
            return await self._session.list_tools()
        return await self._session.list_tools(cursor=cursor)

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> Any:
        # Parsed as a bare ``Result`` so deferred task replies survive decoding
        # and can be told apart from immediate results.
        request = types.ClientRequest(
            types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(name=name, arguments=dict(arguments)),
            )
        )
        return await self._session.send_request(request, types.Result)


async def _pump_stdout(
    process: asyncio.subprocess.Process,
    sink: Any,
    closed: asyncio.Event,
) -> None:
    assert process.stdout is not None
    try:
        async with sink:
            while True:
                try:
                    line = await process.stdout.readline()
                except ValueError as exc:
                    logger.warning("bridge.peer.line_too_long", error=str(exc))
                    break
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    message = types.JSONRPCMessage.model_validate_json(text)
                except ValidationError as exc:
                    logger.debug("bridge.peer.invalid_message", error=str(exc))
                    continue
                await sink.send(SessionMessage(message))
    except (anyio.ClosedResourceError, anyio.BrokenResourceError):
        pass
    finally:
        closed.set()


async def _pump_stdin(process: asyncio.subprocess.Process, source: Any) -> None:
    assert process.stdin is not None
    try:
        async with source:
            async for session_message in source:
                payload = session_message.message.model_dump_json(
                    by_alias=True, exclude_none=True
                )
                process.stdin.write((payload + "\n").encode("utf-8"))
                await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError) as exc:
        logger.warning("bridge.peer.stdin_closed", error=str(exc))
    except (anyio.ClosedResourceError, anyio.EndOfStream):
        pass


async def _drain_stderr(process: asyncio.subprocess.Process) -> None:
    assert process.stderr is not None
    while True:
        try:
            line = await process.stderr.readline()
        except ValueError:
            continue
        if not line:
            return
        logger.debug("bridge.peer.stderr", line=line.decode("utf-8", errors="replace").rstrip())


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    if process.stdin is not None:
        process.stdin.close()
    try:
        await asyncio.wait_for(process.wait(), SHUTDOWN_GRACE_SECONDS)
        return
    except asyncio.TimeoutError:
        pass
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), SHUTDOWN_GRACE_SECONDS)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


@asynccontextmanager
async def open_stdio_peer(
    command: Sequence[str],
    env: Optional[Mapping[str, str]],
    message_handler: MessageHandler,
) -> AsyncIterator[PeerSession]:
    """Spawn the peer, run the MCP handshake and yield the live session."""

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env={**os.environ, **(env or {})},
            limit=STREAM_LIMIT_BYTES,
        )
    except FileNotFoundError as exc:
        raise PeerBinaryNotFoundError(f"Peer binary not found: {command[0]}") from exc
    except OSError as exc:
        raise BridgeError(
            f"Failed to spawn peer process: {exc}", code=BridgeErrorCode.UNAVAILABLE
        ) from exc

    read_writer, read_stream = anyio.create_memory_object_stream(0)
    write_stream, write_reader = anyio.create_memory_object_stream(0)
    closed = asyncio.Event()
    pumps = [
        asyncio.create_task(_pump_stdout(process, read_writer, closed)),
        asyncio.create_task(_pump_stdin(process, write_reader)),
        asyncio.create_task(_drain_stderr(process)),
    ]
    try:
        async with ClientSession(
            read_stream,
            write_stream,
            message_handler=message_handler,
            client_info=types.Implementation(name=SERVICE_NAME, version=__version__),
        ) as session:
            await session.initialize()
            yield StdioPeerSession(session, pid=process.pid, closed=closed)
    finally:
        for task in pumps:
            task.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)
        await _terminate(process)
        logger.debug("bridge.peer.exited", pid=process.pid, returncode=process.returncode)


def normalize_call_result(result: Any) -> dict[str, Any]:
    """Return an immediate tool result as a camelCase dict or raise on other shapes."""

    if isinstance(result, BaseModel):
        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif isinstance(result, Mapping):
        payload = dict(result)
    else:
        raise UnexpectedResultShapeError(
            f"Unexpected result shape from peer: {type(result).__name__}"
        )

    if "task" in payload:
        raise DeferredResultUnsupportedError(
            "Peer returned a deferred task result, which is not supported"
        )
    if not isinstance(payload.get("content"), list):
        raise UnexpectedResultShapeError(
            "Unexpected result shape from peer: reply has no content list"
        )
    if not all(isinstance(block, Mapping) for block in payload["content"]):
        raise UnexpectedResultShapeError(
            "Unexpected result shape from peer: content blocks must be objects"
        )
    return payload


class PeerBridgeClient:
    """One logical session to the peer process."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        connect_timeout_ms: int = 15000,
        list_timeout_ms: int = 15000,
        call_timeout_ms: int = 60000,
        env: Optional[Mapping[str, str]] = None,
        on_tools_changed: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self._command = tuple(command)
        self._connect_timeout_ms = connect_timeout_ms
        self._list_timeout_ms = list_timeout_ms
        self._call_timeout_ms = call_timeout_ms
        self._env = dict(env) if env else None
        self._on_tools_changed = on_tools_changed
        self._on_close = on_close
        self._session_factory: SessionFactory = session_factory or open_stdio_peer

        self._peer: Optional[PeerSession] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop: Optional[asyncio.Event] = None
        self._connecting: Optional[asyncio.Task[None]] = None
        self._last_error: Optional[str] = None
        self._tools_cache: Optional[list[RemoteToolDescriptor]] = None

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    @property
    def connected(self) -> bool:
        return self._peer is not None

    def set_callbacks(
        self,
        *,
        on_tools_changed: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._on_tools_changed = on_tools_changed
        self._on_close = on_close

    def get_status(self) -> BridgeConnectionStatus:
        peer = self._peer
        return BridgeConnectionStatus(
            connected=peer is not None,
            peer_pid=peer.pid if peer is not None else None,
            last_error=self._last_error,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def connect_once(self) -> None:
        """Connect unless already connected; concurrent callers share one attempt."""

        if self._peer is not None:
            return
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        await asyncio.shield(self._connecting)

    async def _connect(self) -> None:
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[PeerSession] = loop.create_future()
        stop = asyncio.Event()
        self._stop = stop
        self._runner = asyncio.create_task(self._run_session(ready, stop))
        try:
            peer = await asyncio.wait_for(
                asyncio.shield(ready), timeout=self._connect_timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            message = f"Peer handshake timed out after {self._connect_timeout_ms}ms"
            await self._teardown(graceful=False)
            self._last_error = message
            logger.warning("bridge.client.connect_failed", error=message)
            raise BridgeTimeoutError(message) from None
        except Exception as exc:
            await self._teardown(graceful=False)
            self._last_error = str(exc) or type(exc).__name__
            logger.warning("bridge.client.connect_failed", error=self._last_error)
            raise
        finally:
            self._connecting = None

        self._peer = peer
        self._last_error = None
        logger.info("bridge.client.connected", pid=peer.pid, command=list(self._command))

    async def _run_session(self, ready: asyncio.Future[PeerSession], stop: asyncio.Event) -> None:
        try:
            async with self._session_factory(
                self._command, self._env, self._handle_message
            ) as peer:
                if not ready.done():
                    ready.set_result(peer)
                stop_waiter = asyncio.create_task(stop.wait())
                closed_waiter = asyncio.create_task(peer.closed.wait())
                try:
                    await asyncio.wait(
                        {stop_waiter, closed_waiter}, return_when=asyncio.FIRST_COMPLETED
                    )
                finally:
                    stop_waiter.cancel()
                    closed_waiter.cancel()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - reported through ready or the close path
            if not ready.done():
                ready.set_exception(exc)
                return
            logger.warning("bridge.client.session_failed", error=str(exc))

        if not stop.is_set():
            self._handle_unexpected_close()

    def _handle_unexpected_close(self) -> None:
        if self._runner is not asyncio.current_task():
            return
        self._peer = None
        self._runner = None
        self._stop = None
        self._tools_cache = None
        self._last_error = "Peer connection closed unexpectedly"
        logger.warning("bridge.client.connection_closed")
        if self._on_close is not None:
            self._on_close()

    async def _teardown(self, *, graceful: bool) -> None:
        runner, stop = self._runner, self._stop
        self._peer = None
        self._runner = None
        self._stop = None
        self._tools_cache = None
        if stop is not None:
            stop.set()
        if runner is None or runner.done():
            return
        if graceful:
            done, _ = await asyncio.wait({runner}, timeout=SHUTDOWN_GRACE_SECONDS * 2)
            if done:
                return
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)

    async def disconnect(self) -> None:
        """Tear the session down; a no-op when nothing is connected."""

        if self._connecting is not None:
            # Let an in-flight attempt settle; its failure is already recorded.
            with contextlib.suppress(Exception):
                await asyncio.shield(self._connecting)
        if self._peer is None and self._runner is None:
            return
        await self._teardown(graceful=True)
        logger.info("bridge.client.disconnected")

    async def _handle_message(self, message: Any) -> None:
        if isinstance(message, Exception):
            logger.warning("bridge.client.transport_error", error=str(message))
            return
        if isinstance(getattr(message, "root", None), types.ToolListChangedNotification):
            self._tools_cache = None
            logger.info("bridge.client.tools_changed")
            if self._on_tools_changed is not None:
                self._on_tools_changed()

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #
    def _require_peer(self) -> PeerSession:
        if self._peer is None:
            raise BridgeNotConnectedError()
        return self._peer

    async def list_tools(self, *, refresh: bool = True) -> list[RemoteToolDescriptor]:
        peer = self._require_peer()
        if not refresh and self._tools_cache is not None:
            return list(self._tools_cache)
        try:
            tools = await asyncio.wait_for(
                self._fetch_catalog(peer), timeout=self._list_timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            raise BridgeTimeoutError(
                f"Listing peer tools timed out after {self._list_timeout_ms}ms"
            ) from None
        self._tools_cache = tools
        return list(tools)

    async def _fetch_catalog(self, peer: PeerSession) -> list[RemoteToolDescriptor]:
        descriptors: list[RemoteToolDescriptor] = []
        cursor: Optional[str] = None
        seen: set[str] = set()
        for _ in range(MAX_LIST_PAGES):
            page = await peer.list_tools(cursor)
            descriptors.extend(
                RemoteToolDescriptor.from_tool(tool) for tool in getattr(page, "tools", None) or []
            )
            cursor = getattr(page, "nextCursor", None)
            if not cursor or cursor in seen:
                break
            seen.add(cursor)
        return descriptors

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        peer = self._require_peer()
        effective_ms = timeout_ms or self._call_timeout_ms
        try:
            result = await asyncio.wait_for(
                peer.call_tool(name, dict(arguments or {})), timeout=effective_ms / 1000
            )
        except asyncio.TimeoutError:
            raise BridgeTimeoutError(
                f"Peer tool '{name}' timed out after {effective_ms}ms"
            ) from None
        return normalize_call_result(result)


__all__ = [
    "PeerBridgeClient",
    "PeerSession",
    "SessionFactory",
    "StdioPeerSession",
    "normalize_call_result",
    "open_stdio_peer",
]
