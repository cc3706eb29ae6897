"""Orchestration surface for the peer bridge.

One :class:`BridgeCoordinator` is built per host process by the application
factory. It gates every peer round-trip on the administrative ``enabled``
flag and the discovery probe, collapses concurrent syncs onto one in-flight
task, and turns client failures into structured tool results.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Literal, Optional, Protocol

from prometheus_client import Counter, Gauge
from pydantic import ValidationError

from tool_host.logging import get_logger
from tool_host.tools.responses import ToolResponse, json_response, tool_error

from .client import PeerBridgeClient
from .discovery import PeerAvailability, PeerProbe, unavailable_message
from .errors import (
    BridgeError,
    BridgeErrorCode,
    BridgeOperation,
    FeatureNotEnabledError,
    PeerBinaryNotFoundError,
    UnexpectedResultShapeError,
    classify_bridge_error,
)
from .models import BridgeStatus, SyncResult
from .registry import DEFAULT_TOOL_PREFIX, HostCatalog, ProxyRegistry

logger = get_logger(__name__)

SyncReason = Literal["startup", "manual", "catalog_changed"]

_PROXIED_TOOLS = Gauge(
    "peer_bridge_proxied_tools",
    "Number of peer tools currently proxied into the host catalog.",
)
_SYNC_COUNT = Counter(
    "peer_bridge_sync_total",
    "Peer catalog synchronisations labelled by reason and outcome.",
    ("reason", "status"),
)


class NotifyingCatalog(HostCatalog, Protocol):
    def notify_catalog_changed(self) -> None: ...


class ClientFactory(Protocol):
    def __call__(
        self,
        *,
        on_tools_changed: Callable[[], None],
        on_close: Callable[[], None],
    ) -> PeerBridgeClient: ...


class BridgeCoordinator:
    """Drives the peer client and proxy registry on behalf of the host."""

    def __init__(
        self,
        catalog: NotifyingCatalog,
        client_factory: ClientFactory,
        *,
        probe: PeerProbe,
        enabled: bool = False,
        prefix: str = DEFAULT_TOOL_PREFIX,
        peer_command: Sequence[str] = (),
        probe_command: Sequence[str] = (),
    ) -> None:
        self._catalog = catalog
        self._registry = ProxyRegistry(catalog, prefix=prefix)
        self._client = client_factory(
            on_tools_changed=self._handle_tools_changed,
            on_close=self._handle_connection_closed,
        )
        self._probe = probe
        self._enabled = enabled
        self._peer_command = tuple(peer_command)
        self._unavailable_message = unavailable_message(self._peer_command, probe_command)

        self._available: Optional[bool] = None
        self._peer_path: Optional[str] = None
        self._last_error: Optional[str] = None
        self._sync_in_flight: Optional[asyncio.Task[SyncResult]] = None
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> ProxyRegistry:
        return self._registry

    @property
    def client(self) -> PeerBridgeClient:
        return self._client

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("bridge.enabled_changed", enabled=enabled)

    def status(self) -> BridgeStatus:
        client_status = self._client.get_status()
        return BridgeStatus(
            enabled=self._enabled,
            available=self._available,
            connected=client_status.connected,
            peer_pid=client_status.peer_pid,
            peer_command=list(self._peer_command),
            peer_path=self._peer_path,
            proxied_tool_count=self._registry.get_registered_count(),
            proxied_tools=self._registry.get_registered_tool_names(),
            last_error=self._last_error or client_status.last_error,
        )

    # ------------------------------------------------------------------ #
    # Synchronisation
    # ------------------------------------------------------------------ #
    async def sync(self, reason: SyncReason = "manual") -> SyncResult:
        """Reconcile the peer catalog into proxy tools.

        Concurrent callers share the in-flight sync. Failures are recovered
        here and reported through ``last_error``; the only exception that
        escapes is :class:`FeatureNotEnabledError` for a disabled bridge.
        """

        if not self._enabled:
            raise FeatureNotEnabledError()
        if self._sync_in_flight is None:
            self._sync_in_flight = asyncio.ensure_future(self._run_sync(reason))
        return await asyncio.shield(self._sync_in_flight)

    async def _run_sync(self, reason: SyncReason) -> SyncResult:
        try:
            availability = await self._probe()
            self._record_availability(availability)
            if not availability.available:
                removed = self._registry.clear()
                self._last_error = self._unavailable_message
                self._after_sync(reason, "unavailable")
                logger.warning(
                    "bridge.sync.peer_unavailable",
                    reason=reason,
                    removed=removed,
                    issues=availability.issues,
                )
                return SyncResult(removed=removed)

            await self._client.connect_once()
            remote_tools = await self._client.list_tools(refresh=True)
            result = self._registry.sync(remote_tools, self._invoke_proxy)
            self._last_error = None
            self._after_sync(reason, "success")
            if reason != "catalog_changed":
                logger.info("bridge.sync.complete", reason=reason, **result.model_dump())
            return result
        except Exception as exc:  # noqa: BLE001 - sync failures are recovered here
            self._last_error = str(exc) or type(exc).__name__
            logger.warning("bridge.sync.failed", reason=reason, error=self._last_error)
            self._registry.clear()
            self._after_sync(reason, "error")
            return SyncResult()
        finally:
            self._sync_in_flight = None

    def _after_sync(self, reason: SyncReason, status_label: str) -> None:
        _PROXIED_TOOLS.set(self._registry.get_registered_count())
        _SYNC_COUNT.labels(reason, status_label).inc()
        self._catalog.notify_catalog_changed()

    def schedule_sync(self, reason: SyncReason) -> asyncio.Task[None]:
        """Start a background sync whose failures are only logged."""

        task = asyncio.ensure_future(self._background_sync(reason))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _background_sync(self, reason: SyncReason) -> None:
        try:
            await self.sync(reason)
        except BridgeError as exc:
            logger.debug("bridge.sync.skipped", reason=reason, error=str(exc))

    def _handle_tools_changed(self) -> None:
        if not self._enabled or self._closed:
            return
        self.schedule_sync("catalog_changed")

    def _handle_connection_closed(self) -> None:
        removed = self._registry.clear()
        _PROXIED_TOOLS.set(0)
        logger.warning("bridge.connection_closed", removed=removed)
        if removed:
            self._catalog.notify_catalog_changed()

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    async def disconnect(self) -> None:
        self._registry.clear()
        _PROXIED_TOOLS.set(0)
        self._catalog.notify_catalog_changed()
        await self._client.disconnect()

    async def shutdown(self) -> None:
        """Release the registry and the peer session; the coordinator stays unusable."""

        self._closed = True
        pending = [task for task in self._background if not task.done()]
        if self._sync_in_flight is not None:
            pending.append(self._sync_in_flight)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._registry.clear()
        _PROXIED_TOOLS.set(0)
        await self._client.disconnect()
        logger.info("bridge.shutdown")

    def _record_availability(self, availability: PeerAvailability) -> None:
        self._available = availability.available
        self._peer_path = availability.path if availability.available else None

    async def _ensure_connected(self) -> None:
        if self._client.connected:
            return
        availability = await self._probe()
        self._record_availability(availability)
        if not availability.available:
            raise PeerBinaryNotFoundError(self._unavailable_message)
        await self._client.connect_once()

    # ------------------------------------------------------------------ #
    # Caller-facing operations
    # ------------------------------------------------------------------ #
    async def list_tools(self, refresh: bool = True) -> ToolResponse:
        if not self._enabled:
            return self._failure(FeatureNotEnabledError(), "list")
        try:
            await self._ensure_connected()
            tools = await self._client.list_tools(refresh=refresh)
        except Exception as exc:  # noqa: BLE001 - surfaced as a structured error
            return self._failure(exc, "list")
        return json_response(
            {"toolCount": len(tools), "tools": [tool.to_dict() for tool in tools]}
        )

    async def call_tool(
        self,
        remote_tool: str,
        arguments: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> ToolResponse:
        if not self._enabled:
            return self._failure(FeatureNotEnabledError(), "call")
        try:
            await self._ensure_connected()
            result = await self._client.call_tool(
                remote_tool, dict(arguments or {}), timeout_ms=timeout_ms
            )
            return ToolResponse.model_validate(result)
        except ValidationError as exc:
            shape_error = UnexpectedResultShapeError(
                f"Unexpected result shape from peer: {exc.error_count()} invalid field(s)"
            )
            return self._failure(shape_error, "call", remoteTool=remote_tool)
        except Exception as exc:  # noqa: BLE001 - surfaced as a structured error
            return self._failure(exc, "call", remoteTool=remote_tool)

    async def _invoke_proxy(self, remote_name: str, arguments: dict[str, Any]) -> ToolResponse:
        return await self.call_tool(remote_name, arguments)

    async def status_tool(self) -> ToolResponse:
        return json_response(self.status().model_dump(mode="json", by_alias=True))

    async def sync_tool(self) -> ToolResponse:
        try:
            result = await self.sync("manual")
        except BridgeError as exc:
            return tool_error(_error_code(exc).value, f"Bridge sync failed: {exc}")
        return json_response(
            {
                "sync": result.model_dump(mode="json"),
                "status": self.status().model_dump(mode="json", by_alias=True),
            }
        )

    async def disconnect_tool(self) -> ToolResponse:
        try:
            await self.disconnect()
        except Exception as exc:  # noqa: BLE001 - surfaced as a structured error
            return tool_error(
                BridgeErrorCode.UNAVAILABLE.value, f"Bridge disconnect failed: {exc}"
            )
        return json_response(self.status().model_dump(mode="json", by_alias=True))

    def _failure(self, error: BaseException, operation: BridgeOperation, **fields: Any) -> ToolResponse:
        code = classify_bridge_error(error, operation, connected=self._client.connected)
        message = str(error) or type(error).__name__
        logger.warning(
            "bridge.operation_failed", operation=operation, code=code.value, error=message, **fields
        )
        return tool_error(code.value, message)


def _error_code(error: BridgeError) -> BridgeErrorCode:
    return error.code or BridgeErrorCode.UNAVAILABLE


__all__ = ["BridgeCoordinator", "ClientFactory", "NotifyingCatalog", "SyncReason"]
