"""Factories for building runtime components used across the tool host."""

from __future__ import annotations

from collections.abc import Callable

from peer_bridge.client import PeerBridgeClient
from peer_bridge.coordinator import BridgeCoordinator, ClientFactory
from peer_bridge.discovery import CommandProbe, PeerProbe

from ..config import AppConfig
from ..tools.catalog import ToolCatalog


def build_catalog() -> ToolCatalog:
    return ToolCatalog()


def build_probe(config: AppConfig) -> PeerProbe:
    """Create the discovery probe gating every peer connection attempt."""

    return CommandProbe(config.bridge_probe_command, timeout_ms=config.bridge_probe_timeout_ms)


def build_client_factory(config: AppConfig) -> ClientFactory:
    """Return a factory producing peer clients wired to the configured command."""

    def _factory(
        *, on_tools_changed: Callable[[], None], on_close: Callable[[], None]
    ) -> PeerBridgeClient:
        return PeerBridgeClient(
            config.bridge_command,
            connect_timeout_ms=config.bridge_connect_timeout_ms,
            list_timeout_ms=config.bridge_list_timeout_ms,
            call_timeout_ms=config.bridge_call_timeout_ms,
            on_tools_changed=on_tools_changed,
            on_close=on_close,
        )

    return _factory


def build_coordinator(
    config: AppConfig,
    catalog: ToolCatalog,
    *,
    client_factory: ClientFactory | None = None,
    probe: PeerProbe | None = None,
) -> BridgeCoordinator:
    """Create the per-process bridge coordinator for ``catalog``."""

    return BridgeCoordinator(
        catalog,
        client_factory or build_client_factory(config),
        probe=probe or build_probe(config),
        enabled=config.bridge_enabled,
        prefix=config.bridge_tool_prefix,
        peer_command=config.bridge_command,
        probe_command=config.bridge_probe_command,
    )


__all__ = ["build_catalog", "build_client_factory", "build_coordinator", "build_probe"]
