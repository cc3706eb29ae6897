"""FastAPI dependency providers."""

from __future__ import annotations

from typing import Protocol, cast

from fastapi import Request

from peer_bridge.coordinator import BridgeCoordinator

from .config import AppConfig
from .tools.catalog import ToolCatalog


class _AppState(Protocol):
    config: AppConfig
    catalog: ToolCatalog
    coordinator: BridgeCoordinator
    tool_offload: bool


def get_config(request: Request) -> AppConfig:
    state = cast(_AppState, request.app.state)
    return state.config


def get_catalog(request: Request) -> ToolCatalog:
    state = cast(_AppState, request.app.state)
    return state.catalog


def get_coordinator(request: Request) -> BridgeCoordinator:
    state = cast(_AppState, request.app.state)
    return state.coordinator


def should_offload_tools(request: Request) -> bool:
    state = cast(_AppState, request.app.state)
    return getattr(state, "tool_offload", True)
