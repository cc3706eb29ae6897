"""Contracts for the ``bridge_list_tools`` MCP tool."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from tool_host.tools.responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator


class BridgeListToolsRequest(BaseModel):
    """List the peer catalog as the peer reports it (not the proxied names)."""

    model_config = ConfigDict(populate_by_name=True)

    refresh: bool = Field(
        default=True,
        description="Fetch a fresh catalog from the peer instead of the cached listing.",
    )


async def bridge_list_tools(
    coordinator: BridgeCoordinator, payload: BridgeListToolsRequest
) -> ToolResponse:
    return await coordinator.list_tools(refresh=payload.refresh)


__all__ = ["BridgeListToolsRequest", "bridge_list_tools"]
