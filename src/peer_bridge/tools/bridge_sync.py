"""MCP tool forcing a resync of the peer tool catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from tool_host.tools.responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator


class BridgeSyncRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")


async def bridge_sync(coordinator: BridgeCoordinator, payload: BridgeSyncRequest) -> ToolResponse:
    return await coordinator.sync_tool()


__all__ = ["BridgeSyncRequest", "bridge_sync"]
