"""MCP tool dropping the peer session and every proxied tool."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from tool_host.tools.responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator


class BridgeDisconnectRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")


async def bridge_disconnect(
    coordinator: BridgeCoordinator, payload: BridgeDisconnectRequest
) -> ToolResponse:
    return await coordinator.disconnect_tool()


__all__ = ["BridgeDisconnectRequest", "bridge_disconnect"]
