"""MCP tool reporting the peer bridge status."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from tool_host.tools.responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator


class BridgeStatusRequest(BaseModel):
    """The ``bridge_status`` tool takes no arguments."""

    model_config = ConfigDict(extra="ignore")


async def bridge_status(
    coordinator: BridgeCoordinator, payload: BridgeStatusRequest
) -> ToolResponse:
    return await coordinator.status_tool()


__all__ = ["BridgeStatusRequest", "bridge_status"]
