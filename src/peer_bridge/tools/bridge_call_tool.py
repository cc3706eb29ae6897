"""Contracts for the ``bridge_call_tool`` MCP tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tool_host.tools.responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator


class BridgeCallToolRequest(BaseModel):
    """Invoke a peer tool by its remote name."""

    model_config = ConfigDict(populate_by_name=True)

    remote_tool: str = Field(
        alias="remoteTool",
        min_length=1,
        max_length=256,
        description="Tool name as listed by the peer, without the local prefix.",
    )
    arguments: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: Optional[int] = Field(
        default=None,
        alias="timeoutMs",
        ge=1,
        le=3_600_000,
        description="Overrides the configured call timeout for this invocation.",
    )

    @field_validator("remote_tool")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("remoteTool must not be blank")
        return name


async def bridge_call_tool(
    coordinator: BridgeCoordinator, payload: BridgeCallToolRequest
) -> ToolResponse:
    return await coordinator.call_tool(
        payload.remote_tool, payload.arguments, timeout_ms=payload.timeout_ms
    )


__all__ = ["BridgeCallToolRequest", "bridge_call_tool"]
