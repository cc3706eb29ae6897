"""MCP REST endpoints: tool discovery, invocation, and capabilities."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from peer_bridge.coordinator import BridgeCoordinator
from peer_bridge.errors import BridgeError

from ..dependencies import get_catalog, get_coordinator, should_offload_tools
from ..errors import (
    ErrorCode,
    bridge_error_to_http,
    http_error,
    validation_exception,
)
from ..logging import get_logger
from ..tools.catalog import ToolCatalog, ToolCatalogError
from ..tools.invoke import invoke_tool
from ..tools.responses import ToolResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/mcp", tags=["mcp"])


class ToolDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    title: Optional[str] = None
    description: str
    input_schema: Dict[str, Any] = Field(alias="inputSchema")
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="outputSchema")
    annotations: Dict[str, Any] = Field(default_factory=dict)
    meta: Optional[Dict[str, Any]] = Field(default=None, alias="_meta")


class ListToolsResponse(BaseModel):
    tools: List[ToolDescription]


class CallToolRequest(BaseModel):
    tool: str = Field(min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)


class CallToolResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "tool_result"
    tool: str
    content: List[Dict[str, Any]] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")
    structured_content: Optional[Dict[str, Any]] = Field(default=None, alias="structuredContent")


class BridgeCapabilities(BaseModel):
    enabled: bool
    connected: bool
    toolPrefix: str
    proxiedToolCount: int


class CapabilitiesResponse(BaseModel):
    transports: List[str]
    bridge: BridgeCapabilities
    timeouts: Dict[str, int]
    annotations: Dict[str, Any] = Field(default_factory=dict)


def describe_tools(catalog: ToolCatalog) -> List[Dict[str, Any]]:
    return [entry.describe() for entry in catalog.list_entries()]


async def execute_tool(
    catalog: ToolCatalog,
    name: str,
    arguments: Dict[str, Any],
    *,
    offload: bool = True,
) -> ToolResponse:
    """Run a catalog tool, mapping failures onto :class:`DetailedHTTPException`."""

    try:
        return await invoke_tool(catalog, name, arguments, offload=offload)
    except ToolCatalogError as exc:
        logger.info("tool.not_found", tool=name)
        raise http_error(
            status_code=status.HTTP_404_NOT_FOUND,
            message=f"Tool '{name}' is not registered",
            code=ErrorCode.NOT_FOUND,
            field="tool",
            hint="Call tools/list to see the current catalog; proxied tools change after a sync.",
        ) from exc
    except ValidationError as exc:
        raise validation_exception(exc) from exc
    except BridgeError as exc:
        raise bridge_error_to_http(exc) from exc


@router.get("/list_tools", response_model=ListToolsResponse, response_model_exclude_none=True)
def list_tools(catalog: ToolCatalog = Depends(get_catalog)) -> ListToolsResponse:
    return ListToolsResponse.model_validate({"tools": describe_tools(catalog)})


@router.post("/call_tool", response_model=CallToolResponse, response_model_by_alias=True)
async def call_tool(
    http_request: Request,
    request: CallToolRequest,
    catalog: ToolCatalog = Depends(get_catalog),
) -> CallToolResponse:
    result = await execute_tool(
        catalog,
        request.tool,
        request.arguments,
        offload=should_offload_tools(http_request),
    )
    return CallToolResponse(
        tool=request.tool,
        content=result.content,
        isError=result.is_error,
        structuredContent=result.structured_content,
    )


@router.get("/capabilities", response_model=CapabilitiesResponse)
def capabilities(
    fastapi_request: Request,
    coordinator: BridgeCoordinator = Depends(get_coordinator),
) -> CapabilitiesResponse:
    config = fastapi_request.app.state.config
    bridge_status = coordinator.status()
    return CapabilitiesResponse(
        transports=["http-jsonrpc", "http-rest"],
        bridge=BridgeCapabilities(
            enabled=bridge_status.enabled,
            connected=bridge_status.connected,
            toolPrefix=coordinator.registry.prefix,
            proxiedToolCount=bridge_status.proxied_tool_count,
        ),
        timeouts={
            "connectMs": config.bridge_connect_timeout_ms,
            "listMs": config.bridge_list_timeout_ms,
            "callMs": config.bridge_call_timeout_ms,
        },
        annotations={"service": config.service_name, "environment": config.environment},
    )


__all__ = ["describe_tools", "execute_tool", "router"]
