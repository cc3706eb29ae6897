"""Built-in tools registered in the host catalog at startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Tuple, Type

from pydantic import BaseModel

from peer_bridge.schema import translate_schema
from peer_bridge.tools.bridge_call_tool import BridgeCallToolRequest, bridge_call_tool
from peer_bridge.tools.bridge_disconnect import BridgeDisconnectRequest, bridge_disconnect
from peer_bridge.tools.bridge_list_tools import BridgeListToolsRequest, bridge_list_tools
from peer_bridge.tools.bridge_status import BridgeStatusRequest, bridge_status
from peer_bridge.tools.bridge_sync import BridgeSyncRequest, bridge_sync

from .catalog import RegisteredTool, ToolCatalog, ToolSpec
from .responses import ToolResponse

if TYPE_CHECKING:
    from peer_bridge.coordinator import BridgeCoordinator

BuiltinHandler = Callable[[Any, Any], Awaitable[ToolResponse]]


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata describing a single built-in tool."""

    name: str
    title: str
    description: str
    request_model: Type[BaseModel]
    handler: BuiltinHandler
    read_only: bool = False
    debug: bool = False

    def input_schema(self) -> Dict[str, Any]:
        return self.request_model.model_json_schema(by_alias=True)


def get_builtin_tools() -> Dict[str, ToolDescriptor]:
    """Return the built-in bridge administration tools keyed by name."""

    descriptors: Tuple[ToolDescriptor, ...] = (
        ToolDescriptor(
            name="bridge_status",
            title="Peer bridge status",
            description=(
                "Report whether the peer bridge is enabled and connected, the peer "
                "process id, the proxied tool names and the last error."
            ),
            request_model=BridgeStatusRequest,
            handler=bridge_status,
            read_only=True,
            debug=True,
        ),
        ToolDescriptor(
            name="bridge_sync",
            title="Sync peer tools",
            description="Fetch the peer tool catalog and reconcile the proxied tools.",
            request_model=BridgeSyncRequest,
            handler=bridge_sync,
            debug=True,
        ),
        ToolDescriptor(
            name="bridge_disconnect",
            title="Disconnect peer",
            description="Close the peer session and remove every proxied tool.",
            request_model=BridgeDisconnectRequest,
            handler=bridge_disconnect,
            debug=True,
        ),
        ToolDescriptor(
            name="bridge_list_tools",
            title="List peer tools",
            description="List the tools the peer currently exposes, using their remote names.",
            request_model=BridgeListToolsRequest,
            handler=bridge_list_tools,
            read_only=True,
        ),
        ToolDescriptor(
            name="bridge_call_tool",
            title="Call peer tool",
            description="Invoke a peer tool by remote name with explicit arguments.",
            request_model=BridgeCallToolRequest,
            handler=bridge_call_tool,
        ),
    )
    return {descriptor.name: descriptor for descriptor in descriptors}


def _bind(
    descriptor: ToolDescriptor, coordinator: BridgeCoordinator
) -> Callable[[dict[str, Any]], Awaitable[ToolResponse]]:
    async def _handler(arguments: dict[str, Any]) -> ToolResponse:
        payload = descriptor.request_model.model_validate(arguments)
        return await descriptor.handler(coordinator, payload)

    return _handler


def register_builtin_tools(
    catalog: ToolCatalog, coordinator: BridgeCoordinator, *, include_debug: bool = True
) -> list[RegisteredTool]:
    """Register the bridge tools; ``include_debug=False`` skips status, sync and disconnect."""

    handles: list[RegisteredTool] = []
    for descriptor in get_builtin_tools().values():
        if descriptor.debug and not include_debug:
            continue
        schema = descriptor.input_schema()
        spec = ToolSpec(
            description=descriptor.description,
            title=descriptor.title,
            input_validator=translate_schema(schema),
            input_schema=schema,
            annotations={"title": descriptor.title, "readOnlyHint": descriptor.read_only},
            provenance={"source": "builtin"},
        )
        handles.append(catalog.register(descriptor.name, spec, _bind(descriptor, coordinator)))
    catalog.notify_catalog_changed()
    return handles


__all__ = ["ToolDescriptor", "get_builtin_tools", "register_builtin_tools"]
