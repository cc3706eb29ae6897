# ruff: noqa: UP007
"""Data contracts shared by the peer bridge components."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field


def _as_dict(value: Any) -> Optional[dict[str, Any]]:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return dict(value)
    return None


@dataclass(frozen=True)
class RemoteToolDescriptor:
    """One entry of the peer's tool catalog."""

    name: str
    title: Optional[str] = None
    description: Optional[str] = None
    input_schema: Any = field(default_factory=dict)
    output_schema: Any = None
    annotations: Optional[dict[str, Any]] = None
    execution: Optional[dict[str, Any]] = None

    @classmethod
    def from_tool(cls, tool: Any) -> RemoteToolDescriptor:
        """Build a descriptor from an ``mcp.types.Tool`` (or anything with the same fields)."""

        if isinstance(tool, Mapping):
            return cls.from_mapping(tool)
        return cls(
            name=str(tool.name),
            title=getattr(tool, "title", None),
            description=getattr(tool, "description", None),
            input_schema=getattr(tool, "inputSchema", None) or {},
            output_schema=getattr(tool, "outputSchema", None),
            annotations=_as_dict(getattr(tool, "annotations", None)),
            execution=_as_dict(getattr(tool, "execution", None)),
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> RemoteToolDescriptor:
        return cls(
            name=str(payload["name"]),
            title=payload.get("title"),
            description=payload.get("description"),
            input_schema=payload.get("inputSchema") or {},
            output_schema=payload.get("outputSchema"),
            annotations=_as_dict(payload.get("annotations")),
            execution=_as_dict(payload.get("execution")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "inputSchema": self.input_schema}
        if self.title is not None:
            payload["title"] = self.title
        if self.description is not None:
            payload["description"] = self.description
        if self.output_schema is not None:
            payload["outputSchema"] = self.output_schema
        if self.annotations is not None:
            payload["annotations"] = self.annotations
        if self.execution is not None:
            payload["execution"] = self.execution
        return payload


class CatalogHandle(Protocol):
    """Handle returned by the host catalog for one registered tool."""

    def remove(self) -> None: ...


@dataclass(frozen=True)
class ProxyRegistration:
    """A peer tool currently mirrored into the host catalog."""

    remote_name: str
    local_name: str
    fingerprint: str
    handle: CatalogHandle


class SyncResult(BaseModel):
    added: int = 0
    updated: int = 0
    removed: int = 0
    total: int = 0


class BridgeConnectionStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connected: bool = False
    peer_pid: Optional[int] = Field(default=None, alias="peerPid")
    last_error: Optional[str] = Field(default=None, alias="lastError")


class BridgeStatus(BaseModel):
    """Snapshot reported by the ``bridge_status`` tool."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    available: Optional[bool] = None
    connected: bool = False
    peer_pid: Optional[int] = Field(default=None, alias="peerPid")
    peer_command: list[str] = Field(default_factory=list, alias="peerCommand")
    peer_path: Optional[str] = Field(default=None, alias="peerPath")
    proxied_tool_count: int = Field(default=0, alias="proxiedToolCount")
    proxied_tools: list[str] = Field(default_factory=list, alias="proxiedTools")
    last_error: Optional[str] = Field(default=None, alias="lastError")


__all__ = [
    "BridgeConnectionStatus",
    "BridgeStatus",
    "CatalogHandle",
    "ProxyRegistration",
    "RemoteToolDescriptor",
    "SyncResult",
]
