"""MCP ``tools/call`` result payloads returned by host tools."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolResponse(BaseModel):
    """Immediate tool result in MCP ``CallToolResult`` form."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content: List[Dict[str, Any]] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")
    structured_content: Optional[Dict[str, Any]] = Field(default=None, alias="structuredContent")
    meta: Optional[Dict[str, Any]] = Field(default=None, alias="_meta")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def text(self) -> str:
        """Concatenated text of all ``text`` content blocks."""
        return "\n".join(
            str(block.get("text", "")) for block in self.content if block.get("type") == "text"
        )


def text_response(text: str) -> ToolResponse:
    return ToolResponse(content=[{"type": "text", "text": text}])


def json_response(payload: Any) -> ToolResponse:
    """Render ``payload`` as indented JSON text plus structured content."""

    text = json.dumps(payload, indent=2, default=str)
    structured = payload if isinstance(payload, dict) else None
    return ToolResponse(content=[{"type": "text", "text": text}], structuredContent=structured)


def tool_error(code: str, message: str, *, details: Optional[Mapping[str, Any]] = None) -> ToolResponse:
    """Build an ``isError`` result whose text starts with the stable ``code``."""

    structured: Dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        structured["error"]["details"] = dict(details)
    return ToolResponse(
        content=[{"type": "text", "text": f"{code}: {message}"}],
        isError=True,
        structuredContent=structured,
    )


def normalize_tool_result(result: Any) -> ToolResponse:
    """Coerce whatever a handler returned into a :class:`ToolResponse`."""

    if isinstance(result, ToolResponse):
        return result
    if result is None:
        return ToolResponse()
    if isinstance(result, BaseModel):
        return json_response(result.model_dump(mode="json", by_alias=True))
    if isinstance(result, Mapping):
        if isinstance(result.get("content"), list):
            return ToolResponse.model_validate(dict(result))
        return json_response(dict(result))
    if isinstance(result, str):
        return text_response(result)
    if isinstance(result, Iterable):
        return json_response({"items": list(result)})
    return json_response({"value": result})


__all__ = [
    "ToolResponse",
    "json_response",
    "normalize_tool_result",
    "text_response",
    "tool_error",
]
