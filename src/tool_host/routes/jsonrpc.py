"""JSON-RPC 2.0 transport (``POST /mcp``) exposing the host tool catalog."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel, ValidationError

from ..config import AppConfig
from ..constants import MCP_PROTOCOL_VERSION
from ..dependencies import get_catalog, get_config, should_offload_tools
from ..errors import DetailedHTTPException, ErrorCode
from ..logging import get_logger
from . import mcp as rest_mcp

logger = get_logger(__name__)

router = APIRouter(prefix="/mcp", tags=["mcp-jsonrpc"])

RequestId = Optional[Union[str, int]]

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TOOL_EXECUTION_ERROR = -32002

_RESERVED_CALL_KEYS = frozenset({"name", "tool", "arguments", "parameters", "_meta"})


class JSONRPCRequest(BaseModel):
    jsonrpc: str = "2.0"
    method: str
    params: Optional[Union[Dict[str, Any], list[Any]]] = None
    id: RequestId = None


class JSONRPCError(Exception):
    """Raised by method handlers; rendered as a JSON-RPC ``error`` member."""

    def __init__(self, code: int, message: str, *, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    def to_payload(self, request_id: RequestId) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.data is not None:
            error["data"] = self.data
        payload: dict[str, Any] = {"jsonrpc": "2.0", "error": error}
        if request_id is not None:
            payload["id"] = request_id
        return payload


MethodHandler = Callable[[Request, Dict[str, Any]], Awaitable[Any]]


async def _initialize(request: Request, params: Dict[str, Any]) -> dict[str, Any]:
    config: AppConfig = get_config(request)
    return {
        "protocolVersion": MCP_PROTOCOL_VERSION,
        "serverInfo": {"name": config.service_name, "version": config.service_version},
        "capabilities": {"tools": {"listChanged": True}},
    }


async def _empty(request: Request, params: Dict[str, Any]) -> dict[str, Any]:
    return {}


async def _tools_list(request: Request, params: Dict[str, Any]) -> dict[str, Any]:
    return {"tools": rest_mcp.describe_tools(get_catalog(request))}


async def _tools_call(request: Request, params: Dict[str, Any]) -> dict[str, Any]:
    name = params.get("name") or params.get("tool")
    if not isinstance(name, str) or not name:
        raise JSONRPCError(INVALID_PARAMS, "Tool 'name' is required")

    arguments = _call_arguments(params)
    if not isinstance(arguments, dict):
        raise JSONRPCError(INVALID_PARAMS, "Tool arguments must be an object")

    try:
        result = await rest_mcp.execute_tool(
            get_catalog(request), name, arguments, offload=should_offload_tools(request)
        )
    except DetailedHTTPException as exc:
        raise _from_http_exception(exc) from exc
    return result.to_payload()


_METHODS: Dict[str, MethodHandler] = {
    "initialize": _initialize,
    "initialized": _empty,
    "notifications/initialized": _empty,
    "ping": _empty,
    "tools/list": _tools_list,
    "tools/call": _tools_call,
}


def _call_arguments(params: Dict[str, Any]) -> Any:
    """Accept MCP ``arguments``, the older ``parameters`` key, or inline fields."""

    for key in ("arguments", "parameters"):
        if params.get(key) is not None:
            return params[key]
    return {key: value for key, value in params.items() if key not in _RESERVED_CALL_KEYS}


def _from_http_exception(exc: DetailedHTTPException) -> JSONRPCError:
    data = [detail.to_dict() for detail in exc.error_details] or None
    caller_fault = (
        exc.status_code in (status.HTTP_400_BAD_REQUEST, status.HTTP_404_NOT_FOUND)
        or exc.error_code == ErrorCode.INVALID_INPUT
    )
    code = INVALID_PARAMS if caller_fault else TOOL_EXECUTION_ERROR
    return JSONRPCError(code, str(exc.detail), data=data)


def _parse(body: Any) -> JSONRPCRequest:
    if isinstance(body, list):
        raise JSONRPCError(INVALID_REQUEST, "Batch requests are not supported")
    try:
        return JSONRPCRequest.model_validate(body)
    except ValidationError as exc:
        logger.warning("jsonrpc.invalid_request", error=str(exc))
        raise JSONRPCError(
            INVALID_REQUEST,
            "Invalid JSON-RPC request",
            data=exc.errors(include_url=False, include_context=False),
        ) from exc


@router.post("")
async def jsonrpc_endpoint(request: Request, response: Response) -> Any:
    try:
        body = await request.json()
    except ValueError as exc:
        logger.warning("jsonrpc.invalid_json", error=str(exc))
        response.status_code = status.HTTP_400_BAD_REQUEST
        return JSONRPCError(PARSE_ERROR, "Invalid JSON payload").to_payload(None)

    request_id: RequestId = body.get("id") if isinstance(body, dict) else None
    try:
        rpc = _parse(body)
    except JSONRPCError as exc:
        response.status_code = status.HTTP_400_BAD_REQUEST
        return exc.to_payload(request_id)

    try:
        handler = _METHODS.get(rpc.method)
        if handler is None:
            raise JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {rpc.method}")
        if isinstance(rpc.params, list):
            raise JSONRPCError(INVALID_PARAMS, "Positional parameters are not supported")
        result = await handler(request, rpc.params or {})
    except JSONRPCError as exc:
        logger.debug("jsonrpc.dispatch_error", method=rpc.method, code=exc.code)
        return exc.to_payload(rpc.id)
    except Exception as exc:  # noqa: BLE001 - reported as a JSON-RPC internal error
        logger.exception("jsonrpc.unhandled_exception", method=rpc.method)
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONRPCError(INTERNAL_ERROR, "Internal error", data=str(exc)).to_payload(rpc.id)

    if rpc.id is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return None
    return {"jsonrpc": "2.0", "id": rpc.id, "result": result}


__all__ = ["router"]
