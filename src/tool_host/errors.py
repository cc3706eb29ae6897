"""HTTP error envelope shared by the REST and JSON-RPC transports.

Every failure leaves the host as::

    {"error": {"code": ..., "message": ..., "correlationId": ...,
               "retryable": ..., "details": [{"issue": ..., "field": ...}]}}
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any, Iterable, Optional

from fastapi import HTTPException
from pydantic import ValidationError
from starlette.responses import JSONResponse

from peer_bridge.errors import BridgeError, BridgeErrorCode

from .constants import CORRELATION_HEADER

_SENSITIVE_PATTERN = re.compile(r"(?i)\b(token|secret|password|key)=(\S+)")


class ErrorCode(str, Enum):
    INVALID_INPUT = "InvalidInput"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    FEATURE_DISABLED = "FeatureDisabled"
    PEER_UNAVAILABLE = "PeerUnavailable"
    PEER_ERROR = "PeerError"
    TIMEOUT = "Timeout"
    INTERNAL_ERROR = "InternalError"


_STATUS_CODES: dict[int, ErrorCode] = {
    HTTPStatus.BAD_REQUEST: ErrorCode.INVALID_INPUT,
    HTTPStatus.UNPROCESSABLE_ENTITY: ErrorCode.INVALID_INPUT,
    HTTPStatus.NOT_FOUND: ErrorCode.NOT_FOUND,
    HTTPStatus.CONFLICT: ErrorCode.CONFLICT,
    HTTPStatus.REQUEST_TIMEOUT: ErrorCode.TIMEOUT,
    HTTPStatus.GATEWAY_TIMEOUT: ErrorCode.TIMEOUT,
    HTTPStatus.BAD_GATEWAY: ErrorCode.PEER_ERROR,
    HTTPStatus.SERVICE_UNAVAILABLE: ErrorCode.PEER_UNAVAILABLE,
}


@dataclass(frozen=True)
class ErrorDetail:
    """One actionable problem: what went wrong, where, and how to fix it."""

    issue: str
    field: Optional[str] = None
    hint: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value}


def error_detail(
    issue: str,
    *,
    field: Optional[str] = None,
    hint: Optional[str] = None,
    code: Optional[str] = None,
) -> ErrorDetail:
    return ErrorDetail(issue=issue, field=field, hint=hint, code=code)


class DetailedHTTPException(HTTPException):
    """HTTPException that also carries an envelope code, retry hint and details."""

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        details: Iterable[ErrorDetail] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.error_code = code
        self.retryable_hint = retryable
        self.error_details: list[ErrorDetail] = list(details or ())


def redact_sensitive(text: str) -> str:
    """Mask ``key=value`` style secrets before they reach clients or logs."""
    return _SENSITIVE_PATTERN.sub(r"\1=***", text)


def map_status_to_code(status_code: int) -> ErrorCode:
    return _STATUS_CODES.get(status_code, ErrorCode.INTERNAL_ERROR)


def default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unexpected Error"


def error_response(
    *,
    code: ErrorCode,
    message: str,
    correlation_id: str,
    status_code: int,
    retryable: bool | None = None,
    details: Iterable[ErrorDetail] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "code": code.value,
        "message": message,
        "correlationId": correlation_id,
    }
    if retryable is not None:
        error["retryable"] = retryable
    rendered = [item.to_dict() for item in details or ()]
    if rendered:
        error["details"] = rendered
    return JSONResponse(
        status_code=status_code,
        content={"error": error},
        headers={CORRELATION_HEADER: correlation_id},
    )


def http_error(
    *,
    status_code: int,
    message: str,
    code: ErrorCode,
    field: Optional[str] = None,
    hint: Optional[str] = None,
) -> DetailedHTTPException:
    details = [error_detail(message, field=field, hint=hint)] if field or hint else []
    return DetailedHTTPException(
        status_code=status_code, message=message, code=code, details=details
    )


def _field_path(location: Iterable[Any]) -> Optional[str]:
    parts = [str(part) for part in location if part not in (None, "__root__")]
    return ".".join(parts) or None


def validation_exception(exc: ValidationError) -> DetailedHTTPException:
    """Turn a pydantic ``ValidationError`` into a 400 with one detail per error."""

    details = [
        error_detail(
            item.get("msg", "Invalid value"),
            field=_field_path(item.get("loc") or ()),
            code=item.get("type"),
        )
        for item in exc.errors(include_url=False)
    ]
    return DetailedHTTPException(
        status_code=HTTPStatus.BAD_REQUEST,
        message=details[0].issue if details else "Validation failed",
        code=ErrorCode.INVALID_INPUT,
        details=details,
    )


_BRIDGE_STATUS: dict[BridgeErrorCode, HTTPStatus] = {
    BridgeErrorCode.FEATURE_NOT_ENABLED: HTTPStatus.CONFLICT,
    BridgeErrorCode.PEER_BINARY_NOT_FOUND: HTTPStatus.SERVICE_UNAVAILABLE,
    BridgeErrorCode.SESSION_NOT_READY: HTTPStatus.SERVICE_UNAVAILABLE,
    BridgeErrorCode.UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    BridgeErrorCode.CONNECT_TIMEOUT: HTTPStatus.GATEWAY_TIMEOUT,
    BridgeErrorCode.LIST_TIMEOUT: HTTPStatus.GATEWAY_TIMEOUT,
    BridgeErrorCode.CALL_TIMEOUT: HTTPStatus.GATEWAY_TIMEOUT,
}

_RETRYABLE_BRIDGE_CODES = frozenset(
    {
        BridgeErrorCode.CONNECT_TIMEOUT,
        BridgeErrorCode.LIST_TIMEOUT,
        BridgeErrorCode.CALL_TIMEOUT,
        BridgeErrorCode.SESSION_NOT_READY,
        BridgeErrorCode.UNAVAILABLE,
    }
)


def bridge_error_to_http(exc: BridgeError) -> DetailedHTTPException:
    """Map a bridge exception that escaped a tool handler to an HTTP error."""

    bridge_code = exc.code or BridgeErrorCode.UNAVAILABLE
    status_code = _BRIDGE_STATUS.get(bridge_code, HTTPStatus.BAD_GATEWAY)
    code = (
        ErrorCode.FEATURE_DISABLED
        if bridge_code is BridgeErrorCode.FEATURE_NOT_ENABLED
        else map_status_to_code(status_code)
    )
    message = redact_sensitive(str(exc))
    return DetailedHTTPException(
        status_code=int(status_code),
        message=message,
        code=code,
        retryable=bridge_code in _RETRYABLE_BRIDGE_CODES,
        details=[error_detail(message, code=bridge_code.value)],
    )


__all__ = [
    "DetailedHTTPException",
    "ErrorCode",
    "ErrorDetail",
    "bridge_error_to_http",
    "default_message",
    "error_detail",
    "error_response",
    "http_error",
    "map_status_to_code",
    "redact_sensitive",
    "validation_exception",
]
