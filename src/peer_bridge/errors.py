"""Error taxonomy for the peer bridge."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

BridgeOperation = Literal["list", "call"]


class BridgeErrorCode(str, Enum):
    PEER_BINARY_NOT_FOUND = "PEER_BINARY_NOT_FOUND"
    FEATURE_NOT_ENABLED = "FEATURE_NOT_ENABLED"
    CONNECT_TIMEOUT = "CONNECT_TIMEOUT"
    LIST_TIMEOUT = "LIST_TIMEOUT"
    CALL_TIMEOUT = "CALL_TIMEOUT"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    SESSION_NOT_READY = "SESSION_NOT_READY"
    UNEXPECTED_RESULT_SHAPE = "UNEXPECTED_RESULT_SHAPE"
    DEFERRED_RESULT_UNSUPPORTED = "DEFERRED_RESULT_UNSUPPORTED"
    UNAVAILABLE = "UNAVAILABLE"


class BridgeError(RuntimeError):
    """Base error for peer bridge failures."""

    def __init__(self, message: str, *, code: Optional[BridgeErrorCode] = None) -> None:
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class PeerBinaryNotFoundError(BridgeError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=BridgeErrorCode.PEER_BINARY_NOT_FOUND)


class FeatureNotEnabledError(BridgeError):
    def __init__(self, message: str = "peer bridge feature is not enabled") -> None:
        super().__init__(message, code=BridgeErrorCode.FEATURE_NOT_ENABLED)


class BridgeNotConnectedError(BridgeError):
    def __init__(self, message: str = "peer session not connected") -> None:
        super().__init__(message, code=BridgeErrorCode.SESSION_NOT_READY)


class BridgeTimeoutError(BridgeError):
    """Raised when a peer operation exceeds its timeout.

    The code is left unset on purpose: whether a timeout is a connect, list or
    call timeout depends on the connection state at classification time.
    """


class DeferredResultUnsupportedError(BridgeError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=BridgeErrorCode.DEFERRED_RESULT_UNSUPPORTED)


class UnexpectedResultShapeError(BridgeError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=BridgeErrorCode.UNEXPECTED_RESULT_SHAPE)


# Evaluated in order; first match wins. Timeouts are handled separately.
_MESSAGE_RULES: tuple[tuple[tuple[str, ...], BridgeErrorCode], ...] = (
    (
        ("binary not found", "not available (", "no such file or directory", "enoent"),
        BridgeErrorCode.PEER_BINARY_NOT_FOUND,
    ),
    # Local OS failures while starting the peer, never an in-peer refusal.
    (("failed to spawn",), BridgeErrorCode.UNAVAILABLE),
    (("not enabled",), BridgeErrorCode.FEATURE_NOT_ENABLED),
    (
        ("deferred result", "task result", "task-based result"),
        BridgeErrorCode.DEFERRED_RESULT_UNSUPPORTED,
    ),
    (
        ("unexpected result shape", "unexpected response"),
        BridgeErrorCode.UNEXPECTED_RESULT_SHAPE,
    ),
)

_TIMEOUT_MARKERS = ("timed out", "timeout")

_APPROVAL_MARKERS = (
    "approval",
    "permission denied",
    "not authorized",
    "not permitted",
    "user denied",
    "declined",
)

_SESSION_MARKERS = (
    "not connected",
    "session not ready",
    "no active session",
    "connection closed",
    "not initialized",
)


def classify_bridge_message(
    message: str, operation: BridgeOperation, *, connected: bool
) -> BridgeErrorCode:
    """Map a failure message onto the stable error taxonomy."""

    text = message.lower()
    for markers, code in _MESSAGE_RULES:
        if any(marker in text for marker in markers):
            return code

    if any(marker in text for marker in _TIMEOUT_MARKERS):
        if not connected:
            return BridgeErrorCode.CONNECT_TIMEOUT
        if operation == "list":
            return BridgeErrorCode.LIST_TIMEOUT
        return BridgeErrorCode.CALL_TIMEOUT

    if any(marker in text for marker in _APPROVAL_MARKERS):
        return BridgeErrorCode.APPROVAL_REQUIRED
    if any(marker in text for marker in _SESSION_MARKERS):
        return BridgeErrorCode.SESSION_NOT_READY
    return BridgeErrorCode.UNAVAILABLE


def classify_bridge_error(
    error: BaseException | str, operation: BridgeOperation, *, connected: bool
) -> BridgeErrorCode:
    """Classify ``error`` raised during ``operation``.

    A coded :class:`BridgeError` keeps its own code; timeouts and uncoded
    errors are classified from their message.
    """

    if isinstance(error, BridgeError) and error.code is not None:
        return error.code
    message = error if isinstance(error, str) else str(error)
    if not message and isinstance(error, BaseException):
        message = type(error).__name__
    return classify_bridge_message(message, operation, connected=connected)


__all__ = [
    "BridgeError",
    "BridgeErrorCode",
    "BridgeNotConnectedError",
    "BridgeOperation",
    "BridgeTimeoutError",
    "DeferredResultUnsupportedError",
    "FeatureNotEnabledError",
    "PeerBinaryNotFoundError",
    "UnexpectedResultShapeError",
    "classify_bridge_error",
    "classify_bridge_message",
]
