"""Bridge to an external MCP peer whose tools are proxied into the host catalog."""

from .errors import (
    BridgeError,
    BridgeErrorCode,
    FeatureNotEnabledError,
    classify_bridge_error,
    classify_bridge_message,
)
from .models import BridgeConnectionStatus, BridgeStatus, RemoteToolDescriptor, SyncResult
from .schema import ANY, SchemaValidator, schema_to_annotation, translate_schema

__all__ = [
    "ANY",
    "BridgeConnectionStatus",
    "BridgeError",
    "BridgeErrorCode",
    "BridgeStatus",
    "FeatureNotEnabledError",
    "RemoteToolDescriptor",
    "SchemaValidator",
    "SyncResult",
    "classify_bridge_error",
    "classify_bridge_message",
    "schema_to_annotation",
    "translate_schema",
]
