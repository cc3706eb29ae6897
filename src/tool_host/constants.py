"""Shared constants for the tool host service."""

SERVICE_NAME = "mcp-tool-bridge"
CORRELATION_HEADER = "X-Correlation-Id"
MCP_PROTOCOL_VERSION = "2025-06-18"
