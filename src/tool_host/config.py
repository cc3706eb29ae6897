"""Application configuration management."""

from __future__ import annotations

import os
import shlex
from typing import Any, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import __version__
from .constants import SERVICE_NAME
from .logging import DEFAULT_LOG_LEVEL

DEFAULT_BRIDGE_COMMAND: Tuple[str, ...] = ("xcrun", "mcpbridge")
DEFAULT_BRIDGE_PROBE_COMMAND: Tuple[str, ...] = ("xcrun", "--find", "mcpbridge")
DEFAULT_TOOL_PREFIX = "xcode_tools_"


class ConfigError(RuntimeError):
    """Raised when application configuration is invalid."""


class AppConfig(BaseModel):
    """Validated application configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(default="127.0.0.1", description="Host interface to bind the HTTP server")
    port: int = Field(default=8000, ge=1, le=65535, description="Port for the HTTP server")
    log_level: str = Field(default=DEFAULT_LOG_LEVEL, description="Root log level")
    log_json: bool = Field(default=True, description="Render log events as JSON lines")
    service_name: str = Field(default=SERVICE_NAME, description="Service identifier")
    service_version: str = Field(default=__version__, description="Service version override")
    environment: str = Field(default="development", description="Deployment environment tag")
    bridge_enabled: bool = Field(
        default=False, description="Expose the peer tool catalog through proxy tools"
    )
    bridge_command: Tuple[str, ...] = Field(
        default=DEFAULT_BRIDGE_COMMAND, description="Command line used to spawn the peer process"
    )
    bridge_probe_command: Tuple[str, ...] = Field(
        default=DEFAULT_BRIDGE_PROBE_COMMAND,
        description="Command that must succeed for the peer binary to count as installed",
    )
    bridge_tool_prefix: str = Field(
        default=DEFAULT_TOOL_PREFIX,
        min_length=1,
        description="Prefix prepended to peer tool names to form local proxy names",
    )
    bridge_connect_timeout_ms: int = Field(
        default=15000, ge=100, description="Timeout for the peer handshake in milliseconds"
    )
    bridge_list_timeout_ms: int = Field(
        default=15000, ge=100, description="Timeout for fetching the peer tool catalog"
    )
    bridge_call_timeout_ms: int = Field(
        default=60000, ge=100, description="Default timeout for forwarded tool calls"
    )
    bridge_probe_timeout_ms: int = Field(
        default=5000, ge=100, description="Timeout for the peer discovery probe"
    )
    bridge_sync_on_startup: bool = Field(
        default=True, description="Synchronise proxy tools in the background at startup"
    )
    bridge_debug_tools: bool = Field(
        default=True,
        description="Register the bridge_status, bridge_sync and bridge_disconnect tools",
    )

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        from logging import getLevelName

        candidate = value.upper()
        resolved = getLevelName(candidate)
        if isinstance(resolved, int):
            return candidate
        raise ValueError(f"Unsupported log level '{value}'")

    @field_validator("bridge_command", "bridge_probe_command")
    @classmethod
    def _require_command(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        command = tuple(part for part in value if part)
        if not command:
            raise ValueError("Command must contain at least one argument")
        return command

    @field_validator("bridge_tool_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        if any(char.isspace() for char in value):
            raise ValueError("Tool prefix must not contain whitespace")
        return value

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables (respecting .env)."""
        load_dotenv()
        fields = cls.model_fields
        try:
            raw: dict[str, Any] = {
                "host": os.getenv("HOST", fields["host"].default),
                "port": os.getenv("PORT", fields["port"].default),
                "log_level": os.getenv("LOG_LEVEL", fields["log_level"].default),
                "log_json": cls._env_to_bool("LOG_JSON", fields["log_json"].default),
                "service_name": os.getenv("SERVICE_NAME", fields["service_name"].default),
                "service_version": os.getenv(
                    "SERVICE_VERSION", fields["service_version"].default
                ),
                "environment": os.getenv("ENVIRONMENT", fields["environment"].default),
                "bridge_enabled": cls._env_to_bool(
                    "BRIDGE_ENABLED", fields["bridge_enabled"].default
                ),
                "bridge_command": cls._env_to_command(
                    "BRIDGE_COMMAND", fields["bridge_command"].default
                ),
                "bridge_probe_command": cls._env_to_command(
                    "BRIDGE_PROBE_COMMAND", fields["bridge_probe_command"].default
                ),
                "bridge_tool_prefix": os.getenv(
                    "BRIDGE_TOOL_PREFIX", fields["bridge_tool_prefix"].default
                ),
                "bridge_connect_timeout_ms": cls._env_to_int(
                    "BRIDGE_CONNECT_TIMEOUT_MS", fields["bridge_connect_timeout_ms"].default
                ),
                "bridge_list_timeout_ms": cls._env_to_int(
                    "BRIDGE_LIST_TIMEOUT_MS", fields["bridge_list_timeout_ms"].default
                ),
                "bridge_call_timeout_ms": cls._env_to_int(
                    "BRIDGE_CALL_TIMEOUT_MS", fields["bridge_call_timeout_ms"].default
                ),
                "bridge_probe_timeout_ms": cls._env_to_int(
                    "BRIDGE_PROBE_TIMEOUT_MS", fields["bridge_probe_timeout_ms"].default
                ),
                "bridge_sync_on_startup": cls._env_to_bool(
                    "BRIDGE_SYNC_ON_STARTUP", fields["bridge_sync_on_startup"].default
                ),
                "bridge_debug_tools": cls._env_to_bool(
                    "BRIDGE_DEBUG_TOOLS", fields["bridge_debug_tools"].default
                ),
            }
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError("Invalid application configuration") from exc

    @staticmethod
    def _env_to_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"Environment variable {name} must be a boolean expression")

    @staticmethod
    def _env_to_int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"Environment variable {name} must be an integer") from exc

    @staticmethod
    def _env_to_command(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        return tuple(shlex.split(raw))


def load_config() -> AppConfig:
    """Convenience helper to load configuration with error propagation."""
    return AppConfig.from_env()
