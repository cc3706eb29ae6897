"""FastAPI application factory for the tool host."""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from starlette import status
from starlette.responses import Response

from peer_bridge.coordinator import BridgeCoordinator

from .config import AppConfig, load_config
from .errors import (
    DetailedHTTPException,
    ErrorCode,
    ErrorDetail,
    default_message,
    error_detail,
    error_response,
    map_status_to_code,
    redact_sensitive,
)
from .logging import get_logger, setup_logging
from .middleware import RequestContextMiddleware
from .routes import jsonrpc as jsonrpc_routes
from .routes import mcp as mcp_routes
from .runtime.factory import build_catalog, build_coordinator
from .tools.catalog import ToolCatalog
from .tools.registry import register_builtin_tools


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    uptimeSeconds: float
    bridgeEnabled: bool
    bridgeConnected: bool
    toolCount: int


def _coerce_details(raw: Any) -> list[ErrorDetail]:
    items = raw if isinstance(raw, list) else [raw]
    details: list[ErrorDetail] = []
    for item in items:
        if not item:
            continue
        if isinstance(item, ErrorDetail):
            details.append(item)
        elif isinstance(item, dict):
            details.append(
                error_detail(
                    str(item.get("issue") or item.get("message") or item),
                    field=item.get("field"),
                    hint=item.get("hint"),
                    code=item.get("code"),
                )
            )
        else:
            details.append(error_detail(str(item)))
    return details


def _describe_http_exception(
    exc: HTTPException,
) -> tuple[ErrorCode, str, bool, list[ErrorDetail]]:
    """Split an HTTPException into envelope code, message, retry hint and details."""

    detail = exc.detail
    if isinstance(detail, dict):
        message = detail.get("message") or default_message(exc.status_code)
        details = _coerce_details(detail.get("details"))
    else:
        message = str(detail) if detail else default_message(exc.status_code)
        details = []

    code = map_status_to_code(exc.status_code)
    retryable = False
    if isinstance(exc, DetailedHTTPException):
        code = exc.error_code or code
        details = list(exc.error_details) or details
        retryable = bool(exc.retryable_hint)
    return code, redact_sensitive(message), retryable, details


def _install_error_handlers(app: FastAPI) -> None:
    logger = get_logger(__name__)

    def _correlation_id(request: Request) -> str:
        return getattr(request.state, "correlation_id", None) or uuid.uuid4().hex

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException) -> Response:
        correlation_id = _correlation_id(request)
        code, message, retryable, details = _describe_http_exception(exc)
        logger.warning(
            "http.error",
            status_code=exc.status_code,
            code=code.value,
            message=message,
            correlationId=correlation_id,
        )
        return error_response(
            code=code,
            message=message,
            correlation_id=correlation_id,
            status_code=exc.status_code,
            retryable=retryable,
            details=details or None,
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> Response:
        correlation_id = _correlation_id(request)
        logger.exception("http.unhandled_error", correlationId=correlation_id)
        return error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="Internal server error",
            correlation_id=correlation_id,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            retryable=False,
        )


def create_app(
    config: AppConfig | None = None,
    *,
    coordinator: BridgeCoordinator | None = None,
    catalog: ToolCatalog | None = None,
    log_level: str | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    ``catalog`` and ``coordinator`` may be injected (tests do this); when a
    coordinator is supplied it must have been built for the same catalog.
    """
    config = config or load_config()
    setup_logging(log_level or config.log_level, json_output=config.log_json)
    logger = get_logger(__name__)

    catalog = catalog if catalog is not None else build_catalog()
    coordinator = coordinator or build_coordinator(config, catalog)
    register_builtin_tools(catalog, coordinator, include_debug=config.bridge_debug_tools)

    app = FastAPI(title="MCP Tool Bridge", version=config.service_version)
    app.state.config = config
    app.state.catalog = catalog
    app.state.coordinator = coordinator
    app.state.tool_offload = True
    app.state.started_at = time.monotonic()
    app.add_middleware(RequestContextMiddleware)
    _install_error_handlers(app)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        bridge = coordinator.status()
        return HealthResponse(
            service=config.service_name,
            version=config.service_version,
            uptimeSeconds=time.monotonic() - app.state.started_at,
            bridgeEnabled=bridge.enabled,
            bridgeConnected=bridge.connected,
            toolCount=len(catalog),
        )

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(
            generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
            headers={"Cache-Control": "no-store"},
        )

    app.include_router(jsonrpc_routes.router)
    app.include_router(mcp_routes.router)

    @app.on_event("startup")
    async def _on_startup() -> None:
        logger.info(
            "application.startup",
            service=config.service_name,
            version=config.service_version,
            bridgeEnabled=coordinator.enabled,
            toolCount=len(catalog),
        )
        if coordinator.enabled and config.bridge_sync_on_startup:
            coordinator.schedule_sync("startup")

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await coordinator.shutdown()
        logger.info("application.shutdown", service=config.service_name)

    return app
