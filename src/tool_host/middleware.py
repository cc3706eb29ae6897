"""Per-request correlation ids, structured request logs and HTTP metrics."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from typing import Callable

from fastapi import Request
from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .constants import CORRELATION_HEADER
from .logging import bind_context, clear_context, get_logger

logger = get_logger(__name__)

_REQUEST_COUNT = Counter(
    "mcp_http_requests_total",
    "HTTP requests served by the tool host.",
    ("method", "route", "status_code"),
)
_REQUEST_LATENCY = Histogram(
    "mcp_http_request_duration_seconds",
    "Time spent serving HTTP requests.",
    ("method", "route", "status_code"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 60.0),
)
_REQUEST_IN_PROGRESS = Gauge(
    "mcp_http_requests_in_progress",
    "HTTP requests currently being served.",
    ("method", "route"),
)

_CONTEXT_KEYS = ("correlation_id", "http_method", "http_path")


def route_label(request: Request) -> str:
    """Route template for metric labels; raw paths only for unmatched requests."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class _Outcome:
    __slots__ = ("status_code",)

    def __init__(self) -> None:
        self.status_code = 500


@contextmanager
def _observe(method: str, route: str) -> Iterator[_Outcome]:
    outcome = _Outcome()
    in_progress = _REQUEST_IN_PROGRESS.labels(method=method, route=route)
    in_progress.inc()
    started = time.perf_counter()
    try:
        yield outcome
    finally:
        elapsed = time.perf_counter() - started
        labels = {"method": method, "route": route, "status_code": str(outcome.status_code)}
        _REQUEST_LATENCY.labels(**labels).observe(elapsed)
        _REQUEST_COUNT.labels(**labels).inc()
        in_progress.dec()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and record its outcome."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        bind_context(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started = time.perf_counter()
        try:
            with _observe(request.method.upper(), route_label(request)) as outcome:
                response = await call_next(request)
                outcome.status_code = response.status_code
            response.headers[CORRELATION_HEADER] = correlation_id
            logger.info(
                "request.complete",
                status_code=response.status_code,
                durationMs=round((time.perf_counter() - started) * 1000, 3),
            )
            return response
        except Exception:
            logger.exception(
                "request.error", durationMs=round((time.perf_counter() - started) * 1000, 3)
            )
            raise
        finally:
            clear_context(*_CONTEXT_KEYS)


__all__ = ["RequestContextMiddleware", "route_label"]
