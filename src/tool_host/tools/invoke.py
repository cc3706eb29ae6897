"""Shared tool invocation path for the JSON-RPC and REST transports."""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, Optional

from prometheus_client import Counter, Gauge, Histogram

from ..logging import get_logger
from ..util.concurrency import call_handler
from .catalog import ToolCatalog
from .responses import ToolResponse, normalize_tool_result

logger = get_logger(__name__)

_TOOL_IN_PROGRESS = Gauge(
    "mcp_tool_invocations_in_progress",
    "Number of MCP tool invocations currently in progress.",
    ("tool",),
)
_TOOL_COUNT = Counter(
    "mcp_tool_invocations_total",
    "Total MCP tool invocations labelled by tool and outcome.",
    ("tool", "status"),
)
_TOOL_LATENCY = Histogram(
    "mcp_tool_duration_seconds",
    "Latency of MCP tool invocations labelled by tool and outcome.",
    ("tool", "status"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)


async def invoke_tool(
    catalog: ToolCatalog,
    name: str,
    arguments: Optional[Mapping[str, Any]] = None,
    *,
    offload: bool = True,
) -> ToolResponse:
    """Validate ``arguments`` and run the tool registered under ``name``.

    Raises:
        ToolCatalogError: If no tool is registered under ``name``.
        pydantic.ValidationError: If the arguments are rejected.
    """

    entry = catalog.get(name)
    payload = dict(arguments or {})
    entry.spec.input_validator.validate(payload)

    status_label = "success"
    start_time = time.perf_counter()
    _TOOL_IN_PROGRESS.labels(name).inc()
    try:
        result = await call_handler(entry.handler, payload, offload=offload)
        response = normalize_tool_result(result)
        if response.is_error:
            status_label = "tool_error"
    except Exception:
        status_label = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        _TOOL_IN_PROGRESS.labels(name).dec()
        _TOOL_COUNT.labels(name, status_label).inc()
        _TOOL_LATENCY.labels(name, status_label).observe(duration)
        logger.info(
            "tool.invoked",
            tool=name,
            status=status_label,
            durationMs=round(duration * 1000, 3),
        )
    return response


__all__ = ["invoke_tool"]
