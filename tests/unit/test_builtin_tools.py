"""Tests for the bridge administration tools registered at startup."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from peer_bridge.tools.bridge_call_tool import BridgeCallToolRequest
from tool_host.config import AppConfig
from tool_host.runtime.factory import build_catalog, build_coordinator
from tool_host.tools.invoke import invoke_tool
from tool_host.tools.registry import get_builtin_tools, register_builtin_tools


@pytest.fixture()
def catalog(peer_fakes):
    catalog = build_catalog()
    coordinator = build_coordinator(
        AppConfig(),
        catalog,
        client_factory=peer_fakes.client_factory_for(peer_fakes.SessionFactory()),
        probe=peer_fakes.Probe(),
    )
    register_builtin_tools(catalog, coordinator)
    return catalog


def test_all_admin_tools_are_registered_unprefixed(catalog) -> None:
    assert list(catalog.list_names()) == sorted(get_builtin_tools())
    assert catalog.revision == 1


def test_admin_tool_metadata(catalog) -> None:
    described = {entry.name: entry.describe() for entry in catalog.list_entries()}

    assert described["bridge_list_tools"]["annotations"]["readOnlyHint"] is True
    assert described["bridge_sync"]["annotations"]["readOnlyHint"] is False
    assert described["bridge_call_tool"]["inputSchema"]["required"] == ["remoteTool"]
    assert described["bridge_status"]["_meta"]["provenance"] == {"source": "builtin"}


def test_call_request_normalises_and_bounds_fields() -> None:
    request = BridgeCallToolRequest.model_validate({"remoteTool": "  XcodeRead ", "timeoutMs": 10})

    assert request.remote_tool == "XcodeRead"
    assert request.arguments == {}
    with pytest.raises(ValidationError):
        BridgeCallToolRequest.model_validate({"remoteTool": "   "})
    with pytest.raises(ValidationError):
        BridgeCallToolRequest.model_validate({"remoteTool": "XcodeRead", "timeoutMs": 0})


def test_status_tool_runs_through_host_invocation(catalog) -> None:
    response = asyncio.run(invoke_tool(catalog, "bridge_status", {}, offload=False))

    assert response.is_error is False
    assert response.structured_content["enabled"] is False
    assert response.structured_content["proxiedTools"] == []


def test_debug_tools_can_be_left_out(peer_fakes) -> None:
    catalog = build_catalog()
    coordinator = build_coordinator(
        AppConfig(),
        catalog,
        client_factory=peer_fakes.client_factory_for(peer_fakes.SessionFactory()),
        probe=peer_fakes.Probe(),
    )

    register_builtin_tools(catalog, coordinator, include_debug=False)

    assert list(catalog.list_names()) == ["bridge_call_tool", "bridge_list_tools"]
    assert {name for name, tool in get_builtin_tools().items() if tool.debug} == {
        "bridge_disconnect",
        "bridge_status",
        "bridge_sync",
    }
