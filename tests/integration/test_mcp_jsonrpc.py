"""Integration coverage for the JSON-RPC MCP transport."""

from __future__ import annotations

import itertools

import pytest
from fastapi.testclient import TestClient

from tool_host.constants import MCP_PROTOCOL_VERSION

pytestmark = pytest.mark.compliance


_id_counter = itertools.count(1)


def jsonrpc_call(
    client: TestClient,
    method: str,
    params: dict | None = None,
    *,
    path: str = "/mcp",
    **kwargs,
):
    request_id = kwargs.pop("id", next(_id_counter))
    payload: dict[str, object] = {"jsonrpc": "2.0", "method": method, "id": request_id}
    if params is not None:
        payload["params"] = params
    return client.post(path, json=payload, **kwargs)


def test_initialize_reports_capabilities(disabled_client: TestClient) -> None:
    response = jsonrpc_call(disabled_client, "initialize", params={"capabilities": {}})
    assert response.status_code == 200
    payload = response.json()
    assert payload["result"]["protocolVersion"] == MCP_PROTOCOL_VERSION
    assert payload["result"]["capabilities"]["tools"]["listChanged"] is True
    assert payload["result"]["serverInfo"]["name"]


def test_ping_and_initialized_notification(disabled_client: TestClient) -> None:
    assert jsonrpc_call(disabled_client, "ping").json()["result"] == {}

    notification = disabled_client.post(
        "/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}
    )
    assert notification.status_code == 202


def test_protocol_errors(disabled_client: TestClient) -> None:
    unknown = jsonrpc_call(disabled_client, "resources/list")
    assert unknown.json()["error"]["code"] == -32601

    invalid_json = disabled_client.post(
        "/mcp", content=b"{not json", headers={"content-type": "application/json"}
    )
    assert invalid_json.status_code == 400
    assert invalid_json.json()["error"]["code"] == -32700

    batch = disabled_client.post("/mcp", json=[{"jsonrpc": "2.0", "method": "ping", "id": 1}])
    assert batch.status_code == 400
    assert batch.json()["error"]["code"] == -32600


def test_tools_list_exposes_admin_tools_only_when_disabled(disabled_client: TestClient) -> None:
    response = jsonrpc_call(disabled_client, "tools/list")
    assert response.status_code == 200
    tools = {entry["name"]: entry for entry in response.json()["result"]["tools"]}
    assert set(tools) == {
        "bridge_call_tool",
        "bridge_disconnect",
        "bridge_list_tools",
        "bridge_status",
        "bridge_sync",
    }
    assert tools["bridge_status"]["annotations"]["readOnlyHint"] is True
    assert "remoteTool" in tools["bridge_call_tool"]["inputSchema"]["properties"]


def test_disabled_bridge_call_is_a_tool_error(disabled_client: TestClient) -> None:
    response = jsonrpc_call(
        disabled_client,
        "tools/call",
        params={"name": "bridge_call_tool", "arguments": {"remoteTool": "BuildProject"}},
    )
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["isError"] is True
    assert result["structuredContent"]["error"]["code"] == "FEATURE_NOT_ENABLED"
    assert result["content"][0]["text"].startswith("FEATURE_NOT_ENABLED:")


def test_unknown_tool_is_invalid_params(disabled_client: TestClient) -> None:
    response = jsonrpc_call(
        disabled_client, "tools/call", params={"name": "xcode_tools_BuildProject"}
    )
    error = response.json()["error"]
    assert error["code"] == -32602
    assert "not registered" in error["message"]


def test_invalid_arguments_are_invalid_params(disabled_client: TestClient) -> None:
    response = jsonrpc_call(
        disabled_client,
        "tools/call",
        params={"name": "bridge_call_tool", "arguments": {"timeoutMs": 5}},
    )
    assert response.json()["error"]["code"] == -32602


def test_sync_then_call_proxied_tool(bridge) -> None:
    sync = jsonrpc_call(bridge.client, "tools/call", params={"name": "bridge_sync"})
    assert sync.status_code == 200
    summary = sync.json()["result"]["structuredContent"]
    assert summary["sync"] == {"added": 2, "updated": 0, "removed": 0, "total": 2}
    assert summary["status"]["connected"] is True

    listed = jsonrpc_call(bridge.client, "tools/list").json()["result"]["tools"]
    proxies = {entry["name"]: entry for entry in listed if entry["name"].startswith("xcode_tools_")}
    assert set(proxies) == {"xcode_tools_BuildProject", "xcode_tools_XcodeListWindows"}
    assert proxies["xcode_tools_BuildProject"]["annotations"]["readOnlyHint"] is False
    assert proxies["xcode_tools_XcodeListWindows"]["annotations"]["readOnlyHint"] is True
    assert proxies["xcode_tools_BuildProject"]["_meta"]["provenance"]["remoteTool"] == "BuildProject"

    call = jsonrpc_call(
        bridge.client,
        "tools/call",
        params={
            "name": "xcode_tools_BuildProject",
            "arguments": {"scheme": "App", "configuration": "Release"},
        },
    )
    assert call.status_code == 200
    result = call.json()["result"]
    assert result["isError"] is False
    assert result["content"] == [{"type": "text", "text": "BuildProject ok"}]
    assert bridge.session.calls == [("BuildProject", {"scheme": "App", "configuration": "Release"})]


def test_proxied_tool_rejects_arguments_outside_schema(bridge) -> None:
    jsonrpc_call(bridge.client, "tools/call", params={"name": "bridge_sync"})

    response = jsonrpc_call(
        bridge.client,
        "tools/call",
        params={"name": "xcode_tools_BuildProject", "arguments": {"configuration": "Profile"}},
    )

    assert response.json()["error"]["code"] == -32602
    assert bridge.session.calls == []


def test_bridge_list_and_call_by_remote_name(bridge) -> None:
    listed = jsonrpc_call(
        bridge.client, "tools/call", params={"name": "bridge_list_tools", "arguments": {}}
    ).json()["result"]
    assert listed["structuredContent"]["toolCount"] == 2

    called = jsonrpc_call(
        bridge.client,
        "tools/call",
        params={
            "name": "bridge_call_tool",
            "arguments": {"remoteTool": " XcodeListWindows ", "arguments": {}, "timeoutMs": 500},
        },
    ).json()["result"]
    assert called["isError"] is False
    assert bridge.session.calls == [("XcodeListWindows", {})]
