"""Fixtures wiring the FastAPI app to an in-process fake peer."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from tool_host.app import create_app
from tool_host.config import AppConfig
from tool_host.runtime.factory import build_catalog, build_coordinator

PEER_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "scheme": {"type": "string", "description": "Scheme to build"},
        "configuration": {"enum": ["Debug", "Release"]},
    },
    "required": ["scheme"],
}


@pytest.fixture()
def bridge(peer_fakes) -> Iterator[SimpleNamespace]:
    """App with the bridge enabled and a scripted peer behind it."""

    session = peer_fakes.Session(
        [
            peer_fakes.make_tool("BuildProject", inputSchema=PEER_INPUT_SCHEMA),
            peer_fakes.make_tool("XcodeListWindows"),
        ]
    )
    factory = peer_fakes.SessionFactory(session)
    probe = peer_fakes.Probe()
    config = AppConfig(bridge_enabled=True, bridge_sync_on_startup=False)
    catalog = build_catalog()
    coordinator = build_coordinator(
        config,
        catalog,
        client_factory=peer_fakes.client_factory_for(factory),
        probe=probe,
    )
    app = create_app(config=config, coordinator=coordinator, catalog=catalog)
    with TestClient(app) as client:
        yield SimpleNamespace(
            client=client,
            session=session,
            factory=factory,
            probe=probe,
            coordinator=coordinator,
        )


@pytest.fixture()
def disabled_client() -> Iterator[TestClient]:
    with TestClient(create_app(config=AppConfig())) as client:
        yield client
