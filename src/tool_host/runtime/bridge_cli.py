"""Utility CLI for checking the peer bridge outside the HTTP server."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from peer_bridge.errors import BridgeError

from ..config import load_config
from ..logging import setup_logging
from .factory import build_catalog, build_coordinator, build_probe


def _dump(payload: Any, pretty: bool) -> None:
    indent = 2 if pretty else None
    json.dump(payload, sys.stdout, indent=indent, default=str)
    sys.stdout.write("\n")


def _cmd_probe(args: argparse.Namespace) -> int:
    config = load_config()
    availability = asyncio.run(build_probe(config)())
    _dump(availability.to_dict(), args.pretty)
    return 0 if availability.available else 1


async def _sync_and_report(pretty: bool) -> int:
    config = load_config()
    catalog = build_catalog()
    coordinator = build_coordinator(config, catalog)
    coordinator.set_enabled(True)
    try:
        result = await coordinator.sync("manual")
        status = coordinator.status()
        _dump(
            {
                "sync": result.model_dump(mode="json"),
                "status": status.model_dump(mode="json", by_alias=True),
            },
            pretty,
        )
        return 1 if status.last_error else 0
    finally:
        await coordinator.shutdown()


def _cmd_sync(args: argparse.Namespace) -> int:
    return asyncio.run(_sync_and_report(args.pretty))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Peer bridge tooling")
    subparsers = parser.add_subparsers(dest="command", required=True)

    probe_parser = subparsers.add_parser(
        "probe", help="Run the discovery probe and report whether the peer binary is installed"
    )
    probe_parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    probe_parser.set_defaults(func=_cmd_probe)

    sync_parser = subparsers.add_parser(
        "sync", help="Connect to the peer once and print the proxied tool names"
    )
    sync_parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    sync_parser.set_defaults(func=_cmd_sync)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging("WARNING")
    try:
        return args.func(args)
    except BridgeError as exc:
        parser.error(str(exc))
    return 1


if __name__ == "__main__":  # pragma: no cover - manual execution path
    raise SystemExit(main())
