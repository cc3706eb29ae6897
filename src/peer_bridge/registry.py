"""Reconcile the peer tool catalog into proxy tools in the host catalog."""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from tool_host.logging import get_logger
from tool_host.tools.catalog import ToolSpec

from .models import CatalogHandle, ProxyRegistration, RemoteToolDescriptor, SyncResult
from .schema import translate_schema

logger = get_logger(__name__)

DEFAULT_TOOL_PREFIX = "xcode_tools_"
PROVENANCE_SOURCE = "peer_bridge"

ProxyInvoker = Callable[[str, dict[str, Any]], Awaitable[Any]]

# Peer tools whose names read as pure inspection. Everything else is assumed
# to mutate state unless the peer says otherwise.
_READ_ONLY_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"^(?:Xcode)?(?:List|Get|Read|Grep|Glob|LS|Search|Find|Show|Describe|Inspect)(?:[A-Z_]|$)"
    ),
    re.compile(r"^(?:list|get|read|grep|glob|ls|search|find|show|describe|inspect)(?:_|$)"),
    re.compile(r"^DocumentationSearch$"),
)


class HostCatalog(Protocol):
    """Subset of the host catalog API used by the registry."""

    def register(
        self, name: str, spec: ToolSpec, handler: Callable[[dict[str, Any]], Any]
    ) -> CatalogHandle: ...


def local_tool_name(remote_name: str, prefix: str = DEFAULT_TOOL_PREFIX) -> str:
    return f"{prefix}{remote_name}"


def tool_fingerprint(descriptor: RemoteToolDescriptor) -> str:
    """Stable digest of every field that affects the proxy registration."""

    payload = {
        "name": descriptor.name,
        "title": descriptor.title,
        "description": descriptor.description,
        "inputSchema": descriptor.input_schema,
        "outputSchema": descriptor.output_schema,
        "annotations": descriptor.annotations,
        "execution": descriptor.execution,
    }
    try:
        data = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        data = json.dumps(str(payload), sort_keys=True)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def is_read_only_name(local_name: str, prefix: str = DEFAULT_TOOL_PREFIX) -> bool:
    remote_part = local_name[len(prefix) :] if local_name.startswith(prefix) else local_name
    return any(pattern.search(remote_part) for pattern in _READ_ONLY_NAME_PATTERNS)


def infer_annotations(
    descriptor: RemoteToolDescriptor, local_name: str, prefix: str = DEFAULT_TOOL_PREFIX
) -> dict[str, Any]:
    annotations = dict(descriptor.annotations or {})
    if not isinstance(annotations.get("readOnlyHint"), bool):
        annotations["readOnlyHint"] = is_read_only_name(local_name, prefix)
    if descriptor.title and "title" not in annotations:
        annotations["title"] = descriptor.title
    return annotations


def dedupe_catalog(
    remote_tools: Iterable[RemoteToolDescriptor],
) -> dict[str, RemoteToolDescriptor]:
    """Index the catalog by name; a later duplicate replaces an earlier one."""

    catalog: dict[str, RemoteToolDescriptor] = {}
    for descriptor in remote_tools:
        if descriptor.name in catalog:
            logger.warning("bridge.registry.duplicate_remote_tool", remoteTool=descriptor.name)
            del catalog[descriptor.name]
        catalog[descriptor.name] = descriptor
    return catalog


@dataclass(frozen=True)
class SyncPlan:
    """Outcome of diffing current fingerprints against a new catalog."""

    to_add: tuple[RemoteToolDescriptor, ...] = ()
    to_update: tuple[RemoteToolDescriptor, ...] = ()
    to_remove: tuple[str, ...] = ()
    fingerprints: Mapping[str, str] = field(default_factory=dict)


def plan_sync(
    current: Mapping[str, str], remote_tools: Iterable[RemoteToolDescriptor]
) -> SyncPlan:
    """Pure reconciliation of ``{remote_name: fingerprint}`` against ``remote_tools``."""

    catalog = dedupe_catalog(remote_tools)
    to_add: list[RemoteToolDescriptor] = []
    to_update: list[RemoteToolDescriptor] = []
    fingerprints: dict[str, str] = {}
    for name, descriptor in catalog.items():
        fingerprint = tool_fingerprint(descriptor)
        fingerprints[name] = fingerprint
        existing = current.get(name)
        if existing is None:
            to_add.append(descriptor)
        elif existing != fingerprint:
            to_update.append(descriptor)
    to_remove = tuple(sorted(name for name in current if name not in catalog))
    return SyncPlan(
        to_add=tuple(to_add),
        to_update=tuple(to_update),
        to_remove=to_remove,
        fingerprints=fingerprints,
    )


class ProxyRegistry:
    """Owns the proxy registrations mirrored from the peer catalog."""

    def __init__(self, catalog: HostCatalog, *, prefix: str = DEFAULT_TOOL_PREFIX) -> None:
        self._catalog = catalog
        self._prefix = prefix
        self._registrations: dict[str, ProxyRegistration] = {}

    @property
    def prefix(self) -> str:
        return self._prefix

    # ------------------------------------------------------------------ #
    # Reconciliation
    # ------------------------------------------------------------------ #
    def sync(
        self, remote_tools: Iterable[RemoteToolDescriptor], invoker: ProxyInvoker
    ) -> SyncResult:
        current = {name: item.fingerprint for name, item in self._registrations.items()}
        plan = plan_sync(current, remote_tools)

        for descriptor in plan.to_add:
            self._register(descriptor, plan.fingerprints[descriptor.name], invoker)

        for descriptor in plan.to_update:
            self._registrations.pop(descriptor.name).handle.remove()
            self._register(descriptor, plan.fingerprints[descriptor.name], invoker)

        for name in plan.to_remove:
            self._registrations.pop(name).handle.remove()

        return SyncResult(
            added=len(plan.to_add),
            updated=len(plan.to_update),
            removed=len(plan.to_remove),
            total=len(self._registrations),
        )

    def _register(
        self, descriptor: RemoteToolDescriptor, fingerprint: str, invoker: ProxyInvoker
    ) -> None:
        local_name = local_tool_name(descriptor.name, self._prefix)
        input_schema = (
            descriptor.input_schema if isinstance(descriptor.input_schema, Mapping) else {}
        )
        output_schema = (
            descriptor.output_schema if isinstance(descriptor.output_schema, Mapping) else None
        )
        spec = ToolSpec(
            description=descriptor.description or "",
            title=descriptor.title,
            input_validator=translate_schema(descriptor.input_schema),
            input_schema=input_schema or {"type": "object", "properties": {}},
            output_schema=output_schema,
            annotations=infer_annotations(descriptor, local_name, self._prefix),
            provenance={
                "source": PROVENANCE_SOURCE,
                "remoteTool": descriptor.name,
                "fingerprint": fingerprint,
            },
        )
        handle = self._catalog.register(local_name, spec, _forwarder(descriptor.name, invoker))
        self._registrations[descriptor.name] = ProxyRegistration(
            remote_name=descriptor.name,
            local_name=local_name,
            fingerprint=fingerprint,
            handle=handle,
        )

    # ------------------------------------------------------------------ #
    # Teardown and introspection
    # ------------------------------------------------------------------ #
    def clear(self) -> int:
        """Unregister every proxy; returns how many were removed."""

        registrations = list(self._registrations.values())
        self._registrations.clear()
        for registration in registrations:
            registration.handle.remove()
        return len(registrations)

    def get_registered_count(self) -> int:
        return len(self._registrations)

    def get_registered_tool_names(self) -> list[str]:
        return sorted(item.local_name for item in self._registrations.values())

    def get_registration(self, remote_name: str) -> Optional[ProxyRegistration]:
        return self._registrations.get(remote_name)


def _forwarder(remote_name: str, invoker: ProxyInvoker) -> Callable[[dict[str, Any]], Awaitable[Any]]:
    async def _forward(arguments: dict[str, Any]) -> Any:
        return await invoker(remote_name, arguments)

    return _forward


__all__ = [
    "DEFAULT_TOOL_PREFIX",
    "HostCatalog",
    "ProxyInvoker",
    "ProxyRegistry",
    "SyncPlan",
    "dedupe_catalog",
    "infer_annotations",
    "is_read_only_name",
    "local_tool_name",
    "plan_sync",
    "tool_fingerprint",
]
