"""Thread-safe catalog of the tools this host exposes to its clients."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Optional

from peer_bridge.schema import SchemaValidator, permissive_validator

from ..logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[[dict[str, Any]], Any]
CatalogListener = Callable[[int], None]


class ToolCatalogError(RuntimeError):
    """Raised when catalog operations fail."""


@dataclass(frozen=True)
class ToolSpec:
    """Registration metadata for one host tool."""

    description: str = ""
    input_validator: SchemaValidator = field(default_factory=permissive_validator)
    input_schema: Mapping[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    output_schema: Optional[Mapping[str, Any]] = None
    title: Optional[str] = None
    annotations: Mapping[str, Any] = field(default_factory=dict)
    provenance: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    spec: ToolSpec
    handler: ToolHandler

    def describe(self) -> dict[str, Any]:
        """Return the MCP ``tools/list`` representation of this entry."""

        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.spec.description,
            "inputSchema": dict(self.spec.input_schema),
        }
        if self.spec.title:
            payload["title"] = self.spec.title
        if self.spec.output_schema is not None:
            payload["outputSchema"] = dict(self.spec.output_schema)
        if self.spec.annotations:
            payload["annotations"] = dict(self.spec.annotations)
        if self.spec.provenance:
            payload["_meta"] = {"provenance": dict(self.spec.provenance)}
        return payload


class RegisteredTool:
    """Handle returned by :meth:`ToolCatalog.register`."""

    __slots__ = ("_catalog", "_entry", "_removed")

    def __init__(self, catalog: ToolCatalog, entry: CatalogEntry) -> None:
        self._catalog = catalog
        self._entry = entry
        self._removed = False

    @property
    def name(self) -> str:
        return self._entry.name

    @property
    def removed(self) -> bool:
        return self._removed

    def remove(self) -> None:
        """Unregister the tool; removing twice is a no-op."""
        if self._removed:
            return
        self._catalog._remove_entry(self._entry)
        self._removed = True


class ToolCatalog:
    """In-memory tool catalog with change notification."""

    def __init__(self) -> None:
        self._entries: MutableMapping[str, CatalogEntry] = {}
        self._listeners: list[CatalogListener] = []
        self._revision = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def register(self, name: str, spec: ToolSpec, handler: ToolHandler) -> RegisteredTool:
        """Add a tool under ``name``.

        Raises:
            ToolCatalogError: If ``name`` is empty or already registered.
        """

        if not name:
            raise ToolCatalogError("Tool name must not be empty")
        entry = CatalogEntry(name=name, spec=spec, handler=handler)
        with self._lock:
            if name in self._entries:
                raise ToolCatalogError(f"Tool '{name}' is already registered")
            self._entries[name] = entry
        return RegisteredTool(self, entry)

    def _remove_entry(self, entry: CatalogEntry) -> None:
        with self._lock:
            # Only drop the exact entry this handle registered.
            if self._entries.get(entry.name) is entry:
                del self._entries[entry.name]

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #
    def get(self, name: str) -> CatalogEntry:
        with self._lock:
            try:
                return self._entries[name]
            except KeyError as exc:
                raise ToolCatalogError(f"Tool '{name}' is not registered") from exc

    def contains(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def list_entries(self) -> tuple[CatalogEntry, ...]:
        with self._lock:
            return tuple(self._entries[name] for name in sorted(self._entries))

    def list_names(self) -> Iterable[str]:
        with self._lock:
            return tuple(sorted(self._entries))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------ #
    # Change notification
    # ------------------------------------------------------------------ #
    @property
    def revision(self) -> int:
        return self._revision

    def subscribe(self, listener: CatalogListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def notify_catalog_changed(self) -> None:
        with self._lock:
            self._revision += 1
            revision = self._revision
            listeners = tuple(self._listeners)
        logger.debug("catalog.changed", revision=revision, toolCount=len(self))
        for listener in listeners:
            try:
                listener(revision)
            except Exception:  # noqa: BLE001 - a listener must not break notification
                logger.exception("catalog.listener_failed", revision=revision)


__all__ = [
    "CatalogEntry",
    "RegisteredTool",
    "ToolCatalog",
    "ToolCatalogError",
    "ToolHandler",
    "ToolSpec",
]
