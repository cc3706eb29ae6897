"""Host tool catalog and invocation helpers."""

from .catalog import CatalogEntry, RegisteredTool, ToolCatalog, ToolCatalogError, ToolSpec

__all__ = ["CatalogEntry", "RegisteredTool", "ToolCatalog", "ToolCatalogError", "ToolSpec"]
