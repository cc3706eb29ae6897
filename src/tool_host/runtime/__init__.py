"""Runtime helper factories for the tool host."""

from .factory import build_catalog, build_client_factory, build_coordinator, build_probe

__all__ = ["build_catalog", "build_client_factory", "build_coordinator", "build_probe"]
