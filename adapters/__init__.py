"""Backend adapters behind one execution contract."""

from adapters.factory import AdapterRegistry, UnsupportedAdapter, build_adapter_registry, get_adapter

__all__ = ["AdapterRegistry", "UnsupportedAdapter", "build_adapter_registry", "get_adapter"]
