from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from adapters.base import AdapterError, DatabaseAdapter
from adapters.druid import DruidAdapter
from adapters.elasticsearch import ElasticsearchAdapter
from adapters.mysql import MySQLAdapter
from adapters.postgres import PostgresAdapter
from adapters.sqlite import SQLiteAdapter

AdapterFactory = Callable[[Dict[str, Any]], DatabaseAdapter]


class UnsupportedAdapter(AdapterError):
    pass


class AdapterRegistry:
    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        self._factories[name.strip().lower()] = factory

    def names(self) -> List[str]:
        return sorted(self._factories)

    def create(self, name: str, source_config: Optional[Dict[str, Any]] = None) -> DatabaseAdapter:
        kind = (name or "").strip().lower()
        factory = self._factories.get(kind)
        if factory is None:
            raise UnsupportedAdapter(f"Unsupported adapter: {kind or '<empty>'}")
        return factory(dict(source_config or {}))


def build_adapter_registry() -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register("postgres", lambda cfg: PostgresAdapter(source_config=cfg))
    registry.register("postgresql", lambda cfg: PostgresAdapter(source_config=cfg))
    registry.register("mysql", lambda cfg: MySQLAdapter(source_config=cfg))
    registry.register("sqlite", lambda cfg: SQLiteAdapter(source_config=cfg))
    registry.register("elasticsearch", lambda cfg: ElasticsearchAdapter(source_config=cfg))
    registry.register("druid", lambda cfg: DruidAdapter(source_config=cfg))
    return registry


def get_adapter(
    adapter_kind: str,
    source_config: Optional[Dict[str, Any]] = None,
    registry: Optional[AdapterRegistry] = None,
) -> DatabaseAdapter:
    return (registry or build_adapter_registry()).create(adapter_kind, source_config)
