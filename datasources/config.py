from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Optional

from adapters.factory import AdapterRegistry, build_adapter_registry
from datasources.datasource import DataSource
from utils.settings import Settings


class UnknownDataSource(KeyError):
    def __init__(self, data_source_id: str):
        super().__init__(data_source_id)
        self.data_source_id = data_source_id

    def __str__(self) -> str:
        return f"Unknown data source: {self.data_source_id}"


class DataSources(Mapping[str, DataSource]):
    def __init__(self, sources: Optional[Dict[str, DataSource]] = None):
        self._sources: Dict[str, DataSource] = dict(sources or {})

    def __getitem__(self, data_source_id: str) -> DataSource:
        try:
            return self._sources[data_source_id]
        except KeyError:
            raise UnknownDataSource(data_source_id) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def describe(self) -> List[Dict[str, str]]:
        return [{"id": ds.id, "adapter": ds.adapter_kind} for ds in self._sources.values()]

    def close(self) -> None:
        for ds in self._sources.values():
            ds.adapter.close()


def load_data_sources(settings: Settings, registry: Optional[AdapterRegistry] = None) -> DataSources:
    registry = registry or build_adapter_registry()
    sources: Dict[str, DataSource] = {}
    for source_id, raw in settings.data_sources.items():
        raw = dict(raw)
        kind = str(raw.pop("adapter", "postgres"))
        adapter = registry.create(kind, raw)
        sources[source_id] = DataSource(
            id=source_id,
            adapter_kind=kind,
            settings=raw,
            adapter=adapter,
            default_timeout=settings.timeout,
            default_cache=settings.cache,
        )
    return DataSources(sources)
