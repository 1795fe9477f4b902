from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from adapters.factory import AdapterRegistry
from checks.engine import CheckEngine
from checks.notifications import Delivery, NotificationRouter
from datasources.config import DataSources, load_data_sources
from metadata.store import JsonFileRepository, Repository
from mining.registry import AlgorithmRegistry, build_algorithm_registry
from query.cache import ResultCache
from query.runner import RunController
from utils.env_loader import load_environments
from utils.settings import Settings, load_settings


@dataclass
class Runtime:
    settings: Settings
    data_sources: DataSources
    cache: ResultCache
    controller: RunController
    repository: Repository
    algorithms: AlgorithmRegistry
    router: NotificationRouter
    engine: CheckEngine

    def close(self) -> None:
        self.data_sources.close()


def build_runtime(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    delivery: Optional[Delivery] = None,
    adapters: Optional[AdapterRegistry] = None,
) -> Runtime:
    """Wire the process-wide collaborators once: registries, data sources, the shared cache and the engine."""
    load_environments()
    settings = settings or load_settings()
    repository = repository or JsonFileRepository(os.getenv("QUERYWATCH_STORE_DIR", "metadata/store"))

    data_sources = load_data_sources(settings, registry=adapters)
    cache = ResultCache()
    controller = RunController(data_sources, cache, settings)
    algorithms = build_algorithm_registry()
    router = NotificationRouter(delivery)
    engine = CheckEngine(repository, controller, algorithms, router, settings)
    return Runtime(
        settings=settings,
        data_sources=data_sources,
        cache=cache,
        controller=controller,
        repository=repository,
        algorithms=algorithms,
        router=router,
        engine=engine,
    )
