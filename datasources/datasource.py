from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from adapters.base import DatabaseAdapter, TableMeta
from query.result import Result
from query.statement import BoundStatement, Statement
from utils.log import get_logger
from utils.settings import CacheSettings

logger = get_logger(__name__)


class DataSource:
    """A configured backend: id + adapter kind + settings, owning one adapter for the process lifetime."""

    def __init__(
        self,
        id: str,
        adapter_kind: str,
        settings: Mapping[str, Any],
        adapter: DatabaseAdapter,
        default_timeout: float = 15.0,
        default_cache: Optional[CacheSettings] = None,
    ):
        self._id = id
        self._adapter_kind = adapter_kind
        self._settings = dict(settings)
        self._adapter = adapter
        self._timeout = float(self._settings.get("timeout", default_timeout))
        self._cache = CacheSettings.from_dict(self._settings.get("cache"), base=default_cache)

    @property
    def id(self) -> str:
        return self._id

    @property
    def adapter_kind(self) -> str:
        return self._adapter_kind

    @property
    def settings(self) -> Dict[str, Any]:
        return dict(self._settings)

    @property
    def adapter(self) -> DatabaseAdapter:
        return self._adapter

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def cache(self) -> CacheSettings:
        return self._cache

    def bind(self, statement: Statement) -> BoundStatement:
        return statement.bind(self._adapter.dialect)

    def run(self, bound: BoundStatement, timeout: Optional[float] = None) -> Result:
        return self._adapter.run(bound, self._timeout if timeout is None else timeout)

    def schema(self) -> List[TableMeta]:
        return self._adapter.schema()

    def explain(self, statement: str) -> str:
        return self._adapter.explain(statement)

    def reconnect(self) -> None:
        logger.info("reconnecting data source", extra={"data_source": self._id})
        self._adapter.reconnect()

    def __repr__(self) -> str:
        return f"DataSource(id={self._id!r}, adapter_kind={self._adapter_kind!r})"
