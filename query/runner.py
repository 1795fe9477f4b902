from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from datasources.datasource import DataSource
from query.cache import ResultCache, store_policy
from query.result import Result
from query.statement import BoundStatement, Statement
from utils.log import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class RunOutcome:
    result: Result
    attempts: int
    bound: BoundStatement

    @property
    def fingerprint(self) -> str:
        return self.bound.fingerprint


class RunController:
    """Runs statements through the shared cache, retrying timeouts and lost connections for checks.

    Interactive runs get a single attempt. Scheduled checks (``retry=True``) get
    up to three; each retry waits ``settings.retry_backoff`` seconds, and a lost
    connection triggers ``DataSource.reconnect`` first. The last Result is
    returned as-is once attempts run out.
    """

    def __init__(
        self,
        data_sources: Mapping[str, DataSource],
        cache: ResultCache,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.data_sources = data_sources
        self.cache = cache
        self.settings = settings
        self._sleep = sleep

    def run(
        self,
        statement: Statement,
        refresh_cache: bool = False,
        retry: bool = False,
        label: Optional[str] = None,
    ) -> RunOutcome:
        data_source = self.data_sources[statement.data_source_id]
        bound = data_source.bind(statement)
        max_attempts = MAX_ATTEMPTS if retry else 1
        label = label or bound.fingerprint[:12]

        attempts = 0
        while True:
            attempts += 1
            result = self._execute(data_source, bound, force_refresh=refresh_cache or attempts > 1)
            if attempts >= max_attempts:
                break
            if result.timed_out:
                logger.info("[timeout]", extra={"query": label, "data_source": data_source.id, "attempt": attempts})
            elif result.connection_lost:
                data_source.reconnect()
                logger.info("[reconnect]", extra={"query": label, "data_source": data_source.id, "attempt": attempts})
            else:
                break
            self._sleep(self.settings.retry_backoff)

        return RunOutcome(result=result, attempts=attempts, bound=bound)

    def _execute(self, data_source: DataSource, bound: BoundStatement, force_refresh: bool) -> Result:
        cache_settings = data_source.cache
        ttl = cache_settings.ttl_seconds if cache_settings.enabled else 0
        return self.cache.fetch_or_run(
            bound.fingerprint,
            lambda: data_source.run(bound),
            ttl=ttl,
            force_refresh=force_refresh,
            should_store=store_policy(cache_settings),
        )

    def clear_cache(self, statement: Optional[Statement] = None) -> Optional[str]:
        """Drop the cached result for ``statement``, or every cached result when omitted."""
        if statement is None:
            self.cache.clear()
            return None
        bound = self.data_sources[statement.data_source_id].bind(statement)
        self.cache.delete(bound.fingerprint)
        return bound.fingerprint
