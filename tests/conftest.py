import threading
from typing import Any, List, Optional

import pytest

from adapters.base import DatabaseAdapter, RunHandle, TableMeta
from datasources.config import DataSources
from datasources.datasource import DataSource
from query.result import ColumnMeta
from utils.settings import CacheSettings, Settings


class ScriptedAdapter(DatabaseAdapter):
    """Adapter whose backend calls replay a script of row sets or exceptions."""

    engine = "postgres"

    def __init__(self, script: Optional[List[Any]] = None, columns=("value",), delay: Optional[threading.Event] = None):
        super().__init__({})
        self.script = list(script or [])
        self.columns = [ColumnMeta(name=c) for c in columns]
        self.delay = delay
        self.calls: List[Any] = []
        self.reconnects = 0
        self.cancelled: List[RunHandle] = []
        self._calls_lock = threading.Lock()

    def _execute(self, bound, timeout: float, handle: RunHandle):
        with self._calls_lock:
            self.calls.append(bound)
            step = self.script.pop(0) if len(self.script) > 1 else (self.script[0] if self.script else [])
        if self.delay is not None:
            self.delay.wait(timeout=5)
        if isinstance(step, BaseException):
            raise step
        return self.columns, [list(row) for row in step]

    def cancel(self, handle: RunHandle) -> None:
        handle.cancelled = True
        self.cancelled.append(handle)

    def schema(self) -> List[TableMeta]:
        return [TableMeta(schema="public", name="events", columns=[ColumnMeta("id", "integer")])]

    def explain(self, statement: str) -> str:
        return f"Seq Scan ({statement})"

    def reconnect(self) -> None:
        self.reconnects += 1
        super().reconnect()


def make_data_sources(adapters, cache: Optional[CacheSettings] = None) -> DataSources:
    return DataSources(
        {
            source_id: DataSource(
                id=source_id,
                adapter_kind=adapter.engine,
                settings={},
                adapter=adapter,
                default_cache=cache or CacheSettings(),
            )
            for source_id, adapter in adapters.items()
        }
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(retry_backoff=10.0, max_workers=4, anomaly_checks="trend", forecasting="trend")


@pytest.fixture
def sleeps() -> List[float]:
    return []


class RecordingDelivery:
    def __init__(self, broken=()):
        self.broken = set(broken)
        self.sent = []

    def _record(self, kind, target, payload):
        if target in self.broken:
            raise ConnectionError(f"cannot reach {target}")
        self.sent.append((kind, target, payload))

    def send_failing_checks_email(self, recipient, checks):
        self._record("email", recipient, [c.id for c in checks])

    def send_failing_checks_chat(self, channel, checks):
        self._record("chat", channel, [c.id for c in checks])

    def send_state_change_email(self, recipients, check, prior_state, result):
        self._record("change_email", ",".join(recipients), (prior_state.value, check.state.value))

    def send_state_change_chat(self, channels, check, prior_state, result):
        self._record("change_chat", ",".join(channels), (prior_state.value, check.state.value))