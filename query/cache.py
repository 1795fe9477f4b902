from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional

from query.result import Result
from utils.settings import CacheSettings

Runner = Callable[[], Result]
StorePolicy = Callable[[Result], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def store_successes(result: Result) -> bool:
    return result.ok


def store_policy(settings: CacheSettings) -> StorePolicy:
    if settings.mode == "off":
        return lambda result: False
    if settings.mode == "slow":
        return lambda result: result.ok and result.runtime >= settings.slow_threshold
    return store_successes


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    result: Result
    expires_at: datetime


class ResultCache:
    """Fingerprint -> recent Result, with one in-flight run per fingerprint.

    Expiry is checked on read; stale entries are only replaced by a later run.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, Future] = {}
        self._lock = Lock()

    def _fresh(self, fingerprint: str) -> Optional[CacheEntry]:
        entry = self._entries.get(fingerprint)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry

    def lookup(self, fingerprint: str) -> Optional[Result]:
        with self._lock:
            entry = self._fresh(fingerprint)
        return entry.result if entry else None

    def fetch_or_run(
        self,
        fingerprint: str,
        runner: Runner,
        ttl: float,
        force_refresh: bool = False,
        should_store: Optional[StorePolicy] = None,
    ) -> Result:
        with self._lock:
            if not force_refresh:
                entry = self._fresh(fingerprint)
                if entry is not None:
                    return entry.result
            flight = self._inflight.get(fingerprint)
            leader = flight is None
            if leader:
                flight = Future()
                self._inflight[fingerprint] = flight

        if not leader:
            return flight.result()

        try:
            result = runner()
            if ttl > 0 and (should_store or store_successes)(result):
                cached_at = self._clock()
                result = result.with_cached_at(cached_at)
                entry = CacheEntry(fingerprint, result, cached_at + timedelta(seconds=ttl))
                with self._lock:
                    self._entries[fingerprint] = entry
        except BaseException as exc:
            flight.set_exception(exc)
            raise
        else:
            flight.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(fingerprint, None)

    def delete(self, fingerprint: str) -> None:
        with self._lock:
            self._entries.pop(fingerprint, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
