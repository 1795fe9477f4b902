import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from query.cache import ResultCache, store_policy
from query.result import ErrorKind, Result
from utils.settings import CacheSettings


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class CountingRunner:
    def __init__(self, result=None, gate=None):
        self.calls = 0
        self.result = result or Result.success(["n"], [[1]], runtime=0.5)
        self.gate = gate
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return self.result


def test_second_call_is_served_from_cache_with_same_cached_at():
    clock = Clock()
    cache = ResultCache(clock=clock)
    runner = CountingRunner()

    first = cache.fetch_or_run("fp", runner, ttl=60)
    clock.advance(5)
    second = cache.fetch_or_run("fp", runner, ttl=60)

    assert runner.calls == 1
    assert first.cached_at == clock.now - timedelta(seconds=5)
    assert second.cached_at == first.cached_at
    assert cache.lookup("fp") is second


def test_force_refresh_runs_again_and_overwrites():
    clock = Clock()
    cache = ResultCache(clock=clock)
    runner = CountingRunner()

    first = cache.fetch_or_run("fp", runner, ttl=60)
    clock.advance(1)
    refreshed = cache.fetch_or_run("fp", runner, ttl=60, force_refresh=True)

    assert runner.calls == 2
    assert refreshed.cached_at > first.cached_at
    assert cache.lookup("fp").cached_at == refreshed.cached_at


def test_entries_expire_on_read():
    clock = Clock()
    cache = ResultCache(clock=clock)
    runner = CountingRunner()

    cache.fetch_or_run("fp", runner, ttl=60)
    clock.advance(61)
    assert cache.lookup("fp") is None
    cache.fetch_or_run("fp", runner, ttl=60)
    assert runner.calls == 2


def test_errors_are_not_stored():
    cache = ResultCache()
    runner = CountingRunner(result=Result.failure("boom", ErrorKind.SYNTAX))

    result = cache.fetch_or_run("fp", runner, ttl=60)
    assert result.cached_at is None
    assert len(cache) == 0


def test_concurrent_callers_share_one_backend_call():
    cache = ResultCache()
    gate = threading.Event()
    runner = CountingRunner(gate=gate)
    results = []

    def call():
        results.append(cache.fetch_or_run("fp", runner, ttl=60))

    threads = [threading.Thread(target=call) for _ in range(8)]
    for t in threads:
        t.start()
    # let every thread reach the in-flight wait before releasing the leader
    while runner.calls == 0:
        time.sleep(0.01)
    time.sleep(0.1)
    gate.set()
    for t in threads:
        t.join(timeout=5)

    assert runner.calls == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_leader_exception_reaches_followers():
    cache = ResultCache()

    def broken():
        raise RuntimeError("adapter bug")

    with pytest.raises(RuntimeError):
        cache.fetch_or_run("fp", broken, ttl=60)
    # nothing in flight afterwards
    assert cache.fetch_or_run("fp", CountingRunner(), ttl=60).ok


@pytest.mark.parametrize(
    "mode, runtime, stored",
    [("all", 0.1, True), ("slow", 0.1, False), ("slow", 20.0, True), ("off", 20.0, False)],
)
def test_store_policy_follows_cache_mode(mode, runtime, stored):
    policy = store_policy(CacheSettings(mode=mode, slow_threshold=15))
    assert policy(Result.success(["n"], [[1]], runtime=runtime)) is stored
    assert policy(Result.failure("x")) is False
