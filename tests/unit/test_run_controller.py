import pytest

from adapters.base import AdapterConnectionError, AdapterSyntaxError, AdapterTimeoutError
from conftest import ScriptedAdapter, make_data_sources
from datasources.config import UnknownDataSource
from query.cache import ResultCache
from query.result import TIMEOUT_MESSAGE, ErrorKind
from query.runner import RunController
from query.statement import InvalidVariablePosition, Statement
from utils.settings import CacheSettings


def _controller(adapter, settings, sleeps, cache=None):
    return RunController(
        make_data_sources({"main": adapter}, cache=cache),
        ResultCache(),
        settings,
        sleep=sleeps.append,
    )


def _timeout():
    return AdapterTimeoutError("canceling statement due to statement timeout")


def test_timeouts_then_success_returns_success_after_three_attempts(settings, sleeps):
    adapter = ScriptedAdapter([_timeout(), _timeout(), [[42]]])
    controller = _controller(adapter, settings, sleeps)

    outcome = controller.run(Statement.build("SELECT 42", "main"), retry=True)

    assert outcome.attempts == 3
    assert outcome.result.ok
    assert outcome.result.rows == [[42]]
    assert len(adapter.calls) == 3
    assert sleeps == [10.0, 10.0]


def test_three_timeouts_return_canonical_timeout(settings, sleeps):
    adapter = ScriptedAdapter([_timeout()])
    controller = _controller(adapter, settings, sleeps)

    outcome = controller.run(Statement.build("SELECT pg_sleep(60)", "main"), retry=True)

    assert outcome.attempts == 3
    assert outcome.result.timed_out
    assert outcome.result.error == TIMEOUT_MESSAGE
    assert len(sleeps) == 2


def test_connection_lost_reconnects_and_retries(settings, sleeps):
    adapter = ScriptedAdapter([AdapterConnectionError("server closed the connection unexpectedly"), [[1]]])
    controller = _controller(adapter, settings, sleeps)

    outcome = controller.run(Statement.build("SELECT 1", "main"), retry=True)

    assert outcome.attempts == 2
    assert outcome.result.ok
    assert adapter.reconnects == 1
    assert sleeps == [10.0]


def test_other_errors_are_not_retried(settings, sleeps):
    adapter = ScriptedAdapter([AdapterSyntaxError('syntax error at or near "SELEC"')])
    controller = _controller(adapter, settings, sleeps)

    outcome = controller.run(Statement.build("SELEC 1", "main"), retry=True)

    assert outcome.attempts == 1
    assert outcome.result.error_kind == ErrorKind.SYNTAX
    assert sleeps == []


def test_ad_hoc_runs_get_a_single_attempt(settings, sleeps):
    adapter = ScriptedAdapter([_timeout(), [[1]]])
    controller = _controller(adapter, settings, sleeps)

    outcome = controller.run(Statement.build("SELECT 1", "main"))

    assert outcome.attempts == 1
    assert outcome.result.timed_out
    assert sleeps == []


def test_ad_hoc_runs_share_the_cache(settings, sleeps):
    adapter = ScriptedAdapter([[[1]]])
    controller = _controller(adapter, settings, sleeps)
    statement = Statement.build("SELECT 1", "main")

    first = controller.run(statement)
    second = controller.run(statement)
    refreshed = controller.run(statement, refresh_cache=True)

    assert len(adapter.calls) == 2
    assert second.result.cached_at == first.result.cached_at
    assert refreshed.fingerprint == first.fingerprint


def test_cache_off_always_hits_backend(settings, sleeps):
    adapter = ScriptedAdapter([[[1]]])
    controller = _controller(adapter, settings, sleeps, cache=CacheSettings(mode="off"))
    statement = Statement.build("SELECT 1", "main")

    controller.run(statement)
    result = controller.run(statement).result

    assert len(adapter.calls) == 2
    assert result.cached_at is None


def test_unknown_data_source_and_bad_variable_raise(settings, sleeps):
    controller = _controller(ScriptedAdapter(), settings, sleeps)
    with pytest.raises(UnknownDataSource):
        controller.run(Statement.build("SELECT 1", "missing"))
    with pytest.raises(InvalidVariablePosition):
        controller.run(Statement.build("SELECT '{x}'", "main", {"x": 1}))


def test_clear_cache_drops_one_statement_or_everything(settings, sleeps):
    adapter = ScriptedAdapter([[[1]]])
    controller = _controller(adapter, settings, sleeps)
    daily = Statement.build("SELECT {day}", "main", {"day": "2024-01-01"})
    weekly = Statement.build("SELECT 7", "main")
    controller.run(daily)
    controller.run(weekly)

    fingerprint = controller.clear_cache(daily)

    assert controller.cache.lookup(fingerprint) is None
    assert len(controller.cache) == 1
    controller.run(daily)
    assert len(adapter.calls) == 3

    assert controller.clear_cache() is None
    assert len(controller.cache) == 0
