import sys
import threading
import types

from adapters.mysql import MySQLAdapter
from adapters.postgres import PostgresAdapter
from conftest import ScriptedAdapter
from query.result import TIMEOUT_MESSAGE, ErrorKind
from query.statement import Statement


class ClientBoundedAdapter(ScriptedAdapter):
    supports_server_timeout = False


class FakeConnection:
    def close(self):
        pass


def _recording_driver(calls):
    def connect(*args, **kwargs):
        calls.append((args, kwargs))
        return FakeConnection()

    return types.SimpleNamespace(connect=connect)


def test_client_bounded_run_cancels_after_timeout():
    release = threading.Event()
    adapter = ClientBoundedAdapter([[[1]]], delay=release)
    try:
        result = adapter.run(Statement.build("SELECT 1", "main").bind(adapter.dialect), timeout=0.1)
    finally:
        release.set()

    assert result.timed_out
    assert result.error == TIMEOUT_MESSAGE
    assert result.error_kind == ErrorKind.STATEMENT_TIMEOUT
    assert len(adapter.cancelled) == 1
    assert adapter.cancelled[0].cancelled


def test_client_bounded_run_returns_rows_within_timeout():
    adapter = ClientBoundedAdapter([[[1], [2]]])

    result = adapter.run(Statement.build("SELECT 1", "main").bind(adapter.dialect), timeout=5)

    assert result.rows == [[1], [2]]
    assert adapter.cancelled == []


def test_postgres_connect_timeout_follows_run_timeout(monkeypatch):
    calls = []
    monkeypatch.setitem(sys.modules, "psycopg", _recording_driver(calls))
    adapter = PostgresAdapter(source_config={"url": "postgresql://warehouse/db"})

    adapter._connect(2.5)
    adapter._connect()

    assert calls[0] == (("postgresql://warehouse/db",), {"autocommit": True, "connect_timeout": 3})
    assert calls[1][1]["connect_timeout"] == 10


def test_mysql_connect_timeout_prefers_source_setting(monkeypatch):
    calls = []
    monkeypatch.delenv("DB_PORT", raising=False)
    monkeypatch.setitem(sys.modules, "mysql.connector", None)
    monkeypatch.setitem(sys.modules, "pymysql", _recording_driver(calls))
    adapter = MySQLAdapter(
        source_config={"host": "db", "dbname": "shop", "user": "app", "password": "secret", "connect_timeout": 4}
    )

    adapter._connect(30)

    kwargs = calls[0][1]
    assert kwargs["connect_timeout"] == 4
    assert kwargs["database"] == "shop"
    assert kwargs["port"] == 3306
