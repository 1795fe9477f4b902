import sqlite3

import pytest

from adapters.factory import UnsupportedAdapter, get_adapter
from adapters.sqlite import SQLiteAdapter
from query.result import TIMEOUT_MESSAGE, ErrorKind
from query.statement import Statement


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "records.db"
    conn = sqlite3.connect(str(path))
    try:
        cur = conn.cursor()
        cur.execute("CREATE TABLE records (id INTEGER PRIMARY KEY, country TEXT, amount REAL, event_date TEXT)")
        cur.execute("INSERT INTO records(country, amount, event_date) VALUES ('A', 10.0, '2024-01-01')")
        cur.execute("INSERT INTO records(country, amount, event_date) VALUES ('B', 20.0, '2024-01-02')")
        cur.execute("INSERT INTO records(country, amount, event_date) VALUES ('O''Brien', 5.0, '2024-01-03')")
        conn.commit()
    finally:
        conn.close()
    return path


def test_sqlite_adapter_runs_bound_statement(db_path):
    adapter = SQLiteAdapter(source_config={"db_path": str(db_path)})
    bound = Statement.build(
        "SELECT country, amount FROM records WHERE country = {country}", "local", {"country": "O'Brien"}
    ).bind(adapter.dialect)

    result = adapter.run(bound, timeout=5)
    assert result.ok
    assert result.column_names == ["country", "amount"]
    assert result.rows == [["O'Brien", 5.0]]
    assert result.runtime >= 0


def test_sqlite_adapter_schema_and_explain(db_path):
    adapter = SQLiteAdapter(source_config={"db_path": str(db_path)})
    tables = adapter.schema()
    assert [t.name for t in tables] == ["records"]
    types = {c.name: c.data_type for c in tables[0].columns}
    assert types == {"id": "integer", "country": "text", "amount": "numeric", "event_date": "text"}

    plan = adapter.explain("SELECT * FROM records WHERE id = 1")
    assert "records" in plan


def test_sqlite_adapter_classifies_syntax_errors(db_path):
    adapter = SQLiteAdapter(source_config={"db_path": str(db_path)})
    result = adapter.run(Statement.build("SELECT * FROM missing_table", "local").bind(adapter.dialect), timeout=5)
    assert not result.ok
    assert result.error_kind == ErrorKind.SYNTAX
    assert "no such table" in result.error
    assert result.row_count is None


def test_sqlite_adapter_interrupts_long_statements(db_path):
    adapter = SQLiteAdapter(source_config={"db_path": str(db_path)})
    endless = "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT count(*) FROM c"
    result = adapter.run(Statement.build(endless, "local").bind(adapter.dialect), timeout=0.2)
    assert result.timed_out
    assert result.error == TIMEOUT_MESSAGE
    assert result.error_kind == ErrorKind.STATEMENT_TIMEOUT

    # the connection is still usable afterwards
    again = adapter.run(Statement.build("SELECT count(*) FROM records", "local").bind(adapter.dialect), timeout=5)
    assert again.rows == [[3]]


def test_sqlite_adapter_requires_existing_file(tmp_path):
    adapter = SQLiteAdapter(source_config={"db_path": str(tmp_path / "nope.db")})
    result = adapter.run(Statement.build("SELECT 1", "local").bind(adapter.dialect), timeout=5)
    assert not result.ok
    assert "does not exist" in result.error


def test_get_adapter_rejects_unknown_kind():
    assert isinstance(get_adapter("sqlite", {"db_path": ":memory:"}), SQLiteAdapter)
    with pytest.raises(UnsupportedAdapter):
        get_adapter("oracle")
