from __future__ import annotations

import os
import sqlite3
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple

from adapters.base import DatabaseAdapter, RunHandle, TableMeta
from query.result import ColumnMeta
from utils.env_loader import load_environments

# progress handler granularity, in SQLite VM instructions
_PROGRESS_STEPS = 1000


def _sqlite_type_to_generic(data_type: str) -> str:
    lowered = (data_type or "").lower()
    if "int" in lowered:
        return "integer"
    if any(tok in lowered for tok in ("real", "floa", "doub", "dec", "num")):
        return "numeric"
    if any(tok in lowered for tok in ("date", "time")):
        return "timestamp without time zone"
    return "text"


class SQLiteAdapter(DatabaseAdapter):
    engine = "sqlite"

    def _db_path(self) -> str:
        load_environments()
        raw = self.source_config.get("db_path") or os.getenv("SQLITE_DB_PATH")
        if not raw:
            raise ValueError("SQLITE_DB_PATH is required for sqlite adapter")
        if raw == ":memory:":
            return raw
        db_path = Path(str(raw))
        if not db_path.exists():
            raise ValueError(f"SQLite database file does not exist: {db_path}")
        return str(db_path)

    def _connect(self, timeout: Optional[float] = None) -> sqlite3.Connection:
        # connections are checked out by whichever worker thread runs the statement
        return sqlite3.connect(self._db_path(), check_same_thread=False)

    def _execute(self, bound, timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        deadline = time.monotonic() + timeout

        def _progress() -> int:
            return 1 if handle.cancelled or time.monotonic() > deadline else 0

        with self._connection() as conn:
            handle.connection = conn
            conn.set_progress_handler(_progress, _PROGRESS_STEPS)
            try:
                cur = conn.execute(bound.text, list(bound.params or []))
                if cur.description is None:
                    return [], []
                columns = [ColumnMeta(name=desc[0]) for desc in cur.description]
                return columns, [list(row) for row in cur.fetchall()]
            finally:
                conn.set_progress_handler(None, 0)

    def cancel(self, handle: RunHandle) -> None:
        handle.cancelled = True
        if handle.connection is not None:
            handle.connection.interrupt()

    def schema(self) -> List[TableMeta]:
        with self._connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT name
                FROM sqlite_master
                WHERE type = 'table'
                  AND name NOT LIKE 'sqlite_%'
                ORDER BY name
                """
            )
            table_names = [row[0] for row in cur.fetchall()]

            tables: List[TableMeta] = []
            for table_name in table_names:
                cur.execute(f"PRAGMA table_info({self.quote_identifier(table_name)})")
                columns = [
                    ColumnMeta(name=col[1], data_type=_sqlite_type_to_generic(str(col[2] or "")))
                    for col in cur.fetchall()
                ]
                tables.append(TableMeta(schema="main", name=table_name, columns=columns))
            return tables

    def explain(self, statement: str) -> str:
        with self._connection() as conn:
            rows = conn.execute(f"EXPLAIN QUERY PLAN {statement}").fetchall()
            return "\n".join(str(row[-1]) for row in rows)
