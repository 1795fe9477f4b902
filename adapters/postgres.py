from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Tuple

from adapters.base import DatabaseAdapter, RunHandle, TableMeta
from query.result import ColumnMeta, ErrorKind

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema")


class PostgresAdapter(DatabaseAdapter):
    engine = "postgres"

    def _db_params(self) -> Dict[str, Any]:
        url = self.source_config.get("url")
        if url:
            return {"conninfo": url}
        return self._server_params(default_port=5432)

    def _connect(self, timeout=None):
        params = self._db_params()
        conninfo = params.pop("conninfo", None)
        connect_timeout = self._connect_timeout(timeout)
        try:
            import psycopg  # type: ignore
        except ImportError:
            psycopg = None
        if psycopg is not None:
            if conninfo:
                return psycopg.connect(conninfo, autocommit=True, connect_timeout=connect_timeout)
            return psycopg.connect(autocommit=True, connect_timeout=connect_timeout, **params)

        try:
            import psycopg2  # type: ignore
        except ImportError as exc:
            raise ImportError("No PostgreSQL driver found. Install psycopg[binary] or psycopg2-binary.") from exc
        if conninfo:
            conn = psycopg2.connect(conninfo, connect_timeout=connect_timeout)
        else:
            conn = psycopg2.connect(connect_timeout=connect_timeout, **params)
        conn.autocommit = True
        return conn

    def _execute(self, bound, timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        with self._connection(timeout) as conn:
            handle.connection = conn
            with conn.cursor() as cur:
                cur.execute(f"SET statement_timeout = '{int(timeout * 1000)}ms'")
                cur.execute(bound.text, bound.params or None)
                if cur.description is None:
                    return [], []
                columns = [ColumnMeta(name=desc[0]) for desc in cur.description]
                return columns, [list(row) for row in cur.fetchall()]

    def cancel(self, handle: RunHandle) -> None:
        if handle.connection is not None:
            handle.connection.cancel()

    def schema(self) -> List[TableMeta]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT table_schema, table_name, column_name, data_type
                    FROM information_schema.columns
                    WHERE table_schema <> ALL(%s)
                    ORDER BY table_schema, table_name, ordinal_position
                    """,
                    (list(SYSTEM_SCHEMAS),),
                )
                column_rows = cur.fetchall()

        tables: Dict[Tuple[str, str], List[ColumnMeta]] = defaultdict(list)
        for table_schema, table_name, column_name, data_type in column_rows:
            tables[(table_schema, table_name)].append(ColumnMeta(name=column_name, data_type=data_type))
        return [TableMeta(schema=s, name=t, columns=cols) for (s, t), cols in tables.items()]

    def explain(self, statement: str) -> str:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"EXPLAIN {statement}")
                return "\n".join(str(row[0]) for row in cur.fetchall())

    def classify_error(self, exc: BaseException) -> ErrorKind:
        kind = super().classify_error(exc)
        if kind != ErrorKind.UNKNOWN:
            return kind
        # a dropped server can surface as a bare InterfaceError/OperationalError
        name = type(exc).__name__
        text = str(exc).lower()
        if name == "InterfaceError" or (name == "OperationalError" and ("connection" in text or "server" in text)):
            return ErrorKind.CONNECTION_LOST
        return kind

