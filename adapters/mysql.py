from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Tuple

from adapters.base import DatabaseAdapter, RunHandle, TableMeta
from query.result import ColumnMeta


class MySQLAdapter(DatabaseAdapter):
    engine = "mysql"

    def _db_params(self) -> Dict[str, Any]:
        params = self._server_params(default_port=3306)
        params["database"] = params.pop("dbname")
        return params

    def _connect(self, timeout=None):
        params = self._db_params()
        connect_timeout = self._connect_timeout(timeout)
        try:
            import mysql.connector  # type: ignore
        except ImportError:
            pass
        else:
            return mysql.connector.connect(autocommit=True, connection_timeout=connect_timeout, **params)

        try:
            import pymysql  # type: ignore
        except ImportError as exc:
            raise ImportError("No MySQL driver found. Install PyMySQL or mysql-connector-python.") from exc
        return pymysql.connect(autocommit=True, connect_timeout=connect_timeout, **params)

    @staticmethod
    def _connection_id(conn) -> Any:
        if hasattr(conn, "connection_id"):
            return conn.connection_id
        return conn.thread_id()

    def _execute(self, bound, timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        with self._connection(timeout) as conn:
            handle.connection = conn
            handle.backend_id = self._connection_id(conn)
            cur = conn.cursor()
            try:
                cur.execute(f"SET SESSION MAX_EXECUTION_TIME={int(timeout * 1000)}")
                cur.execute(bound.text, bound.params or None)
                if cur.description is None:
                    return [], []
                columns = [ColumnMeta(name=desc[0]) for desc in cur.description]
                return columns, [list(row) for row in cur.fetchall()]
            finally:
                cur.close()

    def cancel(self, handle: RunHandle) -> None:
        if handle.backend_id is None:
            return
        # KILL QUERY must come from a separate session
        side = self._connect()
        try:
            cur = side.cursor()
            cur.execute(f"KILL QUERY {int(handle.backend_id)}")
            cur.close()
        finally:
            self._close(side)

    def schema(self) -> List[TableMeta]:
        target_schema = self._db_params()["database"]
        with self._connection() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    """
                    SELECT table_schema, table_name, column_name, data_type
                    FROM information_schema.columns
                    WHERE table_schema = %s
                    ORDER BY table_name, ordinal_position
                    """,
                    (target_schema,),
                )
                column_rows = cur.fetchall()
            finally:
                cur.close()

        tables: Dict[Tuple[str, str], List[ColumnMeta]] = defaultdict(list)
        for table_schema, table_name, column_name, data_type in column_rows:
            tables[(table_schema, table_name)].append(ColumnMeta(name=column_name, data_type=data_type))
        return [TableMeta(schema=s, name=t, columns=cols) for (s, t), cols in tables.items()]

    def explain(self, statement: str) -> str:
        with self._connection() as conn:
            cur = conn.cursor()
            try:
                cur.execute(f"EXPLAIN {statement}")
                names = [desc[0] for desc in cur.description]
                lines = []
                for row in cur.fetchall():
                    lines.append(", ".join(f"{names[i]}={row[i]}" for i in range(len(names))))
                return "\n".join(lines)
            finally:
                cur.close()
