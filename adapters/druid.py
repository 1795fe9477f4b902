from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

from adapters.base import RunHandle, TableMeta
from adapters.http import HTTPSQLAdapter
from query.result import VARIABLE_MESSAGE, ColumnMeta


def _typed_param(value: Any) -> Dict[str, Any]:
    if isinstance(value, bool):
        return {"type": "BOOLEAN", "value": value}
    if isinstance(value, int):
        return {"type": "BIGINT", "value": value}
    if isinstance(value, float):
        return {"type": "DOUBLE", "value": value}
    if isinstance(value, datetime):
        return {"type": "TIMESTAMP", "value": value.strftime("%Y-%m-%d %H:%M:%S")}
    if isinstance(value, date):
        return {"type": "DATE", "value": value.isoformat()}
    return {"type": "VARCHAR", "value": None if value is None else str(value)}


class DruidAdapter(HTTPSQLAdapter):
    engine = "druid"
    timeout_errors = HTTPSQLAdapter.timeout_errors + ("timed out", "query timeout")

    def _sql(self, query: str, timeout: float, parameters=None, query_id=None) -> List[List[Any]]:
        context: Dict[str, Any] = {"timeout": int(timeout * 1000)}
        if query_id:
            context["sqlQueryId"] = query_id
        body = {
            "query": query,
            "parameters": [_typed_param(v) for v in parameters or []],
            "context": context,
            "resultFormat": "array",
            "header": True,
        }
        return self._request("POST", "/druid/v2/sql/", body, timeout) or []

    def _execute(self, bound, timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        handle.backend_id = handle.run_id
        response = self._sql(bound.text, timeout, bound.params, query_id=handle.backend_id)
        if not response:
            return [], []
        header, rows = response[0], response[1:]
        return [ColumnMeta(name=str(name)) for name in header], [list(r) for r in rows]

    def cancel(self, handle: RunHandle) -> None:
        if handle.backend_id:
            self._request("DELETE", f"/druid/v2/sql/{handle.backend_id}", None, 10)

    def schema(self) -> List[TableMeta]:
        rows = self._sql(
            "SELECT TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = 'druid' ORDER BY TABLE_NAME, ORDINAL_POSITION",
            30,
        )[1:]
        tables: Dict[Tuple[str, str], List[ColumnMeta]] = {}
        for table_schema, table_name, column_name, data_type in rows:
            tables.setdefault((table_schema, table_name), []).append(ColumnMeta(name=column_name, data_type=data_type))
        return [TableMeta(schema=s, name=t, columns=cols) for (s, t), cols in tables.items()]

    def explain(self, statement: str) -> str:
        rows = self._sql(f"EXPLAIN PLAN FOR {statement}", 30)[1:]
        return "\n".join(str(row[0]) for row in rows)

    def _error_text(self, body: str) -> str:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return body.strip()
        if isinstance(payload, dict):
            return str(payload.get("errorMessage") or payload.get("error") or body).strip()
        return body.strip()

    def error_message(self, exc: BaseException) -> str:
        message = super().error_message(exc)
        if 'Encountered "?" at' in message:
            return VARIABLE_MESSAGE
        return message
