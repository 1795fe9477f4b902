from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, List, Tuple

from adapters.base import RunHandle, TableMeta
from adapters.http import HTTPSQLAdapter
from query.result import VARIABLE_MESSAGE, ColumnMeta
from utils.log import get_logger

logger = get_logger(__name__)


def _param_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ElasticsearchAdapter(HTTPSQLAdapter):
    engine = "elasticsearch"
    timeout_errors = HTTPSQLAdapter.timeout_errors + ("timed out", "timeout_exception")

    def _execute(self, bound, timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        body = {
            "query": bound.text,
            "request_timeout": f"{int(timeout * 1000)}ms",
            "page_timeout": f"{int(timeout * 1000)}ms",
        }
        if bound.params:
            body["params"] = [_param_value(v) for v in bound.params]
        response = self._request("POST", "/_sql?format=json", body, timeout)
        columns = [ColumnMeta(name=c["name"], data_type=c.get("type")) for c in response.get("columns", [])]
        rows = [list(r) for r in response.get("rows", [])]

        cursor = response.get("cursor")
        while cursor:
            page = self._request("POST", "/_sql?format=json", {"cursor": cursor}, timeout)
            rows.extend(list(r) for r in page.get("rows", []))
            cursor = page.get("cursor")
        return columns, rows

    def cancel(self, handle: RunHandle) -> None:
        # synchronous SQL searches are bounded by request_timeout; nothing to cancel remotely
        logger.debug("cancel requested", extra={"engine": self.engine, "run_id": handle.run_id})

    def schema(self) -> List[TableMeta]:
        tables: List[TableMeta] = []
        listing = self._request("POST", "/_sql?format=json", {"query": "SHOW TABLES"}, 30)
        for row in listing.get("rows", []):
            name = row[1] if len(row) > 1 else row[0]
            described = self._request(
                "POST", "/_sql?format=json", {"query": f"SHOW COLUMNS FROM {self.quote_identifier(name)}"}, 30
            )
            columns = [ColumnMeta(name=r[0], data_type=r[2] if len(r) > 2 else None) for r in described.get("rows", [])]
            tables.append(TableMeta(schema=None, name=name, columns=columns))
        return tables

    def explain(self, statement: str) -> str:
        translated = self._request("POST", "/_sql/translate", {"query": statement}, 30)
        return json.dumps(translated, indent=2)

    def _error_text(self, body: str) -> str:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return body.strip()
        err = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(err, dict):
            return f"{err.get('type', 'error')}: {err.get('reason', '')}".strip()
        return str(err or body).strip()

    def error_message(self, exc: BaseException) -> str:
        message = super().error_message(exc)
        if "mismatched input '?'" in message:
            return VARIABLE_MESSAGE
        return message
