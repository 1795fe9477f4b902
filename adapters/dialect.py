from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

_NORMAL = "normal"
_STRING = "string literal"
_IDENTIFIER = "quoted identifier"
_LINE_COMMENT = "line comment"
_BLOCK_COMMENT = "block comment"


@dataclass(frozen=True)
class SQLDialect:
    engine: str
    identifier_quote: str = '"'
    string_quotes: Tuple[str, ...] = ("'",)
    backslash_escapes: bool = False
    parameter_binding: Optional[str] = None  # None, "positional" or "numeric"
    line_comments: Tuple[str, ...] = ("--",)
    true_literal: str = "TRUE"
    false_literal: str = "FALSE"

    def quote_identifier(self, name: str) -> str:
        q = self.identifier_quote
        return f"{q}{str(name).replace(q, q + q)}{q}"

    def quote_string(self, value: str) -> str:
        if self.backslash_escapes:
            escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')
        else:
            escaped = value.replace("'", "''")
        return f"'{escaped}'"

    def quote(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.true_literal if value else self.false_literal
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, datetime):
            return self.quote_string(value.strftime("%Y-%m-%d %H:%M:%S"))
        if isinstance(value, date):
            return self.quote_string(value.isoformat())
        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
            return ", ".join(self.quote(v) for v in items) or "NULL"
        return self.quote_string(str(value))

    def placeholder(self, position: int) -> str:
        if self.parameter_binding == "numeric":
            return f"${position}"
        return "?"

    def unsafe_positions(self, template: str, indexes: Iterable[int]) -> Dict[int, str]:
        """Map each index that sits inside a literal, quoted identifier or comment to that context."""
        wanted = set(indexes)
        found: Dict[int, str] = {}
        state = _NORMAL
        closing = ""
        i = 0
        n = len(template)
        while i < n and wanted:
            ch = template[i]
            if i in wanted:
                if state != _NORMAL:
                    found[i] = "comment" if state in (_LINE_COMMENT, _BLOCK_COMMENT) else state
                wanted.discard(i)
            if state == _NORMAL:
                if ch in self.string_quotes:
                    state = _STRING
                    closing = ch
                elif ch == self.identifier_quote:
                    state = _IDENTIFIER
                elif template.startswith("/*", i):
                    state = _BLOCK_COMMENT
                    i += 1
                elif any(template.startswith(marker, i) for marker in self.line_comments):
                    state = _LINE_COMMENT
            elif state == _STRING:
                if self.backslash_escapes and ch == "\\":
                    if i + 1 in wanted:
                        found[i + 1] = _STRING
                        wanted.discard(i + 1)
                    i += 1
                elif ch == closing:
                    if template.startswith(closing * 2, i):
                        i += 1
                    else:
                        state = _NORMAL
            elif state == _IDENTIFIER:
                if ch == self.identifier_quote:
                    if template.startswith(self.identifier_quote * 2, i):
                        i += 1
                    else:
                        state = _NORMAL
            elif state == _LINE_COMMENT and ch == "\n":
                state = _NORMAL
            elif state == _BLOCK_COMMENT and template.startswith("*/", i):
                state = _NORMAL
                i += 1
            i += 1
        return found


def get_sql_dialect(engine: str) -> SQLDialect:
    engine = (engine or "postgres").strip().lower()
    if engine in {"postgres", "postgresql"}:
        return SQLDialect(engine="postgres")
    if engine == "sqlite":
        return SQLDialect(engine="sqlite", true_literal="1", false_literal="0")
    if engine == "mysql":
        return SQLDialect(
            engine="mysql",
            identifier_quote="`",
            string_quotes=("'", '"'),
            backslash_escapes=True,
            line_comments=("-- ", "#"),
        )
    if engine in {"elasticsearch", "druid"}:
        return SQLDialect(engine=engine, parameter_binding="positional")
    return SQLDialect(engine=engine)
