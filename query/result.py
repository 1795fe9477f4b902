from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

TIMEOUT_MESSAGE = "Query timed out :("
VARIABLE_MESSAGE = "Variable cannot be used in this position"


class ErrorKind(str, Enum):
    CONNECTION_LOST = "connection_lost"
    STATEMENT_TIMEOUT = "statement_timeout"
    SYNTAX = "syntax"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    data_type: Optional[str] = None


@dataclass(frozen=True)
class Result:
    """Outcome of one statement run: rows or a classified failure, never both."""

    columns: List[ColumnMeta] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    timed_out: bool = False
    runtime: float = 0.0
    cached_at: Optional[datetime] = None

    @classmethod
    def success(cls, columns: Sequence[Any], rows: Sequence[Sequence[Any]], runtime: float = 0.0) -> "Result":
        metas = [c if isinstance(c, ColumnMeta) else ColumnMeta(name=str(c)) for c in columns]
        return cls(columns=metas, rows=[list(r) for r in rows], runtime=runtime)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind = ErrorKind.UNKNOWN, runtime: float = 0.0) -> "Result":
        if kind == ErrorKind.STATEMENT_TIMEOUT:
            return cls.timeout(runtime=runtime)
        return cls(error=error or kind.value, error_kind=kind, runtime=runtime)

    @classmethod
    def timeout(cls, runtime: float = 0.0) -> "Result":
        return cls(error=TIMEOUT_MESSAGE, error_kind=ErrorKind.STATEMENT_TIMEOUT, timed_out=True, runtime=runtime)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def connection_lost(self) -> bool:
        return self.error_kind == ErrorKind.CONNECTION_LOST

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def row_count(self) -> Optional[int]:
        return None if self.error else len(self.rows)

    def with_cached_at(self, cached_at: Optional[datetime]) -> "Result":
        return replace(self, cached_at=cached_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": self.column_names,
            "rows": self.rows,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "timed_out": self.timed_out,
            "runtime": round(self.runtime, 4),
            "cached_at": self.cached_at.isoformat() if self.cached_at else None,
        }
