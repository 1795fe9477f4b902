from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from query.result import Result

MIN_POINTS = 3


@dataclass(frozen=True)
class Verdict:
    anomaly: bool
    message: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class Forecast:
    predicted: float
    lower: float
    upper: float

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


@dataclass(frozen=True)
class Series:
    name: Optional[str]
    x: List[Any]
    y: List[float]


def _as_float(value: Any, column: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Column {column} must be numeric, got: {value!r}") from exc


def series_from_result(result: Result) -> List[Series]:
    """Split a result into series: ``(x, y)`` columns give one, ``(x, group, y)`` one per group."""
    names = result.column_names
    if len(names) not in (2, 3):
        raise ValueError("Expected 2 or 3 columns: time, (series,) value")

    groups: Dict[Optional[str], List[Tuple[Any, float]]] = {}
    for row in result.rows:
        if row[-1] is None:
            continue
        if row[0] is None:
            raise ValueError(f"Null value in {names[0]} column")
        key = None if len(names) == 2 else str(row[1])
        groups.setdefault(key, []).append((row[0], _as_float(row[-1], names[-1])))

    out: List[Series] = []
    for key, points in groups.items():
        try:
            points.sort(key=lambda p: p[0])
        except TypeError:
            raise ValueError(f"Mixed value types in {names[0]} column") from None
        out.append(Series(name=key, x=[p[0] for p in points], y=[p[1] for p in points]))
    return out
