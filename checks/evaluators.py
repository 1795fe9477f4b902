from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional, Tuple

from checks.models import Check, CheckState, CheckType
from mining.registry import AlgorithmRegistry, UnknownAlgorithm
from mining.series import series_from_result
from query.result import Result
from utils.settings import Settings

Evaluation = Tuple[CheckState, Optional[str]]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _series_label(name: Optional[str]) -> str:
    return name if name is not None else "series"


def _evaluate_threshold(check: Check, result: Result) -> Evaluation:
    minimum = check.options.get("min")
    maximum = check.options.get("max")
    if minimum is None and maximum is None:
        return CheckState.ERROR, "Threshold checks need a min or max option"
    if not result.rows:
        return CheckState.ERROR, "No rows to compare against threshold"

    numbers = [v for v in result.rows[0] if _is_number(v)]
    if not numbers:
        return CheckState.ERROR, "First row has no numeric value"
    value = float(numbers[-1])

    if minimum is not None and value < float(minimum):
        return CheckState.FAILING, f"{value:g} is below minimum {float(minimum):g}"
    if maximum is not None and value > float(maximum):
        return CheckState.FAILING, f"{value:g} is above maximum {float(maximum):g}"
    return CheckState.PASSING, None


def _evaluate_anomaly(check: Check, result: Result, algorithms: AlgorithmRegistry, settings: Settings) -> Evaluation:
    name = check.options.get("algorithm") or settings.anomaly_algorithm
    if not name:
        return CheckState.ERROR, "Anomaly checks are not enabled"
    detector = algorithms.get_anomaly_detector(name)

    anomalies: List[str] = []
    for series in series_from_result(result):
        if detector(series.y).anomaly:
            anomalies.append(_series_label(series.name))
    if anomalies:
        return CheckState.FAILING, "Anomaly detected in " + ", ".join(anomalies)
    return CheckState.PASSING, None


def _evaluate_forecast(check: Check, result: Result, algorithms: AlgorithmRegistry, settings: Settings) -> Evaluation:
    name = check.options.get("algorithm") or settings.forecast_algorithm
    if not name:
        return CheckState.ERROR, "Forecasting is not enabled"
    forecaster = algorithms.get_forecaster(name)

    misses: List[str] = []
    for series in series_from_result(result):
        if len(series.y) < 3:
            raise ValueError(f"Not enough data in {_series_label(series.name)}")
        forecast = forecaster(series.y[:-1])
        actual = series.y[-1]
        if not forecast.contains(actual):
            misses.append(
                f"{_series_label(series.name)}: {actual:g} outside {forecast.lower:g}..{forecast.upper:g}"
            )
    if misses:
        return CheckState.FAILING, "Forecast deviation in " + "; ".join(misses)
    return CheckState.PASSING, None


def evaluate_check(
    check: Check,
    result: Result,
    algorithms: AlgorithmRegistry,
    settings: Settings,
) -> Evaluation:
    """Map a finished run onto the next check state plus an optional detail message.

    Timeouts and errors win over check semantics. Misconfigured anomaly and
    forecast checks (unknown algorithm, unusable series) land in ``error``
    rather than passing.
    """
    if result.timed_out:
        return CheckState.TIMED_OUT, result.error
    if result.error:
        return CheckState.ERROR, result.error

    if check.check_type == CheckType.BAD_DATA:
        return (CheckState.FAILING if result.rows else CheckState.PASSING), None
    if check.check_type == CheckType.MISSING_DATA:
        return (CheckState.PASSING if result.rows else CheckState.FAILING), None
    if check.check_type == CheckType.THRESHOLD:
        return _evaluate_threshold(check, result)

    try:
        if check.check_type == CheckType.ANOMALY:
            return _evaluate_anomaly(check, result, algorithms, settings)
        return _evaluate_forecast(check, result, algorithms, settings)
    except (UnknownAlgorithm, ValueError) as exc:
        return CheckState.ERROR, str(exc)
