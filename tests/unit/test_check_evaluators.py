import pytest

from checks.evaluators import evaluate_check
from checks.models import Check, CheckState, CheckType
from mining.registry import build_algorithm_registry
from query.result import ErrorKind, Result
from utils.settings import Settings


def _check(check_type, **options):
    return Check(id="c1", query_id="q1", check_type=check_type, options=options)


def _daily(values):
    return Result.success(["day", "value"], [[f"2024-01-{i + 1:02d}", v] for i, v in enumerate(values)])


@pytest.fixture
def algorithms():
    return build_algorithm_registry()


def test_timeout_and_error_take_precedence(algorithms, settings):
    check = _check(CheckType.MISSING_DATA)
    assert evaluate_check(check, Result.timeout(), algorithms, settings)[0] == CheckState.TIMED_OUT
    state, message = evaluate_check(check, Result.failure("permission denied", ErrorKind.PERMISSION), algorithms, settings)
    assert state == CheckState.ERROR
    assert message == "permission denied"


def test_bad_data_and_missing_data_are_inverse(algorithms, settings):
    rows = Result.success(["id"], [[1]])
    empty = Result.success(["id"], [])
    assert evaluate_check(_check(CheckType.BAD_DATA), rows, algorithms, settings)[0] == CheckState.FAILING
    assert evaluate_check(_check(CheckType.BAD_DATA), empty, algorithms, settings)[0] == CheckState.PASSING
    assert evaluate_check(_check(CheckType.MISSING_DATA), rows, algorithms, settings)[0] == CheckState.PASSING
    assert evaluate_check(_check(CheckType.MISSING_DATA), empty, algorithms, settings)[0] == CheckState.FAILING


def test_threshold_uses_last_numeric_cell_of_first_row(algorithms, settings):
    result = Result.success(["day", "orders", "revenue"], [["2024-01-01", 3, 12.5], ["2024-01-02", 1, 1000]])
    check = _check(CheckType.THRESHOLD, max=10)
    assert evaluate_check(check, result, algorithms, settings) == (CheckState.FAILING, "12.5 is above maximum 10")
    assert evaluate_check(_check(CheckType.THRESHOLD, min=5, max=20), result, algorithms, settings)[0] == CheckState.PASSING
    assert evaluate_check(_check(CheckType.THRESHOLD, min=20), result, algorithms, settings)[0] == CheckState.FAILING


def test_threshold_misconfiguration_is_an_error(algorithms, settings):
    result = Result.success(["n"], [[1]])
    assert evaluate_check(_check(CheckType.THRESHOLD), result, algorithms, settings)[0] == CheckState.ERROR
    empty = Result.success(["n"], [])
    assert evaluate_check(_check(CheckType.THRESHOLD, max=1), empty, algorithms, settings)[0] == CheckState.ERROR


def test_anomaly_check_uses_configured_detector(algorithms, settings):
    check = _check(CheckType.ANOMALY)
    state, message = evaluate_check(check, _daily([10, 11, 12, 13, 14, 15, 100]), algorithms, settings)
    assert state == CheckState.FAILING
    assert message == "Anomaly detected in series"
    assert evaluate_check(check, _daily([10, 11, 12, 13, 14, 15, 16]), algorithms, settings)[0] == CheckState.PASSING


def test_anomaly_check_with_unknown_algorithm_does_not_pass(algorithms, settings):
    check = _check(CheckType.ANOMALY, algorithm="prophet")
    state, message = evaluate_check(check, _daily([1, 2, 3, 4]), algorithms, settings)
    assert state == CheckState.ERROR
    assert message == "Unknown anomaly detector: prophet"


def test_anomaly_check_requires_enabled_setting(algorithms):
    state, message = evaluate_check(_check(CheckType.ANOMALY), _daily([1, 2, 3, 4]), algorithms, Settings())
    assert state == CheckState.ERROR
    assert message == "Anomaly checks are not enabled"


def test_anomaly_check_with_too_few_points_is_an_error(algorithms, settings):
    state, _ = evaluate_check(_check(CheckType.ANOMALY), _daily([1, 2]), algorithms, settings)
    assert state == CheckState.ERROR


def test_forecast_check_fails_outside_band(algorithms, settings):
    check = _check(CheckType.FORECAST)
    state, message = evaluate_check(check, _daily([1, 2, 3, 4, 9]), algorithms, settings)
    assert state == CheckState.FAILING
    assert message == "Forecast deviation in series: 9 outside 4.95..5.05"
    assert evaluate_check(check, _daily([1, 2, 3, 4, 5]), algorithms, settings)[0] == CheckState.PASSING


@pytest.mark.parametrize(
    "rows, message",
    [
        ([["2024-01-01", 1], [None, 2], ["2024-01-03", 3]], "Null value in day column"),
        ([["2024-01-01", 1], [2, 2], ["2024-01-03", 3]], "Mixed value types in day column"),
    ],
)
def test_anomaly_check_with_unsortable_time_column_is_an_error(algorithms, settings, rows, message):
    state, detail = evaluate_check(_check(CheckType.ANOMALY), Result.success(["day", "value"], rows), algorithms, settings)
    assert state == CheckState.ERROR
    assert detail == message


def test_forecast_check_passes_on_exact_fractional_trend(algorithms, settings):
    check = _check(CheckType.FORECAST)
    assert evaluate_check(check, _daily([i / 3 for i in range(12)]), algorithms, settings)[0] == CheckState.PASSING
