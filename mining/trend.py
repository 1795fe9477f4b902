from typing import Any, Dict, Sequence, Tuple

import numpy as np

from mining.series import MIN_POINTS, Forecast, Verdict

DEFAULT_BAND = 3.0
# smallest band half-width, as a share of the larger of |predicted| and the series range
MIN_BAND_FRACTION = 0.01


def _fit(values: Sequence[float]) -> Tuple[float, float, float, float]:
    y = np.array(values, dtype=float)
    x = np.arange(len(y), dtype=float)

    slope, intercept = np.polyfit(x, y, deg=1)
    y_pred = slope * x + intercept
    ss_res = float(np.sum((y - y_pred) ** 2))
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    r2 = 0.0 if ss_tot == 0 else 1.0 - (ss_res / ss_tot)
    residual_std = float(np.std(y - y_pred, ddof=1)) if len(y) > 2 else 0.0
    return float(slope), float(intercept), r2, residual_std


def analyze_trend(values: Sequence[float]) -> Dict[str, Any]:
    if len(values) < 2:
        return {
            "status": "insufficient_data",
            "reason": "Need at least two points to compute trend",
            "points": len(values),
        }

    slope, intercept, r2, residual_std = _fit(values)

    direction = "flat"
    if slope > 1e-9:
        direction = "upward"
    elif slope < -1e-9:
        direction = "downward"

    return {
        "status": "ok",
        "points": len(values),
        "slope": round(slope, 4),
        "intercept": round(intercept, 4),
        "r2": round(r2, 4),
        "residual_std": residual_std,
        "direction": direction,
    }


def trend_forecast(values: Sequence[float], band: float = DEFAULT_BAND) -> Forecast:
    """Extrapolate the next point from a linear fit.

    The band is ``band`` residual deviations wide, but never narrower than
    ``MIN_BAND_FRACTION`` of the prediction or of the series range, so an exact
    fit still tolerates float noise.
    """
    if len(values) < 2:
        raise ValueError("Need at least two points to compute trend")
    slope, intercept, _, residual_std = _fit(values)
    predicted = slope * len(values) + intercept
    spread = float(max(values) - min(values))
    width = max(band * residual_std, MIN_BAND_FRACTION * max(abs(predicted), spread), 1e-9)
    return Forecast(predicted=predicted, lower=predicted - width, upper=predicted + width)


def trend_anomaly(values: Sequence[float], band: float = DEFAULT_BAND) -> Verdict:
    if len(values) < MIN_POINTS:
        raise ValueError(f"Need at least {MIN_POINTS} points to detect anomalies")
    forecast = trend_forecast(values[:-1], band=band)
    actual = float(values[-1])
    return Verdict(anomaly=not forecast.contains(actual), score=actual - forecast.predicted)
