from __future__ import annotations

from typing import Sequence

import numpy as np
from sklearn.ensemble import IsolationForest

from mining.series import MIN_POINTS, Verdict

MODIFIED_Z_THRESHOLD = 3.5


def _require_points(values: Sequence[float]) -> None:
    if len(values) < MIN_POINTS:
        raise ValueError(f"Need at least {MIN_POINTS} points to detect anomalies")


def zscore_anomaly(values: Sequence[float], threshold: float = MODIFIED_Z_THRESHOLD) -> Verdict:
    """Modified z-score of the last point against the median/MAD of the earlier ones."""
    _require_points(values)
    history = np.array(values[:-1], dtype=float)
    actual = float(values[-1])
    median = float(np.median(history))
    mad = float(np.median(np.abs(history - median)))
    if mad == 0:
        return Verdict(anomaly=actual != median, score=None)
    score = 0.6745 * (actual - median) / mad
    return Verdict(anomaly=abs(score) > threshold, score=round(score, 4))


def isolation_forest_anomaly(values: Sequence[float], random_state: int = 42) -> Verdict:
    _require_points(values)
    X = np.array(values, dtype=float).reshape(-1, 1)
    model = IsolationForest(n_estimators=100, contamination="auto", random_state=random_state)
    labels = model.fit_predict(X)
    score = float(model.score_samples(X[-1:])[0])
    return Verdict(anomaly=bool(labels[-1] == -1), score=round(score, 4))
