from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from mining.outliers import isolation_forest_anomaly, zscore_anomaly
from mining.series import Forecast, Verdict
from mining.trend import trend_anomaly, trend_forecast

AnomalyDetector = Callable[[Sequence[float]], Verdict]
Forecaster = Callable[[Sequence[float]], Forecast]


class UnknownAlgorithm(LookupError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown algorithm"


class AlgorithmRegistry:
    """Named anomaly detectors and forecasters, populated once at startup and passed to the check engine."""

    def __init__(self) -> None:
        self._detectors: Dict[str, AnomalyDetector] = {}
        self._forecasters: Dict[str, Forecaster] = {}

    def register_anomaly_detector(self, name: str, detector: AnomalyDetector) -> None:
        self._detectors[name] = detector

    def register_forecaster(self, name: str, forecaster: Forecaster) -> None:
        self._forecasters[name] = forecaster

    def get_anomaly_detector(self, name: str) -> AnomalyDetector:
        try:
            return self._detectors[name]
        except KeyError:
            raise UnknownAlgorithm(f"Unknown anomaly detector: {name}") from None

    def get_forecaster(self, name: str) -> Forecaster:
        try:
            return self._forecasters[name]
        except KeyError:
            raise UnknownAlgorithm(f"Unknown forecaster: {name}") from None

    @property
    def anomaly_detectors(self) -> List[str]:
        return sorted(self._detectors)

    @property
    def forecasters(self) -> List[str]:
        return sorted(self._forecasters)


def build_algorithm_registry() -> AlgorithmRegistry:
    registry = AlgorithmRegistry()
    registry.register_anomaly_detector("trend", trend_anomaly)
    registry.register_anomaly_detector("zscore", zscore_anomaly)
    registry.register_anomaly_detector("isolation_forest", isolation_forest_anomaly)
    registry.register_forecaster("trend", trend_forecast)
    return registry
