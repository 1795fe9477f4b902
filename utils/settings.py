from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from utils.env_loader import env_flag, env_int, load_environments

DEFAULT_CONFIG_PATH = "config/querywatch.yml"
DEFAULT_CHECK_SCHEDULES = ["5 minutes", "1 hour", "1 day"]
CACHE_MODES = {"all", "slow", "off"}


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class CacheSettings:
    mode: str = "all"
    expires_in: float = 60.0  # minutes
    slow_threshold: float = 15.0  # seconds

    @property
    def enabled(self) -> bool:
        return self.mode != "off"

    @property
    def ttl_seconds(self) -> float:
        return self.expires_in * 60.0

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]], base: Optional["CacheSettings"] = None) -> "CacheSettings":
        base = base or cls()
        if not raw:
            return base
        mode = str(raw.get("mode", base.mode)).strip().lower()
        if mode not in CACHE_MODES:
            raise SettingsError(f"Unknown cache mode: {mode}")
        return cls(
            mode=mode,
            expires_in=float(raw.get("expires_in", base.expires_in)),
            slow_threshold=float(raw.get("slow_threshold", base.slow_threshold)),
        )


@dataclass(frozen=True)
class Settings:
    data_sources: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    audit: bool = True
    cache: CacheSettings = field(default_factory=CacheSettings)
    async_checks: bool = False
    check_schedules: List[str] = field(default_factory=lambda: list(DEFAULT_CHECK_SCHEDULES))
    anomaly_checks: Union[str, bool] = False
    forecasting: Union[str, bool] = False
    max_workers: int = 4
    retry_backoff: float = 10.0
    timeout: float = 15.0

    @property
    def anomaly_algorithm(self) -> Optional[str]:
        return _algorithm_name(self.anomaly_checks, default="trend")

    @property
    def forecast_algorithm(self) -> Optional[str]:
        return _algorithm_name(self.forecasting, default="trend")


def _algorithm_name(value: Union[str, bool, None], default: str) -> Optional[str]:
    if value is True:
        return default
    if not value:
        return None
    return str(value).strip().lower()


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v) for v in value]
    return value


def settings_from_dict(raw: Optional[Dict[str, Any]]) -> Settings:
    raw = _expand(raw or {})
    data_sources = raw.get("data_sources") or {}
    if not isinstance(data_sources, dict):
        raise SettingsError("data_sources must be a mapping of id -> settings")

    schedules = raw.get("check_schedules") or list(DEFAULT_CHECK_SCHEDULES)
    max_workers = int(raw.get("max_workers", 4))
    if max_workers <= 0:
        raise SettingsError("max_workers must be positive")

    settings = Settings(
        data_sources={str(k): dict(v or {}) for k, v in data_sources.items()},
        audit=bool(raw.get("audit", True)),
        cache=CacheSettings.from_dict(raw.get("cache")),
        async_checks=bool(raw.get("async", False)),
        check_schedules=[str(s) for s in schedules],
        anomaly_checks=raw.get("anomaly_checks", False),
        forecasting=raw.get("forecasting", False),
        max_workers=max_workers,
        retry_backoff=float(raw.get("retry_backoff", 10)),
        timeout=float(raw.get("timeout", 15)),
    )
    return _apply_env_overrides(settings)


def _apply_env_overrides(settings: Settings) -> Settings:
    overrides: Dict[str, Any] = {}
    audit = env_flag("QUERYWATCH_AUDIT")
    if audit is not None:
        overrides["audit"] = audit
    async_checks = env_flag("QUERYWATCH_ASYNC")
    if async_checks is not None:
        overrides["async_checks"] = async_checks
    max_workers = env_int("QUERYWATCH_MAX_WORKERS")
    if max_workers is not None:
        overrides["max_workers"] = max_workers
    cache_mode = os.getenv("QUERYWATCH_CACHE_MODE")
    if cache_mode:
        overrides["cache"] = CacheSettings.from_dict({"mode": cache_mode}, base=settings.cache)
    if not overrides:
        return settings
    values = {name: getattr(settings, name) for name in settings.__dataclass_fields__}
    values.update(overrides)
    return Settings(**values)


def load_settings(path: Optional[str] = None) -> Settings:
    load_environments()
    config_path = Path(path or os.getenv("QUERYWATCH_CONFIG", DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        return settings_from_dict({})
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"Could not parse {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise SettingsError(f"{config_path} must contain a mapping at the top level")
    return settings_from_dict(raw)
