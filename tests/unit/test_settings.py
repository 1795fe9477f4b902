import os

import pytest

from utils.env_loader import env_flag, load_environments
from utils.settings import CacheSettings, SettingsError, load_settings, settings_from_dict

_ENV_KEYS = ("QUERYWATCH_AUDIT", "QUERYWATCH_ASYNC", "QUERYWATCH_MAX_WORKERS", "QUERYWATCH_CACHE_MODE")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_when_file_is_missing(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yml"))
    assert settings.data_sources == {}
    assert settings.audit is True
    assert settings.cache == CacheSettings(mode="all", expires_in=60, slow_threshold=15)
    assert settings.check_schedules == ["5 minutes", "1 hour", "1 day"]
    assert settings.anomaly_algorithm is None
    assert settings.retry_backoff == 10.0


def test_yaml_file_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("WAREHOUSE_URL", "postgres://warehouse/analytics")
    config = tmp_path / "querywatch.yml"
    config.write_text(
        """
data_sources:
  main:
    adapter: postgres
    url: ${WAREHOUSE_URL}
    cache:
      mode: slow
audit: false
async: true
anomaly_checks: true
forecasting: Trend
cache:
  expires_in: 5
""",
        encoding="utf-8",
    )

    settings = load_settings(str(config))

    assert settings.data_sources["main"]["url"] == "postgres://warehouse/analytics"
    assert settings.audit is False
    assert settings.async_checks is True
    assert settings.anomaly_algorithm == "trend"
    assert settings.forecast_algorithm == "trend"
    assert settings.cache.ttl_seconds == 300


def test_env_overrides_win(monkeypatch):
    monkeypatch.setenv("QUERYWATCH_AUDIT", "off")
    monkeypatch.setenv("QUERYWATCH_MAX_WORKERS", "8")
    monkeypatch.setenv("QUERYWATCH_CACHE_MODE", "slow")

    settings = settings_from_dict({"audit": True, "cache": {"slow_threshold": 3}})

    assert settings.audit is False
    assert settings.max_workers == 8
    assert settings.cache.mode == "slow"
    assert settings.cache.slow_threshold == 3


def test_invalid_values_are_rejected(monkeypatch):
    with pytest.raises(SettingsError):
        settings_from_dict({"cache": {"mode": "sometimes"}})
    with pytest.raises(SettingsError):
        settings_from_dict({"max_workers": 0})
    monkeypatch.setenv("QUERYWATCH_ASYNC", "maybe")
    with pytest.raises(ValueError):
        env_flag("QUERYWATCH_ASYNC")


def test_load_environments_does_not_override(tmp_path, monkeypatch):
    monkeypatch.setenv("QW_EXISTING", "kept")
    monkeypatch.delenv("QW_NEW", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nexport QW_NEW='fresh'\nQW_EXISTING=replaced\n", encoding="utf-8")

    loaded = load_environments(str(env_file))

    assert loaded == ["QW_NEW"]
    assert os.environ["QW_NEW"] == "fresh"
    assert os.environ["QW_EXISTING"] == "kept"
    monkeypatch.delenv("QW_NEW")
