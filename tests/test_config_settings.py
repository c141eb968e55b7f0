"""
Tests for backtester/config/settings.py

Environment variables are set with monkeypatch and the settings singleton is
reset around each test, so nothing leaks between tests.
"""

import pytest

from backtester.config.settings import (
    EngineSettings,
    LogSettings,
    Settings,
    YFinanceSettings,
    get_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


def test_engine_settings_defaults():
    settings = EngineSettings()

    assert settings.investment_fraction == 0.95
    assert settings.risk_free_rate == 0.0
    assert settings.default_commission_rate == 0.0
    assert settings.default_slippage_rate == 0.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {'investment_fraction': 0.0},
        {'investment_fraction': 1.5},
        {'default_commission_rate': -0.1},
        {'default_slippage_rate': 1.0},
    ],
)
def test_engine_settings_validation(kwargs):
    with pytest.raises(ValueError):
        EngineSettings(**kwargs)


def test_engine_settings_from_env(monkeypatch):
    monkeypatch.setenv("BACKTEST_INVESTMENT_FRACTION", "0.5")
    monkeypatch.setenv("BACKTEST_RISK_FREE_RATE", "0.0001")
    monkeypatch.setenv("BACKTEST_COMMISSION_RATE", "0.001")

    settings = EngineSettings.from_env()

    assert settings.investment_fraction == 0.5
    assert settings.risk_free_rate == 0.0001
    assert settings.default_commission_rate == 0.001


def test_engine_settings_from_env_rejects_non_numbers(monkeypatch):
    monkeypatch.setenv("BACKTEST_SLIPPAGE_RATE", "lots")

    with pytest.raises(ValueError, match="BACKTEST_SLIPPAGE_RATE"):
        EngineSettings.from_env()


def test_yfinance_settings_from_env(monkeypatch):
    monkeypatch.setenv("YFINANCE_AUTO_ADJUST", "true")
    monkeypatch.setenv("YFINANCE_THREADS", "false")
    monkeypatch.setenv("YFINANCE_TIMEOUT_SECONDS", "5")

    settings = YFinanceSettings.from_env()

    assert settings.auto_adjust is True
    assert settings.threads is False
    assert settings.timeout_seconds == 5
    assert settings.interval == "1d"


def test_yfinance_settings_bad_timeout(monkeypatch):
    monkeypatch.setenv("YFINANCE_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError, match="YFINANCE_TIMEOUT_SECONDS"):
        YFinanceSettings.from_env()


def test_log_settings_level_validation(monkeypatch):
    monkeypatch.setenv("BACKTEST_LOG_LEVEL", "debug")
    assert LogSettings.from_env().level == "DEBUG"

    with pytest.raises(ValueError):
        LogSettings(level="CHATTY")


def test_get_settings_is_cached_until_reset(monkeypatch):
    monkeypatch.setenv("BACKTEST_INVESTMENT_FRACTION", "0.8")
    first = get_settings()

    monkeypatch.setenv("BACKTEST_INVESTMENT_FRACTION", "0.6")
    assert get_settings() is first
    assert first.engine.investment_fraction == 0.8

    reset_settings()
    assert get_settings().engine.investment_fraction == 0.6


def test_settings_aggregate_defaults():
    settings = Settings()

    assert settings.engine == EngineSettings()
    assert settings.yfinance.interval == "1d"
    assert settings.log.log_dir is None
