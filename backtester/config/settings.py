"""
Configuration settings for the backtest engine and its adapters.

**Conceptual**: This module provides strongly-typed configuration objects that
load from environment variables (via .env files). All settings are validated
at construction, ensuring fail-fast behavior if configuration is invalid.

**What is configuration vs what is a request?**
  - Per-run inputs (symbol, dates, strategy, parameters, commission and
    slippage for that run) travel in a BacktestRequest.
  - Engine-wide constants (the fraction of cash committed on a buy, the
    risk-free rate used in the Sharpe ratio, default cost rates for the CLI)
    live here. They are NOT strategy parameters and are never exposed in
    the strategy catalog.

**Teaching note**: The engine itself never reads the environment. Callers
either pass an EngineSettings explicitly or let the orchestrator fall back
to ``get_settings().engine``. Tests construct settings objects directly.

This module uses python-dotenv to load .env files and dataclasses for type safety.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from project root (dev/local environments); a missing file is fine
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw}")


def _read_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class EngineSettings:
    """
    Engine-wide simulation constants.

    **Conceptual**: These knobs change how every backtest is simulated, but
    they are not part of any strategy's tunable surface.

    **Why 95% investment fraction?**
      - A buy computes ``floor(cash * investment_fraction / price)`` shares.
      - Holding back 5% leaves headroom for commission and slippage so that a
        buy is rarely rejected for insufficient cash.

    Attributes:
        investment_fraction: Fraction of cash committed on each buy (0 < f <= 1).
                            Default 0.95.
        risk_free_rate: Per-period (daily) risk-free rate subtracted from the
                       mean daily return in the Sharpe ratio. Default 0.0.
        default_commission_rate: Commission as a fraction of traded value used
                                when a caller does not specify one (CLI). Default 0.0.
        default_slippage_rate: Slippage as a fraction of price used when a caller
                              does not specify one (CLI). Default 0.0.
    """
    investment_fraction: float = 0.95
    risk_free_rate: float = 0.0
    default_commission_rate: float = 0.0
    default_slippage_rate: float = 0.0

    def __post_init__(self):
        """Validate settings after initialization."""
        if not (0.0 < self.investment_fraction <= 1.0):
            raise ValueError(
                f"investment_fraction must be in (0, 1], got: {self.investment_fraction}"
            )
        if not (0.0 <= self.default_commission_rate < 1.0):
            raise ValueError(
                f"default_commission_rate must be in [0, 1), got: {self.default_commission_rate}"
            )
        if not (0.0 <= self.default_slippage_rate < 1.0):
            raise ValueError(
                f"default_slippage_rate must be in [0, 1), got: {self.default_slippage_rate}"
            )

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Load engine settings from environment variables.

        **Environment variables** (all optional):
          - BACKTEST_INVESTMENT_FRACTION (default 0.95)
          - BACKTEST_RISK_FREE_RATE (default 0.0)
          - BACKTEST_COMMISSION_RATE (default 0.0)
          - BACKTEST_SLIPPAGE_RATE (default 0.0)

        Raises:
            ValueError: If a variable is not a number or fails validation.
        """
        return cls(
            investment_fraction=_read_float("BACKTEST_INVESTMENT_FRACTION", "0.95"),
            risk_free_rate=_read_float("BACKTEST_RISK_FREE_RATE", "0.0"),
            default_commission_rate=_read_float("BACKTEST_COMMISSION_RATE", "0.0"),
            default_slippage_rate=_read_float("BACKTEST_SLIPPAGE_RATE", "0.0"),
        )


@dataclass(frozen=True)
class YFinanceSettings:
    """
    Configuration for the Yahoo Finance price-history adapter.

    No API key is needed; yfinance scrapes Yahoo Finance.

    Attributes:
        interval: Bar interval passed to yfinance (default "1d"; the engine only
                 supports daily bars).
        auto_adjust: Adjust OHLC for splits/dividends (default False).
        prepost: Include pre/post market data (default False).
        threads: Enable yfinance multi-threading (default True).
        timeout_seconds: HTTP timeout passed to yfinance (default 30).
    """
    interval: str = "1d"
    auto_adjust: bool = False
    prepost: bool = False
    threads: bool = True
    timeout_seconds: int = 30

    @classmethod
    def from_env(cls) -> "YFinanceSettings":
        """
        Load YFinance settings from environment variables.

        **Environment variables** (all optional):
          - YFINANCE_INTERVAL (default "1d")
          - YFINANCE_AUTO_ADJUST (default "false")
          - YFINANCE_PREPOST (default "false")
          - YFINANCE_THREADS (default "true")
          - YFINANCE_TIMEOUT_SECONDS (default "30")
        """
        timeout_str = os.getenv("YFINANCE_TIMEOUT_SECONDS", "30")
        try:
            timeout_seconds = int(timeout_str)
        except ValueError:
            raise ValueError(
                f"YFINANCE_TIMEOUT_SECONDS must be an integer, got: {timeout_str}"
            )

        return cls(
            interval=os.getenv("YFINANCE_INTERVAL", "1d"),
            auto_adjust=_read_bool("YFINANCE_AUTO_ADJUST", "false"),
            prepost=_read_bool("YFINANCE_PREPOST", "false"),
            threads=_read_bool("YFINANCE_THREADS", "true"),
            timeout_seconds=timeout_seconds,
        )


@dataclass(frozen=True)
class LogSettings:
    """
    Logging configuration consumed by ``configure_logging``.

    Attributes:
        level: Minimum log level for all sinks (default "INFO").
        log_dir: Optional directory for a rotating log file. None = stderr only.
        rotation: Loguru rotation policy for the file sink.
        retention: Loguru retention policy for the file sink.
    """
    level: str = "INFO"
    log_dir: Optional[str] = None
    rotation: str = "1 day"
    retention: str = "30 days"

    def __post_init__(self):
        valid = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
        if self.level.upper() not in valid:
            raise ValueError(f"Log level must be one of {valid}, got: {self.level}")

    @classmethod
    def from_env(cls) -> "LogSettings":
        """Load from BACKTEST_LOG_LEVEL and BACKTEST_LOG_DIR."""
        return cls(
            level=os.getenv("BACKTEST_LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("BACKTEST_LOG_DIR") or None,
        )


@dataclass(frozen=True)
class Settings:
    """
    Global settings aggregating every subsystem.

    **Usage pattern**:
      ```python
      from backtester.config.settings import get_settings

      settings = get_settings()
      fraction = settings.engine.investment_fraction
      ```

    Attributes:
        engine: Simulation constants.
        yfinance: Yahoo Finance adapter settings.
        log: Logging settings.
    """
    engine: EngineSettings = field(default_factory=EngineSettings)
    yfinance: YFinanceSettings = field(default_factory=YFinanceSettings)
    log: LogSettings = field(default_factory=LogSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Load all subsystem settings from the environment.

        Raises:
            ValueError: If any variable fails parsing or validation.
        """
        return cls(
            engine=EngineSettings.from_env(),
            yfinance=YFinanceSettings.from_env(),
            log=LogSettings.from_env(),
        )


# Lazily-initialized singleton. Tests either construct Settings directly or
# call reset_settings() after changing the environment.
_default_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings singleton, loading it from the environment on first use.

    Returns:
        Global Settings singleton.

    Raises:
        ValueError: If environment configuration is invalid.
    """
    global _default_settings

    if _default_settings is None:
        _default_settings = Settings.from_env()

    return _default_settings


def reset_settings():
    """Clear the cached settings singleton so the next access reloads from the environment."""
    global _default_settings
    _default_settings = None
