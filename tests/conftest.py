"""
Pytest configuration file.

Ensures the repo root is on sys.path so that 'import backtester...' works,
and provides shared bar fixtures.
"""
import sys
from pathlib import Path

import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from backtester.analytics.synthetic_data import generate_gbm_bars  # noqa: E402
from backtester.config.settings import EngineSettings  # noqa: E402
from backtester.data.schemas import BarSeries  # noqa: E402


@pytest.fixture
def constant_bars() -> BarSeries:
    """60 business days at a flat $100."""
    return BarSeries.from_closes([100.0] * 60, start_date="2024-01-01", symbol="FLAT")


@pytest.fixture
def gbm_bars() -> BarSeries:
    """Two years of seeded GBM bars (deterministic)."""
    return generate_gbm_bars(n_bars=504, initial_price=100.0, drift=0.08, volatility=0.25, seed=7, symbol="GBM")


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Default engine constants, independent of the environment."""
    return EngineSettings()
