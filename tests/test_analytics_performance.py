"""
Tests for performance statistics and the buy-and-hold benchmark.
"""

import datetime as dt

import numpy as np
import pandas as pd
import pytest

from backtester.analytics.performance import (
    buy_and_hold_signals,
    compute_annualized_return,
    compute_benchmark,
    compute_daily_returns,
    compute_max_drawdown,
    compute_sharpe_ratio,
    compute_total_return,
    compute_trade_statistics,
)
from backtester.data.schemas import BarSeries
from backtester.execution.simulator import EquityPoint, SimulationConfig, Trade, TradeSide
from backtester.strategies.base import Signal


def _point(day: int, equity: float, peak: float) -> EquityPoint:
    drawdown = peak - equity
    return EquityPoint(
        date=dt.date(2024, 1, day),
        equity=equity,
        peak_equity=peak,
        drawdown=drawdown,
        drawdown_percent=drawdown / peak * 100.0,
    )


def _sell(pnl: float, commission: float = 0.0) -> Trade:
    return Trade(
        date=dt.date(2024, 1, 2),
        side=TradeSide.SELL,
        price=100.0,
        shares=1,
        gross_value=100.0,
        commission=commission,
        realized_pnl=pnl,
        cumulative_pnl=pnl,
    )


def _buy(commission: float = 0.0) -> Trade:
    return Trade(
        date=dt.date(2024, 1, 1),
        side=TradeSide.BUY,
        price=100.0,
        shares=1,
        gross_value=100.0,
        commission=commission,
    )


def test_total_return_dollars_and_percent():
    assert compute_total_return(10_000.0, 11_000.0) == pytest.approx((1_000.0, 10.0))
    assert compute_total_return(10_000.0, 9_000.0) == pytest.approx((-1_000.0, -10.0))


def test_annualized_return_compounds_over_calendar_days():
    """21% over two years is 10% a year: 1.21^(365/730) - 1 = 0.1."""
    assert compute_annualized_return(10_000.0, 12_100.0, 730) == pytest.approx(0.10)
    assert compute_annualized_return(10_000.0, 11_000.0, 365) == pytest.approx(0.10)


@pytest.mark.parametrize("days", [0, -5])
def test_annualized_return_non_positive_span_is_zero(days):
    assert compute_annualized_return(10_000.0, 12_000.0, days) == 0.0


def test_annualized_return_total_loss_is_minus_one():
    assert compute_annualized_return(10_000.0, 0.0, 365) == -1.0


def test_annualized_return_overflow_is_capped():
    value = compute_annualized_return(1.0, 1_000_000.0, 1)

    assert np.isfinite(value)
    assert value == float(np.finfo(float).max)


def test_max_drawdown_maximises_dollars_and_percent_independently():
    """
    Peak 1,000 → 900 is -100 (10%); later peak 3,000 → 2,850 is -150 (5%).
    Deepest dollar drawdown is 150 but deepest percentage is 10%.
    """
    curve = [
        _point(1, 1_000.0, 1_000.0),
        _point(2, 900.0, 1_000.0),
        _point(3, 3_000.0, 3_000.0),
        _point(4, 2_850.0, 3_000.0),
    ]

    assert compute_max_drawdown(curve) == pytest.approx((150.0, 10.0))


def test_max_drawdown_empty_curve():
    assert compute_max_drawdown([]) == (0.0, 0.0)


def test_daily_returns_from_equity_curve():
    curve = [_point(1, 100.0, 100.0), _point(2, 110.0, 110.0), _point(3, 99.0, 110.0)]

    returns = compute_daily_returns(curve)

    assert returns.tolist() == pytest.approx([0.10, -0.10])
    assert returns.index[0] == pd.Timestamp("2024-01-02")


def test_sharpe_ratio_uses_population_std():
    """Returns [0.01, 0.03]: mean 0.02, population std 0.01 → 2.0."""
    assert compute_sharpe_ratio([0.01, 0.03]) == pytest.approx(2.0)
    assert compute_sharpe_ratio([0.01, 0.03], risk_free_rate=0.01) == pytest.approx(1.0)


@pytest.mark.parametrize("returns", [[], [0.0, 0.0, 0.0], [0.005] * 10])
def test_sharpe_ratio_degenerate_inputs_are_zero(returns):
    assert compute_sharpe_ratio(returns) == 0.0


def test_trade_statistics_from_sells():
    """
    Round trips: +100, -50, 0 (breakeven), +200.
      wins 2, losses 1, win rate 2/3 → 66.67%
      avg win 150, avg loss 50, profit factor 300 / 50 = 6
    """
    trades = [
        _buy(1.0), _sell(100.0, 1.0),
        _buy(1.0), _sell(-50.0, 1.0),
        _buy(), _sell(0.0),
        _buy(), _sell(200.0),
    ]

    stats = compute_trade_statistics(trades)

    assert stats.total_trades == 4
    assert stats.winning_trades == 2
    assert stats.losing_trades == 1
    assert stats.win_rate == pytest.approx(200.0 / 3.0)
    assert stats.average_win == pytest.approx(150.0)
    assert stats.average_loss == pytest.approx(50.0)
    assert stats.profit_factor == pytest.approx(6.0)
    assert stats.largest_win == pytest.approx(200.0)
    assert stats.largest_loss == pytest.approx(50.0)
    assert stats.total_commission == pytest.approx(4.0)


def test_trade_statistics_without_losses_has_zero_profit_factor():
    stats = compute_trade_statistics([_buy(), _sell(100.0)])

    assert stats.win_rate == pytest.approx(100.0)
    assert stats.profit_factor == 0.0


def test_trade_statistics_empty_log():
    stats = compute_trade_statistics([])

    assert stats.total_trades == 0
    assert stats.win_rate == 0.0
    assert stats.average_loss == 0.0


def test_buy_and_hold_signals():
    bars = BarSeries.from_closes([100.0, 101.0, 102.0])

    signals = buy_and_hold_signals(bars)

    assert signals.tolist() == [Signal.BUY, Signal.HOLD, Signal.HOLD]
    assert signals.index.equals(bars.index)


def test_benchmark_buys_first_bar_and_closes_last():
    """
    Same bars as the simulator round trip: 95 shares at 100, closed at 120.
    Final 11,900; the 90 close in between is a 9.5% drawdown.
    """
    bars = BarSeries.from_closes([100.0, 90.0, 120.0])

    bench = compute_benchmark(bars, 10_000.0, days=365)

    assert bench.final_capital == pytest.approx(11_900.0)
    assert bench.total_return == pytest.approx(1_900.0)
    assert bench.total_return_percent == pytest.approx(19.0)
    assert bench.annualized_return == pytest.approx(0.19)
    assert bench.max_drawdown == pytest.approx(950.0)
    assert bench.max_drawdown_percent == pytest.approx(9.5)
    assert bench.sharpe_ratio > 0


def test_benchmark_uses_supplied_costs_with_its_own_capital():
    bars = BarSeries.from_closes([100.0, 100.0])
    config = SimulationConfig(initial_capital=1.0, commission_rate=0.001, slippage_rate=0.01)

    bench = compute_benchmark(bars, 10_000.0, days=1, config=config)

    assert bench.initial_capital == 10_000.0
    assert bench.final_capital == pytest.approx(9_793.2)
    assert bench.total_return < 0
