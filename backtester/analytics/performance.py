"""
Performance statistics for a completed simulation.

**Conceptual**: Once the simulator has produced a trade log and an equity
curve, this module answers the questions a trader asks about a backtest:
  - Did it make money? (total and annualized return)
  - How painful was it? (maximum drawdown)
  - Was the return worth the volatility? (Sharpe ratio)
  - What did individual trades look like? (win rate, average win/loss,
    profit factor)
  - Would simply buying and holding have done better? (benchmark)

**Sentinel policy**: Every statistic is a finite number. Degenerate inputs
(zero-day range, no returns, zero variance, no losing trades) resolve to 0.0
rather than NaN or infinity, so results always serialize to plain JSON.

**Units**:
  - ``*_percent`` fields are percentages (12.5 means 12.5%).
  - ``annualized_return`` is a decimal fraction (0.125 means 12.5% a year).
  - The Sharpe ratio is per period (daily) and NOT annualized.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

from backtester.data.schemas import BarSeries
from backtester.execution.simulator import (
    EquityPoint,
    SimulationConfig,
    Trade,
    TradeSide,
    simulate,
)
from backtester.strategies.base import Signal
from backtester.utils.math import compute_simple_returns


def compute_total_return(initial_capital: float, final_capital: float) -> tuple[float, float]:
    """
    Dollar and percentage gain from start to finish.

    Returns:
        (final - initial, (final - initial) / initial * 100). The percentage is
        0.0 when initial capital is not positive.
    """
    dollars = final_capital - initial_capital
    percent = dollars / initial_capital * 100.0 if initial_capital > 0 else 0.0
    return dollars, percent


def compute_annualized_return(initial_capital: float, final_capital: float, days: int) -> float:
    """
    Compound annual growth rate over a calendar-day span.

    **Mathematical**:
        annualized = (final / initial)^(365 / days) - 1

    ``days`` is the calendar span of the requested range (end - start), not
    the number of bars, so weekends and holidays count.

    **Edge cases**:
      - days <= 0 or initial <= 0 → 0.0.
      - final <= 0 (total loss) → -1.0.
      - Very short spans can overflow the power; the result is then capped
        rather than returned as infinity.

    Returns:
        Annualized return as a decimal fraction.
    """
    if days <= 0 or initial_capital <= 0:
        return 0.0
    ratio = final_capital / initial_capital
    if ratio <= 0:
        return -1.0
    try:
        value = math.pow(ratio, 365.0 / days) - 1.0
    except OverflowError:
        return float(np.finfo(float).max)
    return value if math.isfinite(value) else float(np.finfo(float).max)


def compute_max_drawdown(equity_curve: Sequence[EquityPoint]) -> tuple[float, float]:
    """
    Largest drawdown observed on the equity curve.

    Dollar and percentage drawdowns are maximised independently: the deepest
    dollar drawdown and the deepest percentage drawdown can occur at different
    points when the peak moves.

    Returns:
        (max_drawdown_dollars, max_drawdown_percent); (0.0, 0.0) for an empty curve.
    """
    if not equity_curve:
        return 0.0, 0.0
    max_dd = max(point.drawdown for point in equity_curve)
    max_dd_pct = max(point.drawdown_percent for point in equity_curve)
    return max(max_dd, 0.0), max(max_dd_pct, 0.0)


def equity_series(equity_curve: Sequence[EquityPoint]) -> pd.Series:
    """Equity values as a float Series indexed by date."""
    return pd.Series(
        [point.equity for point in equity_curve],
        index=pd.DatetimeIndex([pd.Timestamp(point.date) for point in equity_curve], name='date'),
        dtype=float,
        name='equity',
    )


def compute_daily_returns(equity_curve: Sequence[EquityPoint]) -> pd.Series:
    """
    Bar-to-bar simple returns of the equity curve.

    One fewer value than equity points (the leading NaN is dropped).
    """
    if not equity_curve:
        return pd.Series(dtype=float)
    return compute_simple_returns(equity_series(equity_curve)).dropna()


def compute_sharpe_ratio(returns: pd.Series | Iterable[float], risk_free_rate: float = 0.0) -> float:
    """
    Per-period Sharpe ratio.

    **Mathematical**:
        Sharpe = (mean(r) - r_f) / std(r)      (population std, ddof=0)

    ``risk_free_rate`` is a per-period rate (daily for daily bars). The ratio
    is deliberately not scaled by sqrt(252), so it is comparable only with
    other ratios from this engine.

    **Edge cases**:
      - No returns → 0.0.
      - Zero variance (e.g. an all-cash run) → 0.0.

    Returns:
        Sharpe ratio as a float.
    """
    clean = pd.Series(returns, dtype=float).dropna()
    if clean.empty:
        return 0.0

    std = float(clean.std(ddof=0))
    # Tolerance check for floating-point safety
    if not math.isfinite(std) or std < 1e-12:
        return 0.0
    return (float(clean.mean()) - risk_free_rate) / std


@dataclass(frozen=True)
class TradeStatistics:
    """
    Round-trip statistics from a trade log.

    A round trip is one buy followed by its sell. Only sells carry realized
    P&L, so every figure below is computed from sell trades.

    Attributes:
        total_trades: Completed round trips.
        winning_trades: Round trips with realized P&L > 0.
        losing_trades: Round trips with realized P&L < 0.
        win_rate: wins / (wins + losses) * 100; 0.0 with no decided trades.
        average_win: Mean P&L of winning trades (0.0 if none).
        average_loss: Mean absolute P&L of losing trades (0.0 if none).
        profit_factor: (average_win * wins) / (average_loss * losses);
                      0.0 when there are no losing trades.
        largest_win: Best round-trip P&L (0.0 if no wins).
        largest_loss: Worst round-trip loss as an absolute value (0.0 if none).
        total_commission: Commission paid across all trades, buys included.
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    total_commission: float = 0.0


def compute_trade_statistics(trades: Sequence[Trade]) -> TradeStatistics:
    """
    Win/loss statistics over completed round trips.

    Breakeven round trips (P&L exactly 0) count toward ``total_trades`` but
    are neither wins nor losses, so they do not dilute the win rate.
    """
    pnls = [t.realized_pnl for t in trades if t.side is TradeSide.SELL and t.realized_pnl is not None]
    wins = [p for p in pnls if p > 0]
    losses = [-p for p in pnls if p < 0]

    decided = len(wins) + len(losses)
    average_win = sum(wins) / len(wins) if wins else 0.0
    average_loss = sum(losses) / len(losses) if losses else 0.0
    profit_factor = (
        (average_win * len(wins)) / (average_loss * len(losses))
        if losses and average_loss > 0
        else 0.0
    )

    return TradeStatistics(
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / decided * 100.0 if decided else 0.0,
        average_win=average_win,
        average_loss=average_loss,
        profit_factor=profit_factor,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=max(losses) if losses else 0.0,
        total_commission=sum(t.commission for t in trades),
    )


@dataclass(frozen=True)
class BenchmarkResult:
    """
    Buy-and-hold comparison over the same bars and costs.

    Attributes:
        initial_capital: Starting cash.
        final_capital: Cash after the forced close on the last bar.
        total_return: Dollar gain.
        total_return_percent: Percentage gain.
        annualized_return: Decimal CAGR over the request's calendar span.
        max_drawdown: Largest dollar drawdown.
        max_drawdown_percent: Largest percentage drawdown.
        sharpe_ratio: Per-period Sharpe ratio.
    """
    initial_capital: float
    final_capital: float
    total_return: float
    total_return_percent: float
    annualized_return: float
    max_drawdown: float
    max_drawdown_percent: float
    sharpe_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return {
            'initial_capital': self.initial_capital,
            'final_capital': self.final_capital,
            'total_return': self.total_return,
            'total_return_percent': self.total_return_percent,
            'annualized_return': self.annualized_return,
            'max_drawdown': self.max_drawdown,
            'max_drawdown_percent': self.max_drawdown_percent,
            'sharpe_ratio': self.sharpe_ratio,
        }


def buy_and_hold_signals(bars: BarSeries) -> pd.Series:
    """BUY on the first bar, HOLD afterwards."""
    signals = pd.Series(Signal.HOLD, index=bars.index, dtype=object, name='signal')
    if len(signals):
        signals.iloc[0] = Signal.BUY
    return signals


def compute_benchmark(
    bars: BarSeries,
    initial_capital: float,
    days: int,
    config: SimulationConfig | None = None,
    risk_free_rate: float = 0.0,
) -> BenchmarkResult:
    """
    Buy-and-hold benchmark over the same bars.

    **Conceptual**: The benchmark answers "was the strategy worth the
    effort?" It runs the same simulator with a signal sequence that buys on
    the first bar and holds, so sizing, commission and slippage match the
    strategy run exactly. The position is closed at the last bar like any
    other run.

    Args:
        bars: The same bars the strategy was simulated on.
        initial_capital: Starting cash.
        days: Calendar span used for the annualized return.
        config: Costs and sizing; defaults to zero costs with 95% investment.
                ``initial_capital`` overrides the config's capital.
        risk_free_rate: Per-period rate for the Sharpe ratio.
    """
    if config is None:
        config = SimulationConfig(initial_capital=initial_capital)
    elif config.initial_capital != initial_capital:
        config = SimulationConfig(
            initial_capital=initial_capital,
            commission_rate=config.commission_rate,
            slippage_rate=config.slippage_rate,
            investment_fraction=config.investment_fraction,
        )

    result = simulate(bars, buy_and_hold_signals(bars), config)
    total_return, total_return_percent = compute_total_return(initial_capital, result.final_capital)
    max_dd, max_dd_pct = compute_max_drawdown(result.equity_curve)

    return BenchmarkResult(
        initial_capital=initial_capital,
        final_capital=result.final_capital,
        total_return=total_return,
        total_return_percent=total_return_percent,
        annualized_return=compute_annualized_return(initial_capital, result.final_capital, days),
        max_drawdown=max_dd,
        max_drawdown_percent=max_dd_pct,
        sharpe_ratio=compute_sharpe_ratio(compute_daily_returns(result.equity_curve), risk_free_rate),
    )
