"""
Trade simulator: turns a signal sequence into trades and an equity curve.

**Conceptual**: The simulator plays the role of a paper broker for a single
symbol with an all-in / all-out position. It walks the bars oldest to newest,
reads the strategy's intent for each bar and decides whether that intent can
be acted on given the current cash and holdings.

**State machine** (two states):
  - Flat (shares == 0): a BUY opens a position sized at
    ``floor(cash * investment_fraction / fill_price)`` whole shares, provided
    the cost including commission fits in cash.
  - Invested (shares > 0): a SELL closes the whole position.
  - Every other (state, signal) pair is a HOLD: no trade, no state change.
  - On the final bar an open position is force-closed (reason END_OF_DATA)
    before that bar's equity is recorded, so every run ends Flat and the last
    equity point equals final capital.

**Financial assumptions** (document clearly so results are reproducible):
  - Trades fill at the bar's close, adjusted by slippage: buys pay
    ``close * (1 + slippage_rate)``, sells receive ``close * (1 - slippage_rate)``.
  - Commission is a fraction of traded value, charged on both buys and sells.
  - Whole shares only; no shorting, no margin, no partial exits.
  - Equity is marked to the unadjusted close: ``cash + shares * close``.
  - Cost basis of a position includes its buy commission, so realized P&L of
    all round trips sums exactly to ``final_capital - initial_capital``.

**Teaching note**: Instead of a mutable broker object, the running totals live
in a frozen SimulatorState that is threaded through a fold over the bars.
Each step returns a new state plus any trades it produced. That keeps the
per-bar logic a pure function which is easy to test in isolation.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable

import pandas as pd
from loguru import logger

from backtester.data.schemas import Bar, BarSeries
from backtester.strategies.base import Signal
from backtester.utils.errors import ConfigurationError, InsufficientDataError


class TradeSide(Enum):
    BUY = "buy"
    SELL = "sell"


class TradeReason(Enum):
    """Why a trade happened: a strategy signal or the forced close on the last bar."""
    SIGNAL = "signal"
    END_OF_DATA = "end_of_data"


@dataclass(frozen=True)
class SimulationConfig:
    """
    Cost and sizing configuration for one simulation.

    Attributes:
        initial_capital: Starting cash (must be positive and finite).
        commission_rate: Commission as a fraction of traded value, in [0, 1).
        slippage_rate: Fill price adjustment as a fraction of close, in [0, 1).
        investment_fraction: Fraction of cash committed on a buy, in (0, 1].

    Raises:
        ConfigurationError: If any value is out of range.
    """
    initial_capital: float
    commission_rate: float = 0.0
    slippage_rate: float = 0.0
    investment_fraction: float = 0.95

    def __post_init__(self):
        if not (math.isfinite(self.initial_capital) and self.initial_capital > 0):
            raise ConfigurationError(
                f"initial_capital must be a positive number, got: {self.initial_capital}"
            )
        if not (0.0 <= self.commission_rate < 1.0):
            raise ConfigurationError(
                f"commission_rate must be in [0, 1), got: {self.commission_rate}"
            )
        if not (0.0 <= self.slippage_rate < 1.0):
            raise ConfigurationError(
                f"slippage_rate must be in [0, 1), got: {self.slippage_rate}"
            )
        if not (0.0 < self.investment_fraction <= 1.0):
            raise ConfigurationError(
                f"investment_fraction must be in (0, 1], got: {self.investment_fraction}"
            )


@dataclass(frozen=True)
class Trade:
    """
    One executed buy or sell.

    Attributes:
        date: Bar date of the fill.
        side: BUY or SELL.
        price: Fill price per share (close adjusted for slippage).
        shares: Whole shares traded (always positive).
        gross_value: shares * price.
        commission: gross_value * commission_rate.
        realized_pnl: For sells, proceeds minus the position's cost basis.
                     None for buys.
        cumulative_pnl: For sells, running total of realized P&L including
                       this trade. None for buys.
        reason: SIGNAL or END_OF_DATA.
    """
    date: Any
    side: TradeSide
    price: float
    shares: int
    gross_value: float
    commission: float
    realized_pnl: float | None = None
    cumulative_pnl: float | None = None
    reason: TradeReason = TradeReason.SIGNAL

    def to_dict(self) -> dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'side': self.side.value,
            'price': self.price,
            'shares': self.shares,
            'gross_value': self.gross_value,
            'commission': self.commission,
            'realized_pnl': self.realized_pnl,
            'cumulative_pnl': self.cumulative_pnl,
            'reason': self.reason.value,
        }


@dataclass(frozen=True)
class EquityPoint:
    """
    Portfolio value at one bar's close.

    Attributes:
        date: Bar date.
        equity: cash + shares * close.
        peak_equity: Highest equity seen so far (never decreases).
        drawdown: peak_equity - equity (dollars, >= 0).
        drawdown_percent: drawdown / peak_equity * 100.
    """
    date: Any
    equity: float
    peak_equity: float
    drawdown: float
    drawdown_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'equity': self.equity,
            'peak_equity': self.peak_equity,
            'drawdown': self.drawdown,
            'drawdown_percent': self.drawdown_percent,
        }


@dataclass(frozen=True)
class SimulatorState:
    """
    Running totals threaded through the fold over bars.

    Attributes:
        cash: Uninvested cash (never negative).
        shares: Whole shares held; 0 means Flat.
        cost_basis: Total paid for the open position, commission included.
        peak_equity: Running maximum of equity.
        realized_pnl: Sum of realized P&L over closed round trips.
    """
    cash: float
    shares: int = 0
    cost_basis: float = 0.0
    peak_equity: float = 0.0
    realized_pnl: float = 0.0

    @property
    def is_invested(self) -> bool:
        return self.shares > 0

    def equity(self, close: float) -> float:
        return self.cash + self.shares * close


@dataclass(frozen=True)
class SimulationResult:
    """
    Output of one simulation.

    Attributes:
        trades: Executed trades in chronological order.
        equity_curve: One EquityPoint per bar.
        final_capital: Cash after the last bar (the run always ends Flat).
    """
    trades: tuple[Trade, ...]
    equity_curve: tuple[EquityPoint, ...]
    final_capital: float


def _open_position(
    state: SimulatorState,
    bar: Bar,
    config: SimulationConfig,
) -> tuple[SimulatorState, Trade | None]:
    fill_price = bar.close * (1.0 + config.slippage_rate)
    shares = math.floor(state.cash * config.investment_fraction / fill_price)
    gross_value = shares * fill_price
    commission = gross_value * config.commission_rate

    if shares <= 0 or gross_value + commission > state.cash:
        logger.warning(
            "BUY on {} not executed: cash {:.2f} cannot cover {} shares at {:.4f}",
            bar.date, state.cash, shares, fill_price,
        )
        return state, None

    new_state = replace(
        state,
        cash=state.cash - gross_value - commission,
        shares=shares,
        cost_basis=gross_value + commission,
    )
    trade = Trade(
        date=bar.date,
        side=TradeSide.BUY,
        price=fill_price,
        shares=shares,
        gross_value=gross_value,
        commission=commission,
    )
    return new_state, trade


def _close_position(
    state: SimulatorState,
    bar: Bar,
    config: SimulationConfig,
    reason: TradeReason,
) -> tuple[SimulatorState, Trade]:
    fill_price = bar.close * (1.0 - config.slippage_rate)
    gross_value = state.shares * fill_price
    commission = gross_value * config.commission_rate
    proceeds = gross_value - commission
    pnl = proceeds - state.cost_basis
    cumulative = state.realized_pnl + pnl

    new_state = replace(
        state,
        cash=state.cash + proceeds,
        shares=0,
        cost_basis=0.0,
        realized_pnl=cumulative,
    )
    trade = Trade(
        date=bar.date,
        side=TradeSide.SELL,
        price=fill_price,
        shares=state.shares,
        gross_value=gross_value,
        commission=commission,
        realized_pnl=pnl,
        cumulative_pnl=cumulative,
        reason=reason,
    )
    return new_state, trade


def step(
    state: SimulatorState,
    bar: Bar,
    signal: Signal,
    config: SimulationConfig,
    is_last: bool = False,
) -> tuple[SimulatorState, list[Trade], EquityPoint]:
    """
    Advance the simulation by one bar.

    **Functionally**:
      1. Act on the signal if the state allows it (Flat + BUY, Invested + SELL).
      2. If this is the last bar and a position is still open, force-close it.
      3. Mark to market at the close, update the running peak, and record
         the equity point.

    Args:
        state: State before this bar.
        bar: The bar being processed.
        signal: Strategy intent for this bar.
        config: Costs and sizing.
        is_last: True for the final bar of the run.

    Returns:
        (new_state, trades executed on this bar, equity point for this bar)
    """
    trades: list[Trade] = []

    if signal is Signal.BUY and not state.is_invested:
        state, trade = _open_position(state, bar, config)
        if trade is not None:
            trades.append(trade)
    elif signal is Signal.SELL and state.is_invested:
        state, trade = _close_position(state, bar, config, TradeReason.SIGNAL)
        trades.append(trade)

    if is_last and state.is_invested:
        state, trade = _close_position(state, bar, config, TradeReason.END_OF_DATA)
        trades.append(trade)

    equity = state.equity(bar.close)
    peak = max(state.peak_equity, equity)
    state = replace(state, peak_equity=peak)
    drawdown = peak - equity
    point = EquityPoint(
        date=bar.date,
        equity=equity,
        peak_equity=peak,
        drawdown=drawdown,
        drawdown_percent=drawdown / peak * 100.0 if peak > 0 else 0.0,
    )
    return state, trades, point


def _as_signal_list(signals: pd.Series | Iterable[Signal]) -> list[Signal]:
    values = list(signals.tolist() if isinstance(signals, pd.Series) else signals)
    for position, value in enumerate(values):
        if not isinstance(value, Signal):
            raise ConfigurationError(
                f"Signal {position} is {value!r}, expected a Signal member."
            )
    return values


def simulate(
    bars: BarSeries,
    signals: pd.Series | Iterable[Signal],
    config: SimulationConfig,
) -> SimulationResult:
    """
    Run the trade simulation over a full bar series.

    Args:
        bars: Validated bar series (oldest first).
        signals: One Signal per bar, positionally aligned with ``bars``.
        config: Costs, sizing and initial capital.

    Returns:
        SimulationResult with trades, equity curve and final capital.

    Raises:
        InsufficientDataError: If ``bars`` is empty.
        ConfigurationError: If the signal count differs from the bar count or
                           a signal is not a Signal member.
    """
    if len(bars) == 0:
        raise InsufficientDataError("Cannot simulate an empty bar series.")

    signal_list = _as_signal_list(signals)
    if len(signal_list) != len(bars):
        raise ConfigurationError(
            f"Signal count ({len(signal_list)}) does not match bar count ({len(bars)})."
        )

    state = SimulatorState(cash=config.initial_capital, peak_equity=config.initial_capital)
    trades: list[Trade] = []
    curve: list[EquityPoint] = []
    last_index = len(bars) - 1

    for i, (bar, signal) in enumerate(zip(bars, signal_list)):
        state, bar_trades, point = step(state, bar, signal, config, is_last=(i == last_index))
        trades.extend(bar_trades)
        curve.append(point)

    logger.debug(
        "Simulated {} bars: {} trades, final capital {:.2f}",
        len(bars), len(trades), state.cash,
    )

    return SimulationResult(
        trades=tuple(trades),
        equity_curve=tuple(curve),
        final_capital=state.cash,
    )
