"""
Technical indicator library.

**Conceptual**: Indicators transform a closing-price series into derived
series that strategies compare against thresholds or against each other.
Every function here is pure and deterministic: same prices in, same values
out, no hidden state.

**Alignment contract**:
  - Input is a pandas Series (or any sequence of floats, which is wrapped in a
    RangeIndex Series), oldest first.
  - Output is aligned index-for-index with the input.
  - Positions where the lookback window is not yet satisfied hold NaN.
  - Short input never raises; it simply yields more NaN. A non-positive
    period is a programming error and raises ValueError.

**Indicators**:
  - SMA: trailing arithmetic mean.
  - EMA: recursive exponential average seeded with the first price.
  - RSI: 0..100 momentum oscillator from trailing average gains/losses.
  - MACD: difference of a fast and slow EMA, plus its own EMA (signal line).
  - Bollinger Bands: SMA ± k population standard deviations.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from backtester.utils.math import (
    compute_moving_average_exponential,
    compute_moving_average_simple,
    compute_rolling_population_std,
)


PriceInput = pd.Series | Sequence[float]


def _as_series(prices: PriceInput) -> pd.Series:
    if isinstance(prices, pd.Series):
        return prices.astype(float)
    return pd.Series(list(prices), dtype=float)


def sma(prices: PriceInput, period: int) -> pd.Series:
    """
    Simple moving average over the trailing ``period`` closes.

    NaN for the first ``period - 1`` positions.
    """
    return compute_moving_average_simple(_as_series(prices), period)


def ema(prices: PriceInput, period: int) -> pd.Series:
    """
    Exponential moving average with smoothing factor ``k = 2 / (period + 1)``.

    **Functionally**:
      - ``ema[0] = close[0]`` (seeded with the first observation).
      - ``ema[i] = close[i] * k + ema[i-1] * (1 - k)``.
      - Defined from index 0; there are no leading NaNs.

    **Teaching note**: Seeding with the first close (rather than with an SMA
    of the first ``period`` closes) makes early values lean on the first
    price. The MACD strategy compensates by holding through a warm-up window.
    """
    return compute_moving_average_exponential(_as_series(prices), period)


def rsi(prices: PriceInput, period: int) -> pd.Series:
    """
    Relative Strength Index over the trailing ``period`` price changes.

    **Conceptual**: RSI compares the size of recent up moves to recent down
    moves. Readings below ~30 are conventionally "oversold" (price has fallen
    hard, a bounce is plausible); readings above ~70 are "overbought".

    **Mathematical**: With ``Δ_j = P_j - P_{j-1}`` and, for index i >= period,
    the window of changes ``Δ_{i-period+1} .. Δ_i``:
        avg_gain = mean(max(Δ, 0))
        avg_loss = mean(max(-Δ, 0))
        RS  = avg_gain / avg_loss
        RSI = 100 - 100 / (1 + RS)

    This is the simple-average form (not Wilder's smoothed recursion).

    **Edge cases**:
      - avg_loss == 0 and avg_gain > 0 → 100 (only up moves in the window).
      - avg_loss == 0 and avg_gain == 0 → 50 (flat window, neutral reading).
      - Indices < period → NaN (not enough price changes yet).

    Args:
        prices: Closing prices, oldest first.
        period: Number of trailing price changes to average.

    Returns:
        Series of RSI values in [0, 100], same index as input.
    """
    if isinstance(period, bool) or not isinstance(period, (int, np.integer)) or period < 1:
        raise ValueError(f"period must be a positive integer, got: {period!r}")

    series = _as_series(prices)
    result = pd.Series(np.nan, index=series.index, dtype=float)
    if len(series) <= period:
        return result

    deltas = np.diff(series.to_numpy())
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)

    # Each window is summed directly so a flat window gives an exact zero
    gain_windows = np.lib.stride_tricks.sliding_window_view(gains, period)
    loss_windows = np.lib.stride_tricks.sliding_window_view(losses, period)
    avg_gain = gain_windows.mean(axis=1)
    avg_loss = loss_windows.mean(axis=1)

    values = np.full(len(avg_gain), 50.0)
    only_gains = (avg_loss == 0.0) & (avg_gain > 0.0)
    values[only_gains] = 100.0
    has_loss = avg_loss > 0.0
    rs = avg_gain[has_loss] / avg_loss[has_loss]
    values[has_loss] = 100.0 - 100.0 / (1.0 + rs)

    result.iloc[period:] = values
    return result


@dataclass(frozen=True)
class MacdResult:
    """
    MACD output series, each aligned with the input prices.

    Attributes:
        macd_line: EMA(fast) - EMA(slow).
        signal_line: EMA(macd_line, signal).
        histogram: macd_line - signal_line.
    """
    macd_line: pd.Series
    signal_line: pd.Series
    histogram: pd.Series


def macd(
    prices: PriceInput,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MacdResult:
    """
    Moving Average Convergence/Divergence.

    **Conceptual**: When the fast EMA pulls away above the slow EMA, momentum
    is building upward; the signal line is a smoothed copy of that gap, so
    the MACD line crossing its signal line marks a momentum shift.

    Because EMA is defined from index 0, every output is defined from index 0
    too. Early values are dominated by the seed.
    """
    series = _as_series(prices)
    macd_line = ema(series, fast_period) - ema(series, slow_period)
    signal_line = ema(macd_line, signal_period)
    histogram = macd_line - signal_line
    return MacdResult(
        macd_line=macd_line.rename('macd'),
        signal_line=signal_line.rename('signal'),
        histogram=histogram.rename('histogram'),
    )


@dataclass(frozen=True)
class BollingerBands:
    """
    Bollinger Bands output series, each aligned with the input prices.

    Attributes:
        upper: middle + multiplier * rolling population std.
        middle: SMA(period).
        lower: middle - multiplier * rolling population std.
    """
    upper: pd.Series
    middle: pd.Series
    lower: pd.Series


def bollinger_bands(
    prices: PriceInput,
    period: int = 20,
    std_dev_multiplier: float = 2.0,
) -> BollingerBands:
    """
    Bollinger Bands around a trailing SMA.

    **Mathematical**:
        middle_t = SMA_t(period)
        σ_t      = sqrt( mean( (P - middle_t)^2 ) )   over the same window (ddof=0)
        upper_t  = middle_t + k * σ_t
        lower_t  = middle_t - k * σ_t

    **Edge cases**:
      - First ``period - 1`` positions are NaN in all three bands.
      - A constant window gives σ = 0, so upper == middle == lower.

    Args:
        prices: Closing prices, oldest first.
        period: Lookback window.
        std_dev_multiplier: Band width in standard deviations (k).
    """
    series = _as_series(prices)
    middle = sma(series, period)
    spread = compute_rolling_population_std(series, period) * std_dev_multiplier
    return BollingerBands(
        upper=(middle + spread).rename('upper'),
        middle=middle.rename('middle'),
        lower=(middle - spread).rename('lower'),
    )
