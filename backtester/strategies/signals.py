"""
Signal generators for the catalog strategies.

**Contract** (every generator):
  - Input: a BarSeries and a mapping of already-resolved parameters.
  - Output: a Series of Signal, indexed by bar date, same length as the bars.
  - Any bar where a required indicator is undefined (NaN) emits HOLD.
  - Only data up to and including bar ``i`` influences signal ``i``. Crossovers
    compare bar ``i`` with bar ``i-1`` via ``shift(1)``, never ``shift(-1)``.

**Teaching note**: Signals are computed with vectorized boolean masks over
whole indicator series, the same way regimes are assigned elsewhere in trading
code: start from an all-HOLD Series and overwrite positions with ``.loc[mask]``.
Comparisons against NaN evaluate to False in pandas, which is exactly what
turns warm-up positions into HOLD without special-casing them.
"""

import pandas as pd

from backtester.analytics.indicators import bollinger_bands, macd, rsi, sma
from backtester.data.schemas import BarSeries
from backtester.strategies.base import Parameters, Signal


def _signals_from_masks(index: pd.Index, buy_mask: pd.Series, sell_mask: pd.Series) -> pd.Series:
    """Build a Signal Series from boolean BUY/SELL masks. BUY wins if both are set."""
    signals = pd.Series(Signal.HOLD, index=index, dtype=object, name='signal')
    signals.loc[sell_mask.to_numpy() & ~buy_mask.to_numpy()] = Signal.SELL
    signals.loc[buy_mask.to_numpy()] = Signal.BUY
    return signals


def _crosses_above(fast: pd.Series, slow: pd.Series) -> pd.Series:
    # Prior bar at or below, current bar strictly above
    return (fast.shift(1) <= slow.shift(1)) & (fast > slow)


def _crosses_below(fast: pd.Series, slow: pd.Series) -> pd.Series:
    return (fast.shift(1) >= slow.shift(1)) & (fast < slow)


# ============================================================================
# Moving-Average Crossover
# ============================================================================

def ma_crossover_signals(bars: BarSeries, params: Parameters) -> pd.Series:
    """
    BUY when the short SMA crosses above the long SMA, SELL on the reverse.

    **Conceptual**: The "golden cross" / "death cross" trend-following rule. A
    crossover is an event, so signals fire on the single bar where the
    ordering flips; every other bar is HOLD.

    Params:
        short_period: Fast SMA window.
        long_period: Slow SMA window.
    """
    closes = bars.closes
    short_ma = sma(closes, params['short_period'])
    long_ma = sma(closes, params['long_period'])
    return _signals_from_masks(
        closes.index,
        _crosses_above(short_ma, long_ma),
        _crosses_below(short_ma, long_ma),
    )


def ma_crossover_warmup(params: Parameters) -> int:
    return int(params['long_period'])


# ============================================================================
# RSI
# ============================================================================

def rsi_signals(bars: BarSeries, params: Parameters) -> pd.Series:
    """
    BUY while RSI is below ``oversold``, SELL while above ``overbought``.

    These are level-triggered: every oversold bar emits BUY. The simulator
    ignores repeated BUYs while a position is open.
    """
    closes = bars.closes
    values = rsi(closes, params['period'])
    return _signals_from_masks(
        closes.index,
        values < params['oversold'],
        values > params['overbought'],
    )


def rsi_warmup(params: Parameters) -> int:
    # period price changes need period + 1 closes
    return int(params['period']) + 1


# ============================================================================
# MACD
# ============================================================================

def macd_signals(bars: BarSeries, params: Parameters) -> pd.Series:
    """
    BUY when the MACD line crosses above its signal line, SELL on crossing below.

    **Teaching note**: EMA is seeded with the first close, so MACD values are
    numerically defined from bar 0 but meaningless until both the slow EMA and
    the signal EMA have had time to settle. The first
    ``slow_period + signal_period - 1`` bars are therefore forced to HOLD.
    """
    closes = bars.closes
    result = macd(
        closes,
        fast_period=params['fast_period'],
        slow_period=params['slow_period'],
        signal_period=params['signal_period'],
    )
    signals = _signals_from_masks(
        closes.index,
        _crosses_above(result.macd_line, result.signal_line),
        _crosses_below(result.macd_line, result.signal_line),
    )
    signals.iloc[:macd_warmup(params)] = Signal.HOLD
    return signals


def macd_warmup(params: Parameters) -> int:
    return int(params['slow_period']) + int(params['signal_period']) - 1


# ============================================================================
# Bollinger Bands
# ============================================================================

def bollinger_signals(bars: BarSeries, params: Parameters) -> pd.Series:
    """
    BUY when the close touches or breaks the lower band, SELL at the upper band.

    A collapsed band (zero volatility window) satisfies both conditions; BUY
    takes precedence.
    """
    closes = bars.closes
    bands = bollinger_bands(closes, params['period'], params['std_dev'])
    return _signals_from_masks(
        closes.index,
        closes <= bands.lower,
        closes >= bands.upper,
    )


def bollinger_warmup(params: Parameters) -> int:
    return int(params['period'])


# ============================================================================
# Mean Reversion
# ============================================================================

def mean_reversion_signals(bars: BarSeries, params: Parameters) -> pd.Series:
    """
    Trade the percentage deviation of the close from its SMA.

    **Mathematical**:
        deviation_t = (P_t - SMA_t) / SMA_t * 100

    BUY when deviation < -threshold (price stretched below its average),
    SELL when deviation > +threshold.
    """
    closes = bars.closes
    average = sma(closes, params['period'])
    deviation = (closes - average) / average * 100.0
    threshold = params['threshold']
    return _signals_from_masks(
        closes.index,
        deviation < -threshold,
        deviation > threshold,
    )


def mean_reversion_warmup(params: Parameters) -> int:
    return int(params['period'])
