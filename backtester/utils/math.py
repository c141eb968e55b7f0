"""
Numeric building blocks shared by indicators and the performance analyzer.

These are thin, vectorized wrappers around pandas rolling/ewm primitives.
Every function expects a Series in chronological order (oldest first), which
BarSeries guarantees, and returns a Series aligned index-for-index with its
input.
"""

import numpy as np
import pandas as pd


def _check_window(window: int, name: str = "window") -> None:
    if isinstance(window, bool) or not isinstance(window, (int, np.integer)):
        raise ValueError(f"{name} must be an integer, got: {window!r}")
    if window < 1:
        raise ValueError(f"{name} must be >= 1, got: {window}")


def compute_simple_returns(values: pd.Series) -> pd.Series:
    """
    Convert a value series (prices or equity) into simple period returns.

    **Mathematical**: For each period t:
        r_t = (V_t / V_{t-1}) - 1

    **Functionally**:
    - The first value is NaN (no prior value to compare).
    - Used by the analyzer to turn an equity curve into daily returns for the
      Sharpe ratio.

    Args:
        values: Time series of positive values, oldest first.

    Returns:
        Series of simple returns, same index as input.
    """
    return values.pct_change()


def compute_moving_average_simple(prices: pd.Series, window: int) -> pd.Series:
    """
    Compute a trailing simple moving average (SMA).

    **Conceptual**: An SMA smooths short-term noise by averaging the last
    ``window`` observations with equal weight. A fast SMA crossing a slow SMA
    is the classic trend-change signal.

    **Mathematical**:
        SMA_t = (1 / window) * Σ P_{t-i}   for i = 0 .. window-1

    **Functionally**:
    - The first ``window - 1`` values are NaN until the window fills.
    - ``window = 1`` returns the input values.

    Args:
        prices: Time series of prices, oldest first.
        window: Number of periods to average (positive integer).

    Returns:
        Series of SMA values, same index as input.
    """
    _check_window(window)
    # min_periods defaults to window, so we get NaN until the window is filled
    return prices.rolling(window=window).mean()


def compute_moving_average_exponential(prices: pd.Series, span: int) -> pd.Series:
    """
    Compute an exponential moving average (EMA) seeded with the first value.

    **Mathematical**: The recursive form used in trading:
        EMA_0 = P_0
        EMA_t = α * P_t + (1 - α) * EMA_{t-1},   α = 2 / (span + 1)

    Pandas implements exactly this via ``ewm(span=span, adjust=False)``.

    **Teaching note**: Because the seed is the first observation rather than
    an SMA of the first ``span`` values, the EMA is defined from index 0 but
    its early values are biased toward the first price. Callers that need a
    "settled" EMA must apply their own warm-up.

    Args:
        prices: Time series of prices, oldest first.
        span: EMA span (positive integer).

    Returns:
        Series of EMA values, same index as input.
    """
    _check_window(span, "span")
    return prices.ewm(span=span, adjust=False).mean()


def compute_rolling_population_std(values: pd.Series, window: int) -> pd.Series:
    """
    Compute the trailing population standard deviation (ddof=0).

    **Mathematical**:
        σ_t = sqrt( (1 / window) * Σ (P_{t-i} - SMA_t)^2 )

    Bollinger Bands are conventionally built on the population (not sample)
    deviation, hence ``ddof=0``. The first ``window - 1`` values are NaN, and a
    constant window yields exactly 0.

    Args:
        values: Time series, oldest first.
        window: Number of periods (positive integer).

    Returns:
        Series of rolling standard deviations, same index as input.
    """
    _check_window(window)
    # Rolling variance can come out as a tiny negative number on flat windows
    variance = values.rolling(window=window).var(ddof=0).clip(lower=0.0)
    return np.sqrt(variance)
