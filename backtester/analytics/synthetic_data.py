"""
Synthetic bar generators for tests and demos.

Geometric Brownian Motion (GBM) gives trending, compounding, equity-like
closes with controlled drift and volatility. Wrapping the path as a BarSeries
on business days lets strategies and the engine run end to end without any
network access, and a fixed seed makes every run reproducible.
"""

import numpy as np
import pandas as pd

from backtester.data.schemas import Bar, BarSeries, coerce_date


def generate_gbm_closes(
    initial_price: float,
    drift: float,
    volatility: float,
    n_steps: int,
    dt: float = 1 / 252,
    seed: int | None = None,
) -> np.ndarray:
    """
    Generate a GBM price path.

    **Mathematical**: The discrete (exact) update for each step is:
        S_{t+1} = S_t * exp((μ - 0.5 * σ^2) * dt + σ * sqrt(dt) * Z_t)
    where Z_t ~ N(0, 1). The (μ - 0.5 * σ^2) term is the Itô correction so the
    expected price grows at rate μ.

    **Interpretation**:
    - drift > 0: upward trending market; drift < 0: downward.
    - volatility = 0 yields a deterministic exponential path.

    Args:
        initial_price: Starting price (must be positive).
        drift: Annualized drift μ (e.g., 0.10 for 10%).
        volatility: Annualized volatility σ (e.g., 0.20 for 20%).
        n_steps: Number of steps after the initial price.
        dt: Time increment per step (1/252 for daily).
        seed: Random seed for reproducibility.

    Returns:
        Array of ``n_steps + 1`` prices, starting with ``initial_price``.
    """
    if initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got: {initial_price}")
    if n_steps < 0:
        raise ValueError(f"n_steps must be >= 0, got: {n_steps}")

    rng = np.random.default_rng(seed)
    z = rng.standard_normal(n_steps)
    log_steps = (drift - 0.5 * volatility**2) * dt + volatility * np.sqrt(dt) * z
    # Cumulative sum of log returns gives the log price path
    log_path = np.concatenate(([0.0], np.cumsum(log_steps)))
    return initial_price * np.exp(log_path)


def generate_gbm_bars(
    n_bars: int,
    initial_price: float = 100.0,
    drift: float = 0.08,
    volatility: float = 0.20,
    start_date: str = "2020-01-01",
    seed: int | None = 42,
    symbol: str = "SYN",
) -> BarSeries:
    """
    Generate a seeded GBM BarSeries on consecutive business days.

    **Functionally**:
    - Close: GBM path of length ``n_bars``.
    - Open: previous close (first bar opens at its own close).
    - High/Low: max/min of open and close (no intraday wicks).
    - Volume: constant 1,000,000.

    Args:
        n_bars: Number of bars (>= 1).
        initial_price: First close.
        drift: Annualized drift.
        volatility: Annualized volatility.
        start_date: First bar date (rolled forward to a business day).
        seed: Random seed; the default makes repeated calls identical.
        symbol: Symbol attached to the series.

    Returns:
        BarSeries of ``n_bars`` bars, oldest first.
    """
    if n_bars < 1:
        raise ValueError(f"n_bars must be >= 1, got: {n_bars}")

    closes = generate_gbm_closes(initial_price, drift, volatility, n_bars - 1, seed=seed)
    opens = np.concatenate(([closes[0]], closes[:-1]))
    dates = pd.bdate_range(start=pd.Timestamp(coerce_date(start_date)), periods=n_bars)

    bars = [
        Bar(
            date=ts.date(),
            open=float(o),
            high=float(max(o, c)),
            low=float(min(o, c)),
            close=float(c),
            volume=1_000_000.0,
        )
        for ts, o, c in zip(dates, opens, closes)
    ]
    return BarSeries(bars, symbol=symbol)
