"""
CSV and JSON readers/writers with schema enforcement.

**Conceptual**: This module is the file I/O boundary of the project. Price
history enters through ``read_price_csv`` and leaves through
``write_price_csv``; backtest results leave through ``write_result_json``.
Every read goes through BarSeries validation, so nothing malformed reaches
the engine.

**On-disk price format**:
  - Columns: timestamp, open_price, high_price, low_price, closing_price, volume
  - Timestamps as "YYYY-MM-DD HH:MM:SS" (ISO 8601 with 'T' is accepted on read)
  - Rows newest first (either order is accepted on read)

**Rule**: Scripts should not call ``pd.read_csv``/``to_csv`` on price files
directly; use these functions so the schema stays enforced in one place.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from backtester.data.schemas import PRICE_COLUMNS, BarSeries
from backtester.utils.errors import DataValidationError

if TYPE_CHECKING:
    from backtester.backtesting.engine import BacktestResult


def read_price_csv(path: Path | str, symbol: str | None = None) -> BarSeries:
    """
    Read a price CSV into a validated BarSeries.

    **Functionally**:
      - Reads the CSV with pandas.
      - Accepts rows in either sort order; returns bars oldest first.
      - Validates every bar (see ``BarSeries.from_frame``).

    Args:
        path: CSV file path.
        symbol: Optional symbol for error context (defaults to the file stem,
               upper-cased).

    Returns:
        BarSeries, oldest first.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        DataValidationError: If the CSV cannot be parsed or violates the schema.

    Example:
        >>> bars = read_price_csv("data/raw/SPY.csv")
        >>> bars[0].date, bars[-1].date
    """
    path = Path(path)
    symbol = symbol or path.stem.upper()

    if not path.exists():
        raise FileNotFoundError(
            f"Price CSV not found: {path}. "
            f"Ensure the file exists and the path is correct."
        )

    try:
        df = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise DataValidationError(f"{symbol}: Failed to read CSV {path}. Error: {e}")

    return BarSeries.from_frame(df, symbol=symbol)


def write_price_csv(bars: BarSeries, path: Path | str) -> None:
    """
    Write a BarSeries to CSV in the canonical newest-first layout.

    Creates parent directories as needed.

    Args:
        bars: Bars to write.
        path: Destination CSV path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = bars.to_frame().sort_values('timestamp', ascending=False).reset_index(drop=True)
    # Canonical on-disk format: "YYYY-MM-DD HH:MM:SS" (space, not 'T')
    df['timestamp'] = df['timestamp'].dt.strftime('%Y-%m-%d %H:%M:%S')
    df.to_csv(path, index=False, columns=PRICE_COLUMNS)


def write_result_json(result: "BacktestResult", path: Path | str, indent: int = 2) -> None:
    """
    Write a BacktestResult as JSON.

    ``allow_nan=False`` guarantees the file is strict JSON; the analyzer never
    produces NaN or infinity, so this only fails on a programming error.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(result.to_dict(), f, indent=indent, allow_nan=False)
