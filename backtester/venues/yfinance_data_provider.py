"""
YFinance price-history provider.

**Conceptual**: Adapter from Yahoo Finance (via the yfinance library) to the
engine's PriceHistoryProvider contract. yfinance scrapes Yahoo Finance, so it
needs no API key, which makes it the default source for the CLI.

**Data transformation pipeline**:
  1. Validate inputs (symbol, date range).
  2. Call ``yf.download()`` with an exclusive end of ``end + 1 day`` so the
     requested end date is included.
  3. Flatten MultiIndex columns (recent yfinance versions return
     ``(field, ticker)`` pairs even for a single ticker).
  4. Rename to canonical columns, drop "Adj Close", normalize timestamps to
     tz-naive UTC, and filter to the inclusive window.
  5. Check for NaNs, non-positive prices and high < low, raising YFinanceError
     with a data-quality message.
  6. Hand the frame to ``BarSeries.from_frame`` for final validation.

**Limitations**:
  - Web scraping can be unreliable (Yahoo may change their website).
  - Only daily bars are supported by the engine.

**Teaching note**: yfinance is excellent for research and prototyping; a
production system would use a paid vendor with SLAs behind the same protocol.
"""

import datetime as dt
from typing import Any

import pandas as pd
import yfinance as yf
from loguru import logger

from backtester.config.settings import YFinanceSettings
from backtester.data.schemas import PRICE_COLUMNS, BarSeries
from backtester.utils.errors import DataValidationError, PriceHistoryError
from backtester.venues.base import validate_date_range


class YFinanceError(PriceHistoryError):
    """
    Raised when yfinance fails to fetch or returns unusable data.

    **Recovery**:
      - Check ticker symbol spelling.
      - Check internet connection.
      - Try again later (Yahoo Finance may be temporarily down).
    """
    pass


class YFinanceEmptyDataError(YFinanceError):
    """Raised when yfinance returns no bars for a ticker/date range."""
    pass


_COLUMN_MAPPING = {
    "Date": "timestamp",
    "Datetime": "timestamp",
    "Open": "open_price",
    "High": "high_price",
    "Low": "low_price",
    "Close": "closing_price",
    "Volume": "volume",
}


class YFinanceDataProvider:
    """
    PriceHistoryProvider backed by Yahoo Finance.

    **Example usage**:
        >>> from backtester.config.settings import get_settings
        >>> provider = YFinanceDataProvider(get_settings().yfinance)
        >>> bars = provider.fetch_daily_bars("SPY", dt.date(2024, 1, 1), dt.date(2024, 1, 31))
        >>> len(bars)  # 21 trading days in January 2024
        21

    Args:
        settings: YFinance configuration (defaults to ``YFinanceSettings()``).
    """

    def __init__(self, settings: YFinanceSettings | None = None):
        self.settings = settings or YFinanceSettings()

    def fetch_daily_bars(self, symbol: str, start: Any, end: Any) -> BarSeries:
        """
        Fetch daily OHLCV bars for ``symbol`` over ``[start, end]`` inclusive.

        Args:
            symbol: Ticker symbol (e.g., "SPY", "AAPL"). Upper-cased.
            start: First calendar date (inclusive).
            end: Last calendar date (inclusive).

        Returns:
            BarSeries, oldest first.

        Raises:
            InvalidDateRangeError: If start > end.
            YFinanceEmptyDataError: If no bars exist for the ticker/range.
            YFinanceError: On download failures or data-quality problems.
        """
        if not symbol or not symbol.strip():
            raise YFinanceError("Ticker cannot be empty")
        ticker = symbol.strip().upper()
        start_date, end_date = validate_date_range(start, end)

        logger.debug("yfinance download {} {}..{}", ticker, start_date, end_date)
        try:
            raw = yf.download(
                ticker,
                start=start_date.strftime("%Y-%m-%d"),
                # yfinance treats end as exclusive
                end=(end_date + dt.timedelta(days=1)).strftime("%Y-%m-%d"),
                interval=self.settings.interval,
                auto_adjust=self.settings.auto_adjust,
                prepost=self.settings.prepost,
                threads=self.settings.threads,
                timeout=self.settings.timeout_seconds,
                progress=False,
            )
        except Exception as e:
            raise YFinanceError(
                f"Error fetching data from yfinance for ticker '{ticker}': {e}"
            ) from e

        if raw is None or raw.empty:
            raise YFinanceEmptyDataError(
                f"No data returned from yfinance for ticker '{ticker}' "
                f"in date range [{start_date}, {end_date}]. "
                f"Ticker may be invalid or delisted."
            )

        df = self._to_canonical_frame(raw, ticker, start_date, end_date)

        try:
            bars = BarSeries.from_frame(df, symbol=ticker)
        except DataValidationError as e:
            raise YFinanceError(f"yfinance returned invalid bars for '{ticker}': {e}") from e

        logger.debug("yfinance returned {} bars for {}", len(bars), ticker)
        return bars

    def _to_canonical_frame(
        self,
        raw: pd.DataFrame,
        ticker: str,
        start_date: dt.date,
        end_date: dt.date,
    ) -> pd.DataFrame:
        df = raw.copy()

        # Single ticker: keep the field level of (field, ticker) columns
        if isinstance(df.columns, pd.MultiIndex):
            df.columns = df.columns.get_level_values(0)

        df = df.reset_index().rename(columns=_COLUMN_MAPPING)
        if "Adj Close" in df.columns:
            df = df.drop(columns=["Adj Close"])

        missing = [col for col in PRICE_COLUMNS if col not in df.columns]
        if missing:
            raise YFinanceError(
                f"Columns {missing} missing from yfinance response. "
                f"Available columns: {list(df.columns)}"
            )

        timestamps = pd.to_datetime(df['timestamp'])
        if timestamps.dt.tz is not None:
            timestamps = timestamps.dt.tz_convert('UTC').dt.tz_localize(None)
        df['timestamp'] = timestamps

        start_ts = pd.Timestamp(start_date)
        end_ts = pd.Timestamp(end_date) + pd.Timedelta(days=1)
        df = df[(df['timestamp'] >= start_ts) & (df['timestamp'] < end_ts)].reset_index(drop=True)
        if df.empty:
            raise YFinanceEmptyDataError(
                f"No data for ticker '{ticker}' in date range [{start_date}, {end_date}] "
                f"after filtering. Data may exist outside this range."
            )

        for col in PRICE_COLUMNS:
            nan_count = int(df[col].isna().sum())
            if nan_count:
                raise YFinanceError(
                    f"Column '{col}' has {nan_count} NaN values. "
                    f"Data quality issue in yfinance response."
                )

        for col in ('open_price', 'high_price', 'low_price', 'closing_price'):
            if (df[col] <= 0).any():
                raise YFinanceError(
                    f"Column '{col}' has non-positive values. Data quality issue."
                )

        if (df['high_price'] < df['low_price']).any():
            raise YFinanceError(
                "Found bars where high_price < low_price. Data quality issue."
            )

        return df[PRICE_COLUMNS]
