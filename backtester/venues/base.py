"""
Base abstractions for price-history providers (venues).

**Conceptual**: The engine never fetches data itself. A price-history
provider is the external collaborator that turns ``(symbol, start, end)``
into a validated BarSeries. Defining the contract as a Protocol keeps the
engine decoupled from any particular vendor (Yahoo Finance, CSV files,
in-memory fixtures, a remote service).

**Why protocols over inheritance?**
  - Structural typing: any object with a matching ``fetch_daily_bars`` is a
    provider; no base class to inherit from.
  - Mock providers in tests are a few lines of code.

**Provider guarantees**:
All implementations MUST:
  1. Return a BarSeries (which already enforces ascending, unique dates and
     sane prices).
  2. Treat ``start`` and ``end`` as INCLUSIVE calendar dates.
  3. Raise PriceHistoryError (or a subclass) on vendor failures, never
     return partial data silently.

Both blocking and coroutine providers are supported. The async engine entry
point awaits coroutine providers and runs blocking ones in a worker thread.
"""

import datetime as dt
from typing import Any, Protocol, runtime_checkable

from backtester.data.schemas import BarSeries, coerce_date
from backtester.utils.errors import InvalidDateRangeError, PriceHistoryError


@runtime_checkable
class PriceHistoryProvider(Protocol):
    """
    Protocol for fetching daily bars from any data source.

    **Example usage**:
        >>> provider = YFinanceDataProvider(get_settings().yfinance)
        >>> bars = provider.fetch_daily_bars("SPY", date(2024, 1, 1), date(2024, 6, 30))
        >>> bars.closes.tail()
    """

    def fetch_daily_bars(self, symbol: str, start: dt.date, end: dt.date) -> BarSeries:
        """
        Fetch daily OHLCV bars for ``symbol`` over ``[start, end]``.

        Args:
            symbol: Ticker symbol (e.g., "SPY", "AAPL").
            start: First calendar date (inclusive).
            end: Last calendar date (inclusive).

        Returns:
            BarSeries, oldest first. May be empty if the range has no trading days.

        Raises:
            InvalidDateRangeError: If start > end.
            PriceHistoryError: If the underlying source fails.
        """
        ...


@runtime_checkable
class AsyncPriceHistoryProvider(Protocol):
    """Coroutine flavour of PriceHistoryProvider (e.g. an HTTP client)."""

    async def fetch_daily_bars(self, symbol: str, start: dt.date, end: dt.date) -> BarSeries:
        ...


def validate_date_range(start: Any, end: Any) -> tuple[dt.date, dt.date]:
    """
    Coerce ``start``/``end`` to dates and check ``start <= end``.

    Raises:
        InvalidDateRangeError: If either value is unparseable or start > end.
    """
    try:
        start_date = coerce_date(start)
        end_date = coerce_date(end)
    except ValueError as e:
        raise InvalidDateRangeError(str(e))
    if start_date > end_date:
        raise InvalidDateRangeError(
            f"Start date {start_date} is after end date {end_date}."
        )
    return start_date, end_date


class StaticPriceHistoryProvider:
    """
    In-memory provider serving pre-loaded bar series.

    **Conceptual**: Useful for tests, notebooks and the CSV-driven CLI path:
    load bars once (from a CSV, a fixture, a synthetic generator) and serve
    date-sliced views of them through the provider interface.

    Args:
        series: Mapping symbol -> BarSeries. Symbols are matched
               case-insensitively.
    """

    def __init__(self, series: dict[str, BarSeries]):
        self._series = {symbol.upper(): bars for symbol, bars in series.items()}

    @property
    def symbols(self) -> list[str]:
        return sorted(self._series)

    def fetch_daily_bars(self, symbol: str, start: Any, end: Any) -> BarSeries:
        """
        Return the stored bars for ``symbol`` within ``[start, end]``.

        Raises:
            InvalidDateRangeError: If start > end.
            PriceHistoryError: If the symbol is unknown.
        """
        start_date, end_date = validate_date_range(start, end)
        bars = self._series.get(symbol.upper())
        if bars is None:
            raise PriceHistoryError(
                f"No price history loaded for symbol '{symbol}'. "
                f"Available symbols: {self.symbols}."
            )
        return bars.between(start_date, end_date)
