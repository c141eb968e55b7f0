"""
Bar data model and validation.

**Conceptual**: This module defines the "data contract" every engine stage
relies on. A Bar is one trading day of OHLCV data; a BarSeries is an
immutable, strictly date-ascending sequence of bars for one symbol.
Validation happens once, at construction, so indicators, strategies and the
simulator can assume clean data without defensive checks everywhere.

**Schema philosophy**:
  - Dates are plain ``datetime.date`` values (daily bars have no time of day).
  - Bars are ordered strictly ascending by date (oldest first); no duplicates.
  - Prices are finite and positive, ``high >= low``, volume is non-negative.
  - Validation raises DataValidationError with actionable messages. The engine
    never repairs, re-sorts or interpolates bars it was handed directly.

**Tabular interchange**: CSV files and provider DataFrames use the canonical
column names ``timestamp, open_price, high_price, low_price, closing_price,
volume``. ``BarSeries.from_frame`` accepts those in either sort order (CSV
files are conventionally newest-first) and sorts ascending before validating;
duplicate timestamps are still rejected.
"""

import datetime as dt
import math
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence, overload

import pandas as pd

from backtester.utils.errors import DataValidationError


# Canonical tabular columns
PRICE_COLUMNS = [
    'timestamp',
    'open_price',
    'high_price',
    'low_price',
    'closing_price',
    'volume',
]


def coerce_date(value: Any) -> dt.date:
    """
    Convert a date-like value to ``datetime.date``.

    Accepts ``date``, ``datetime``, ``pandas.Timestamp``, ``numpy.datetime64``
    and ISO 8601 strings ("2024-01-15", "2024-01-15T00:00:00").

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Cannot interpret {value!r} as a date: {e}")
    if pd.isna(ts):
        raise ValueError(f"Cannot interpret {value!r} as a date")
    return ts.date()


@dataclass(frozen=True)
class Bar:
    """
    One trading day of OHLCV data for a symbol.

    Attributes:
        date: Trading day.
        open: Opening price.
        high: Highest traded price.
        low: Lowest traded price.
        close: Closing price (the engine trades and marks to market at the close).
        volume: Shares traded.
    """
    date: dt.date
    open: float
    high: float
    low: float
    close: float
    volume: float


def _validate_bar(bar: Bar, position: int, ctx: str) -> None:
    for name in ('open', 'high', 'low', 'close'):
        value = getattr(bar, name)
        if not isinstance(value, (int, float)) or not math.isfinite(value):
            raise DataValidationError(
                f"{ctx}Bar {position} ({bar.date}) has non-finite {name}: {value!r}."
            )
        if value <= 0:
            raise DataValidationError(
                f"{ctx}Bar {position} ({bar.date}) has non-positive {name}: {value}."
            )
    if bar.high < bar.low:
        raise DataValidationError(
            f"{ctx}Bar {position} ({bar.date}) has high ({bar.high}) below low ({bar.low})."
        )
    volume = bar.volume
    if not isinstance(volume, (int, float)) or not math.isfinite(volume) or volume < 0:
        raise DataValidationError(
            f"{ctx}Bar {position} ({bar.date}) has invalid volume: {volume!r}."
        )


class BarSeries(Sequence[Bar]):
    """
    Immutable, strictly date-ascending sequence of daily bars.

    **Conceptual**: BarSeries is the unit all indicators and strategies operate
    on. Because it validates ordering and price sanity at construction, every
    downstream stage can index it positionally (bar ``i`` is always the i-th
    trading day) without worrying about time travel or duplicate days.

    Supports ``len``, iteration, integer indexing (returns a Bar) and slicing
    (returns a new BarSeries).

    Args:
        bars: Bars in strictly ascending date order.
        symbol: Optional symbol, used only for error messages and logging.

    Raises:
        DataValidationError: If any bar is malformed or dates are not strictly
                            increasing.
    """

    def __init__(self, bars: Iterable[Bar], symbol: str | None = None):
        self._bars: tuple[Bar, ...] = tuple(bars)
        self.symbol = symbol
        ctx = f"{symbol}: " if symbol else ""

        previous: Bar | None = None
        for position, bar in enumerate(self._bars):
            if not isinstance(bar, Bar):
                raise DataValidationError(
                    f"{ctx}Element {position} is {type(bar).__name__}, expected Bar."
                )
            _validate_bar(bar, position, ctx)
            if previous is not None and bar.date <= previous.date:
                raise DataValidationError(
                    f"{ctx}Dates are not strictly increasing at bar {position}: "
                    f"{previous.date} followed by {bar.date}. "
                    f"Hint: bars must be oldest-first with no duplicate dates."
                )
            previous = bar

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    @overload
    def __getitem__(self, index: int) -> Bar: ...

    @overload
    def __getitem__(self, index: slice) -> "BarSeries": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return BarSeries(self._bars[index], symbol=self.symbol)
        return self._bars[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BarSeries):
            return NotImplemented
        return self._bars == other._bars

    def __repr__(self) -> str:
        if not self._bars:
            return f"BarSeries(symbol={self.symbol!r}, empty)"
        return (
            f"BarSeries(symbol={self.symbol!r}, n={len(self._bars)}, "
            f"{self._bars[0].date}..{self._bars[-1].date})"
        )

    @property
    def dates(self) -> tuple[dt.date, ...]:
        """Bar dates, oldest first."""
        return tuple(bar.date for bar in self._bars)

    @property
    def index(self) -> pd.DatetimeIndex:
        """Bar dates as a DatetimeIndex (used to align indicator/signal series)."""
        return pd.DatetimeIndex([pd.Timestamp(d) for d in self.dates], name='date')

    @property
    def closes(self) -> pd.Series:
        """Closing prices as a float Series indexed by bar date (fresh copy per call)."""
        return pd.Series(
            [bar.close for bar in self._bars],
            index=self.index,
            dtype=float,
            name='close',
        )

    def between(self, start: Any, end: Any) -> "BarSeries":
        """
        Return the bars whose dates fall in ``[start, end]`` (inclusive).

        Args:
            start: Start date (anything ``coerce_date`` accepts).
            end: End date (inclusive).
        """
        start_date = coerce_date(start)
        end_date = coerce_date(end)
        return BarSeries(
            (bar for bar in self._bars if start_date <= bar.date <= end_date),
            symbol=self.symbol,
        )

    def to_frame(self) -> pd.DataFrame:
        """Canonical DataFrame (oldest first) with PRICE_COLUMNS."""
        return pd.DataFrame(
            {
                'timestamp': pd.to_datetime(list(self.dates)),
                'open_price': [bar.open for bar in self._bars],
                'high_price': [bar.high for bar in self._bars],
                'low_price': [bar.low for bar in self._bars],
                'closing_price': [bar.close for bar in self._bars],
                'volume': [bar.volume for bar in self._bars],
            },
            columns=PRICE_COLUMNS,
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame, symbol: str | None = None) -> "BarSeries":
        """
        Build a BarSeries from a DataFrame with canonical price columns.

        **Functionally**:
          - Checks that all PRICE_COLUMNS are present.
          - Parses ``timestamp`` (strings or datetimes; tz-aware values are
            converted to UTC) and reduces it to a calendar date.
          - Rejects NaN values in any price/volume column.
          - Sorts ascending by date (so newest-first CSVs are accepted) and
            validates via the BarSeries constructor.

        Raises:
            DataValidationError: On missing columns, unparseable timestamps,
                                NaNs, duplicate dates, or invalid prices.
        """
        ctx = f"{symbol}: " if symbol else ""

        missing_cols = set(PRICE_COLUMNS) - set(df.columns)
        if missing_cols:
            raise DataValidationError(
                f"{ctx}Missing required columns: {sorted(missing_cols)}. "
                f"Expected columns: {PRICE_COLUMNS}. "
                f"Found columns: {list(df.columns)}."
            )

        frame = df[PRICE_COLUMNS].copy()

        try:
            timestamps = pd.to_datetime(frame['timestamp'], format='ISO8601')
        except (TypeError, ValueError) as e:
            raise DataValidationError(
                f"{ctx}'timestamp' column contains non-parseable values. "
                f"Expected ISO 8601 date-time strings. Error: {e}"
            )
        if timestamps.dt.tz is not None:
            timestamps = timestamps.dt.tz_convert('UTC').dt.tz_localize(None)
        frame['timestamp'] = timestamps

        for col in PRICE_COLUMNS:
            nan_count = int(frame[col].isna().sum())
            if nan_count:
                raise DataValidationError(
                    f"{ctx}Column '{col}' has {nan_count} missing values. "
                    f"Missing bars are not interpolated."
                )

        frame = frame.sort_values('timestamp', ascending=True, kind='mergesort')

        bars = [
            Bar(
                date=row.timestamp.date(),
                open=float(row.open_price),
                high=float(row.high_price),
                low=float(row.low_price),
                close=float(row.closing_price),
                volume=float(row.volume),
            )
            for row in frame.itertuples(index=False)
        ]
        return cls(bars, symbol=symbol)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        symbol: str | None = None,
    ) -> "BarSeries":
        """
        Build a BarSeries from mappings with keys date/open/high/low/close/volume.

        This is the shape price-history services typically return as JSON.
        Records must already be in ascending date order.

        Raises:
            DataValidationError: On missing keys, unparseable values, or any
                                BarSeries contract violation.
        """
        ctx = f"{symbol}: " if symbol else ""
        bars = []
        for position, record in enumerate(records):
            try:
                bars.append(
                    Bar(
                        date=coerce_date(record['date']),
                        open=float(record['open']),
                        high=float(record['high']),
                        low=float(record['low']),
                        close=float(record['close']),
                        volume=float(record.get('volume', 0.0)),
                    )
                )
            except KeyError as e:
                raise DataValidationError(f"{ctx}Record {position} is missing field {e}.")
            except (TypeError, ValueError) as e:
                raise DataValidationError(f"{ctx}Record {position} is malformed: {e}")
        return cls(bars, symbol=symbol)

    @classmethod
    def from_closes(
        cls,
        closes: Sequence[float],
        start_date: Any = "2024-01-01",
        symbol: str | None = None,
    ) -> "BarSeries":
        """
        Build a BarSeries from closing prices on consecutive business days.

        Open, high and low are set equal to the close and volume to zero. Handy
        for synthetic series in tests and examples.

        Args:
            closes: Closing prices, oldest first.
            start_date: Date of the first bar (rolled forward to a business day).
            symbol: Optional symbol.
        """
        dates = pd.bdate_range(start=pd.Timestamp(coerce_date(start_date)), periods=len(closes))
        bars = [
            Bar(
                date=ts.date(),
                open=float(close),
                high=float(close),
                low=float(close),
                close=float(close),
                volume=0.0,
            )
            for ts, close in zip(dates, closes)
        ]
        return cls(bars, symbol=symbol)
