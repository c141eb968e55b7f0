"""
Error classes for the backtest engine.

**Conceptual**: Every failure the engine can report falls into one of two
families, and callers usually want to treat them differently:

  - ConfigurationError: the *request* is wrong (unknown strategy, parameter
    out of bounds, inverted date range, not enough bars for the lookback).
    Raised synchronously before any simulation work begins. Fix the request
    and retry.
  - DataError: the *data* handed over by the price-history collaborator is
    wrong (unordered or duplicate dates, non-positive prices, provider
    failure). The engine never interpolates or repairs bars.

Numerical edge cases (zero variance, zero-day ranges, no losing trades) are
NOT errors; they resolve to defined sentinel values inside the analyzer.

ConfigurationError also subclasses ValueError so code that already catches
ValueError around argument validation keeps working.
"""


class BacktestError(Exception):
    """Root of all engine errors."""
    pass


class ConfigurationError(BacktestError, ValueError):
    """
    Raised when a backtest request cannot be run as configured.

    The message names the failing precondition (e.g. which parameter, which
    bound) so it can be shown to the user verbatim.
    """
    pass


class UnknownStrategyError(ConfigurationError):
    """Raised when a strategy name does not match any catalog entry."""
    pass


class InvalidParameterError(ConfigurationError):
    """Raised when a strategy parameter is unknown, mistyped, or out of bounds."""
    pass


class InvalidDateRangeError(ConfigurationError):
    """Raised when a request's start date is after its end date or unparseable."""
    pass


class InsufficientDataError(ConfigurationError):
    """
    Raised when the bar series is empty or shorter than the strategy's lookback.

    A too-short series would otherwise produce an all-Hold, zero-trade result
    that looks like a legitimate (but meaningless) backtest.
    """
    pass


class DataError(BacktestError):
    """Raised when bars supplied by the price-history collaborator are unusable."""
    pass


class DataValidationError(DataError):
    """Raised when a bar or bar sequence violates the BarSeries contract."""
    pass


class PriceHistoryError(DataError):
    """Raised when a price-history provider fails to deliver bars."""
    pass
