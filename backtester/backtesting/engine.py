"""
Backtest orchestrator: one request in, one result out.

**Conceptual**: The engine wires the stages together for a single backtest:

    bars → signals → trades / equity curve → statistics → BacktestResult

It owns no state between calls. Every run is independent, so concurrent runs
for different requests never interfere, and the same request over the same
bars always produces an identical result.

**Run order** (``run_backtest``):
  1. Validate the request (positive capital, start <= end, rates in [0, 1)).
  2. Resolve the strategy by name and its parameters against the schema.
  3. Slice the bars to ``[start_date, end_date]``; empty → InsufficientDataError.
  4. Check the range lies within the available history (up to a week of
     slack at either end for weekends and holidays); otherwise
     InvalidDateRangeError, since annualization uses the requested span.
  5. Check the slice covers the strategy's warm-up; otherwise
     InsufficientDataError (a too-short series would silently look like a
     legitimate zero-trade backtest).
  6. Generate signals, simulate, compute statistics and the buy-and-hold
     benchmark.
  7. Assemble an immutable BacktestResult.

Steps 1 and 2 run before any data work, so configuration errors surface
before a single bar is touched (and, on the async path, before any fetch).

**Teaching note**: The most common backtest bug is time travel: using data
from bar ``i+1`` to decide at bar ``i``. Here that is prevented structurally:
indicators are trailing windows, crossovers compare with ``shift(1)``, and
the simulator only ever sees the signal and close of the bar it is on.
"""

import asyncio
import datetime as dt
import inspect
from dataclasses import dataclass, field
from typing import Any, Mapping

from loguru import logger

from backtester.analytics.performance import (
    BenchmarkResult,
    TradeStatistics,
    compute_annualized_return,
    compute_benchmark,
    compute_daily_returns,
    compute_max_drawdown,
    compute_sharpe_ratio,
    compute_total_return,
    compute_trade_statistics,
)
from backtester.config.settings import EngineSettings, get_settings
from backtester.data.schemas import BarSeries
from backtester.execution.simulator import (
    EquityPoint,
    SimulationConfig,
    Trade,
    simulate,
)
from backtester.strategies.base import Signal, StrategyDefinition
from backtester.strategies.catalog import get_strategy, resolve_parameters
from backtester.utils.errors import (
    BacktestError,
    ConfigurationError,
    InsufficientDataError,
    InvalidDateRangeError,
    PriceHistoryError,
)
from backtester.venues.base import (
    AsyncPriceHistoryProvider,
    PriceHistoryProvider,
    validate_date_range,
)

# Calendar days the requested range may overhang the first or last bar
_RANGE_SLACK_DAYS = 7


@dataclass(frozen=True)
class BacktestRequest:
    """
    Everything needed to run one backtest.

    Attributes:
        symbol: Ticker symbol (informational; bars are supplied separately).
        start_date: First calendar date (inclusive). Accepts date, datetime,
                   pandas.Timestamp or an ISO string.
        end_date: Last calendar date (inclusive).
        initial_capital: Starting cash (must be positive).
        strategy_name: StrategyKind value or display name (e.g. "rsi",
                      "RSI Strategy").
        parameters: Parameter overrides; anything omitted takes its default.
        commission_rate: Commission as a fraction of traded value. None uses
                        the engine settings default.
        slippage_rate: Slippage as a fraction of price. None uses the engine
                      settings default.
    """
    symbol: str
    start_date: Any
    end_date: Any
    initial_capital: float
    strategy_name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    commission_rate: float | None = None
    slippage_rate: float | None = None


@dataclass(frozen=True)
class BacktestResult:
    """
    Complete output of one backtest.

    Attributes:
        symbol: Ticker symbol.
        strategy_name: Display name of the strategy that ran.
        strategy_kind: StrategyKind value.
        parameters: Fully resolved parameters (defaults included).
        start_date: Requested start date.
        end_date: Requested end date.
        bar_count: Bars simulated.
        initial_capital: Starting cash.
        final_capital: Cash after the final bar (runs always end Flat).
        total_return: final - initial, in dollars.
        total_return_percent: Total return as a percentage of initial capital.
        annualized_return: Decimal CAGR over the calendar span.
        max_drawdown: Largest dollar drawdown.
        max_drawdown_percent: Largest percentage drawdown.
        sharpe_ratio: Per-period Sharpe ratio (not annualized).
        statistics: Round-trip trade statistics.
        trades: Every executed trade, oldest first.
        equity_curve: One point per bar.
        benchmark: Buy-and-hold comparison.
    """
    symbol: str
    strategy_name: str
    strategy_kind: str
    parameters: Mapping[str, Any]
    start_date: dt.date
    end_date: dt.date
    bar_count: int
    initial_capital: float
    final_capital: float
    total_return: float
    total_return_percent: float
    annualized_return: float
    max_drawdown: float
    max_drawdown_percent: float
    sharpe_ratio: float
    statistics: TradeStatistics
    trades: tuple[Trade, ...]
    equity_curve: tuple[EquityPoint, ...]
    benchmark: BenchmarkResult

    def to_dict(self) -> dict[str, Any]:
        """
        JSON-compatible representation.

        Dates become ISO strings and enums their string values. Trade
        statistics are flattened into the top level. Key order is fixed, so
        ``json.dumps`` of identical results is byte-identical.
        """
        stats = self.statistics
        return {
            'symbol': self.symbol,
            'strategy_name': self.strategy_name,
            'strategy_kind': self.strategy_kind,
            'parameters': dict(self.parameters),
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'bar_count': self.bar_count,
            'initial_capital': self.initial_capital,
            'final_capital': self.final_capital,
            'total_return': self.total_return,
            'total_return_percent': self.total_return_percent,
            'annualized_return': self.annualized_return,
            'max_drawdown': self.max_drawdown,
            'max_drawdown_percent': self.max_drawdown_percent,
            'sharpe_ratio': self.sharpe_ratio,
            'total_trades': stats.total_trades,
            'winning_trades': stats.winning_trades,
            'losing_trades': stats.losing_trades,
            'win_rate': stats.win_rate,
            'average_win': stats.average_win,
            'average_loss': stats.average_loss,
            'profit_factor': stats.profit_factor,
            'largest_win': stats.largest_win,
            'largest_loss': stats.largest_loss,
            'total_commission': stats.total_commission,
            'trades': [trade.to_dict() for trade in self.trades],
            'equity_curve': [point.to_dict() for point in self.equity_curve],
            'benchmark': self.benchmark.to_dict(),
        }


@dataclass(frozen=True)
class _PreparedRun:
    """Validated, resolved view of a request (internal)."""
    request: BacktestRequest
    start_date: dt.date
    end_date: dt.date
    definition: StrategyDefinition
    parameters: dict[str, Any]
    config: SimulationConfig
    risk_free_rate: float


def _prepare(request: BacktestRequest, engine_settings: EngineSettings) -> _PreparedRun:
    """Validate the request and resolve strategy, parameters and costs."""
    if not isinstance(request.symbol, str) or not request.symbol.strip():
        raise ConfigurationError(f"Symbol must be a non-empty string, got: {request.symbol!r}.")

    start_date, end_date = validate_date_range(request.start_date, request.end_date)

    commission_rate = (
        engine_settings.default_commission_rate
        if request.commission_rate is None
        else request.commission_rate
    )
    slippage_rate = (
        engine_settings.default_slippage_rate
        if request.slippage_rate is None
        else request.slippage_rate
    )
    config = SimulationConfig(
        initial_capital=request.initial_capital,
        commission_rate=commission_rate,
        slippage_rate=slippage_rate,
        investment_fraction=engine_settings.investment_fraction,
    )

    definition = get_strategy(request.strategy_name)
    parameters = resolve_parameters(definition, request.parameters)

    return _PreparedRun(
        request=request,
        start_date=start_date,
        end_date=end_date,
        definition=definition,
        parameters=parameters,
        config=config,
        risk_free_rate=engine_settings.risk_free_rate,
    )


def _slice_bars(run: _PreparedRun, bars: BarSeries) -> BarSeries:
    window = bars.between(run.start_date, run.end_date)
    if len(window) == 0:
        raise InsufficientDataError(
            f"No bars for {run.request.symbol} between {run.start_date} and {run.end_date}."
        )

    if (
        (bars[0].date - run.start_date).days > _RANGE_SLACK_DAYS
        or (run.end_date - bars[-1].date).days > _RANGE_SLACK_DAYS
    ):
        raise InvalidDateRangeError(
            f"Requested range {run.start_date}..{run.end_date} for {run.request.symbol} "
            f"extends beyond available history {bars[0].date}..{bars[-1].date}."
        )

    warmup = run.definition.warmup_bars(run.parameters)
    if len(window) < warmup:
        raise InsufficientDataError(
            f"'{run.definition.name}' with {run.parameters} needs at least {warmup} bars; "
            f"{run.request.symbol} has {len(window)} between {run.start_date} and {run.end_date}."
        )
    return window


def _execute(run: _PreparedRun, bars: BarSeries) -> BacktestResult:
    window = _slice_bars(run, bars)

    signals = run.definition.generate(window, run.parameters)
    counts = signals.value_counts()
    logger.debug(
        "{} signals over {} bars: {} buy, {} sell, {} hold",
        run.definition.name, len(window),
        int(counts.get(Signal.BUY, 0)), int(counts.get(Signal.SELL, 0)), int(counts.get(Signal.HOLD, 0)),
    )

    simulation = simulate(window, signals, run.config)

    initial = run.config.initial_capital
    days = (run.end_date - run.start_date).days
    total_return, total_return_percent = compute_total_return(initial, simulation.final_capital)
    max_dd, max_dd_pct = compute_max_drawdown(simulation.equity_curve)
    sharpe = compute_sharpe_ratio(compute_daily_returns(simulation.equity_curve), run.risk_free_rate)
    statistics = compute_trade_statistics(simulation.trades)
    benchmark = compute_benchmark(window, initial, days, run.config, run.risk_free_rate)

    result = BacktestResult(
        symbol=run.request.symbol,
        strategy_name=run.definition.name,
        strategy_kind=run.definition.kind.value,
        parameters=dict(run.parameters),
        start_date=run.start_date,
        end_date=run.end_date,
        bar_count=len(window),
        initial_capital=initial,
        final_capital=simulation.final_capital,
        total_return=total_return,
        total_return_percent=total_return_percent,
        annualized_return=compute_annualized_return(initial, simulation.final_capital, days),
        max_drawdown=max_dd,
        max_drawdown_percent=max_dd_pct,
        sharpe_ratio=sharpe,
        statistics=statistics,
        trades=simulation.trades,
        equity_curve=simulation.equity_curve,
        benchmark=benchmark,
    )

    logger.info(
        "{} {} {}..{}: return {:.2f}% (benchmark {:.2f}%), {} round trips, max DD {:.2f}%, Sharpe {:.3f}",
        result.symbol, result.strategy_name, result.start_date, result.end_date,
        result.total_return_percent, benchmark.total_return_percent,
        statistics.total_trades, result.max_drawdown_percent, result.sharpe_ratio,
    )
    return result


def run_backtest(
    request: BacktestRequest,
    bars: BarSeries,
    settings: EngineSettings | None = None,
) -> BacktestResult:
    """
    Run one backtest synchronously over already-loaded bars.

    Args:
        request: What to run (symbol, range, capital, strategy, costs).
        bars: Price history covering the requested range to within a week at
             either end. Bars outside ``[start_date, end_date]`` are ignored.
        settings: Engine constants; defaults to ``get_settings().engine``.

    Returns:
        Immutable BacktestResult.

    Raises:
        ConfigurationError: Invalid request (see subclasses for specifics).
        DataError: Malformed bars.
    """
    engine_settings = settings or get_settings().engine
    run = _prepare(request, engine_settings)

    if not isinstance(bars, BarSeries):
        raise ConfigurationError(
            f"bars must be a BarSeries, got {type(bars).__name__}. "
            f"Hint: use BarSeries.from_frame() or BarSeries.from_records()."
        )

    logger.debug(
        "Running {} on {} ({}..{}) with {}",
        run.definition.name, request.symbol, run.start_date, run.end_date, run.parameters,
    )
    return _execute(run, bars)


async def run_backtest_async(
    request: BacktestRequest,
    provider: PriceHistoryProvider | AsyncPriceHistoryProvider,
    settings: EngineSettings | None = None,
) -> BacktestResult:
    """
    Fetch bars from a provider, then run the backtest.

    **Functionally**:
      - The request is validated and resolved first; no fetch happens for a
        request that could never run.
      - ``provider.fetch_daily_bars(symbol, start, end)`` is called exactly once.
        Coroutine providers are awaited; blocking providers run in a worker
        thread via ``asyncio.to_thread`` so the event loop stays responsive.
      - The simulation itself is CPU-bound and runs synchronously.

    Cancellation: cancel or discard the awaitable; no state is left behind.

    Raises:
        ConfigurationError: Invalid request.
        PriceHistoryError: The provider failed or returned something other than
                          a BarSeries.
        DataError: Malformed bars.
    """
    engine_settings = settings or get_settings().engine
    run = _prepare(request, engine_settings)

    fetch = provider.fetch_daily_bars
    try:
        if inspect.iscoroutinefunction(fetch):
            bars = await fetch(request.symbol, run.start_date, run.end_date)
        else:
            bars = await asyncio.to_thread(fetch, request.symbol, run.start_date, run.end_date)
    except BacktestError:
        raise
    except Exception as e:
        raise PriceHistoryError(
            f"Price history fetch failed for {request.symbol} "
            f"({run.start_date}..{run.end_date}): {e}"
        ) from e

    if not isinstance(bars, BarSeries):
        raise PriceHistoryError(
            f"Provider {type(provider).__name__} returned {type(bars).__name__}, expected BarSeries."
        )

    logger.debug("Fetched {} bars for {} from {}", len(bars), request.symbol, type(provider).__name__)
    return _execute(run, bars)
