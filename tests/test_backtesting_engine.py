"""
Tests for the backtest orchestrator (sync and async entry points).
"""

import asyncio
import datetime as dt
import json
import math

import pandas as pd
import pytest

from backtester.backtesting.engine import BacktestRequest, run_backtest, run_backtest_async
from backtester.config.settings import EngineSettings
from backtester.data.schemas import BarSeries
from backtester.execution.simulator import TradeReason, TradeSide
from backtester.utils.errors import (
    ConfigurationError,
    InsufficientDataError,
    InvalidDateRangeError,
    InvalidParameterError,
    PriceHistoryError,
    UnknownStrategyError,
)
from backtester.venues.base import (
    AsyncPriceHistoryProvider,
    PriceHistoryProvider,
    StaticPriceHistoryProvider,
)


def _request(bars: BarSeries, strategy: str = "ma_crossover", **kwargs) -> BacktestRequest:
    defaults = dict(
        symbol=bars.symbol or "TEST",
        start_date=bars[0].date,
        end_date=bars[-1].date,
        initial_capital=10_000.0,
        strategy_name=strategy,
    )
    defaults.update(kwargs)
    return BacktestRequest(**defaults)


def _walk_json_numbers(value):
    if isinstance(value, dict):
        for v in value.values():
            yield from _walk_json_numbers(v)
    elif isinstance(value, list):
        for v in value:
            yield from _walk_json_numbers(v)
    elif isinstance(value, float):
        yield value


def test_round_trip_through_engine(engine_settings):
    """
    Mean reversion with period 20, threshold 5% on: 20 bars at 100, a drop to
    90 (SMA 99.5, deviation -9.5% → BUY), a recovery to 100 and then 120 (deviation
    above +5% → SELL).
    """
    closes = [100.0] * 20 + [90.0, 100.0, 120.0]
    bars = BarSeries.from_closes(closes, symbol="MR")
    request = _request(bars, "mean_reversion", parameters={'period': 20, 'threshold': 5.0})

    result = run_backtest(request, bars, engine_settings)

    assert [t.side for t in result.trades] == [TradeSide.BUY, TradeSide.SELL]
    buy, sell = result.trades
    assert buy.date == bars[20].date
    assert buy.shares == math.floor(9_500.0 / 90.0)
    assert sell.date == bars[22].date
    assert sell.reason is TradeReason.SIGNAL
    expected_pnl = buy.shares * (120.0 - 90.0)
    assert result.final_capital == pytest.approx(10_000.0 + expected_pnl)
    assert result.statistics.total_trades == 1
    assert result.statistics.win_rate == pytest.approx(100.0)
    assert result.bar_count == len(bars)
    assert result.strategy_name == "Mean Reversion"
    assert result.strategy_kind == "mean_reversion"


def test_all_hold_run_has_flat_equity(constant_bars, engine_settings):
    request = _request(constant_bars, "mean_reversion", parameters={'period': 20})

    result = run_backtest(request, constant_bars, engine_settings)

    assert result.trades == ()
    assert result.final_capital == pytest.approx(10_000.0)
    assert result.total_return == 0.0
    assert result.max_drawdown == 0.0
    assert result.max_drawdown_percent == 0.0
    assert result.sharpe_ratio == 0.0
    assert result.statistics.win_rate == 0.0
    assert all(p.equity == pytest.approx(10_000.0) for p in result.equity_curve)
    # Buy-and-hold on a flat price with no costs also ends where it started
    assert result.benchmark.final_capital == pytest.approx(10_000.0)


def test_same_request_produces_identical_json(gbm_bars, engine_settings):
    request = _request(gbm_bars, "ma_crossover", parameters={'short_period': 10, 'long_period': 50})

    first = run_backtest(request, gbm_bars, engine_settings)
    second = run_backtest(request, gbm_bars, engine_settings)

    assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())


@pytest.mark.parametrize("strategy", ["ma_crossover", "rsi", "macd", "bollinger_bands", "mean_reversion"])
def test_every_strategy_result_is_finite_and_consistent(strategy, gbm_bars, engine_settings):
    result = run_backtest(_request(gbm_bars, strategy), gbm_bars, engine_settings)
    payload = result.to_dict()

    json.dumps(payload, allow_nan=False)
    assert all(math.isfinite(v) for v in _walk_json_numbers(payload))
    assert len(result.equity_curve) == len(gbm_bars)
    assert result.equity_curve[-1].equity == pytest.approx(result.final_capital)
    realized = sum(t.realized_pnl for t in result.trades if t.side is TradeSide.SELL)
    assert realized == pytest.approx(result.final_capital - result.initial_capital)
    assert result.max_drawdown >= 0
    assert 0.0 <= result.statistics.win_rate <= 100.0


def test_costs_reduce_final_capital(gbm_bars, engine_settings):
    base = _request(gbm_bars, "ma_crossover", parameters={'short_period': 5, 'long_period': 20})
    costly = _request(
        gbm_bars, "ma_crossover",
        parameters={'short_period': 5, 'long_period': 20},
        commission_rate=0.002, slippage_rate=0.001,
    )

    free_result = run_backtest(base, gbm_bars, engine_settings)
    costly_result = run_backtest(costly, gbm_bars, engine_settings)

    assert free_result.statistics.total_trades > 0
    assert costly_result.final_capital < free_result.final_capital
    assert costly_result.statistics.total_commission > 0
    assert free_result.statistics.total_commission == 0.0


def test_request_rates_default_to_engine_settings(gbm_bars):
    settings = EngineSettings(default_commission_rate=0.001)
    request = _request(gbm_bars, "ma_crossover", parameters={'short_period': 5, 'long_period': 20})

    result = run_backtest(request, gbm_bars, settings)

    assert result.statistics.total_commission > 0


def test_bars_outside_requested_range_are_ignored(gbm_bars, engine_settings):
    start, end = gbm_bars[100].date, gbm_bars[299].date
    request = _request(gbm_bars, "rsi", start_date=start, end_date=end)

    result = run_backtest(request, gbm_bars, engine_settings)

    assert result.bar_count == 200
    assert result.equity_curve[0].date == start
    assert result.equity_curve[-1].date == end


@pytest.mark.parametrize(
    "bounds",
    [
        {'start_date': "2015-01-01"},
        {'end_date': "2023-06-30"},
    ],
)
def test_range_outside_available_history_is_rejected(bounds, gbm_bars, engine_settings):
    request = _request(gbm_bars, "rsi", **bounds)

    with pytest.raises(InvalidDateRangeError, match="beyond available history"):
        run_backtest(request, gbm_bars, engine_settings)


def test_range_within_a_week_of_the_data_is_accepted(gbm_bars, engine_settings):
    start = gbm_bars[0].date - dt.timedelta(days=4)
    end = gbm_bars[-1].date + dt.timedelta(days=5)
    request = _request(gbm_bars, "rsi", start_date=start, end_date=end)

    result = run_backtest(request, gbm_bars, engine_settings)

    assert result.bar_count == len(gbm_bars)
    assert result.start_date == start


def test_start_after_end_is_rejected(gbm_bars, engine_settings):
    request = _request(gbm_bars, start_date="2021-06-01", end_date="2021-01-01")

    with pytest.raises(InvalidDateRangeError):
        run_backtest(request, gbm_bars, engine_settings)


def test_unparseable_date_is_rejected(gbm_bars, engine_settings):
    with pytest.raises(InvalidDateRangeError):
        run_backtest(_request(gbm_bars, start_date="not-a-date"), gbm_bars, engine_settings)


def test_unknown_strategy_and_bad_parameters(gbm_bars, engine_settings):
    with pytest.raises(UnknownStrategyError):
        run_backtest(_request(gbm_bars, "Turtle Breakout"), gbm_bars, engine_settings)
    with pytest.raises(InvalidParameterError):
        run_backtest(_request(gbm_bars, "rsi", parameters={'period': 500}), gbm_bars, engine_settings)


@pytest.mark.parametrize("capital", [0.0, -100.0])
def test_non_positive_capital_is_rejected(capital, gbm_bars, engine_settings):
    with pytest.raises(ConfigurationError):
        run_backtest(_request(gbm_bars, initial_capital=capital), gbm_bars, engine_settings)


def test_range_without_bars_is_insufficient_data(gbm_bars, engine_settings):
    request = _request(gbm_bars, start_date="2030-01-01", end_date="2030-12-31")

    with pytest.raises(InsufficientDataError, match="No bars"):
        run_backtest(request, gbm_bars, engine_settings)


def test_slice_shorter_than_warmup_is_insufficient_data(constant_bars, engine_settings):
    request = _request(constant_bars, "ma_crossover", parameters={'long_period': 100})

    with pytest.raises(InsufficientDataError, match="needs at least 100 bars"):
        run_backtest(request, constant_bars, engine_settings)


def test_non_barseries_input_is_rejected(gbm_bars, engine_settings):
    with pytest.raises(ConfigurationError, match="BarSeries"):
        run_backtest(_request(gbm_bars), gbm_bars.to_frame(), engine_settings)


def test_async_with_static_provider_matches_sync(gbm_bars, engine_settings):
    provider = StaticPriceHistoryProvider({"gbm": gbm_bars})
    request = _request(gbm_bars, "macd")

    async_result = asyncio.run(run_backtest_async(request, provider, engine_settings))
    sync_result = run_backtest(request, gbm_bars, engine_settings)

    assert async_result.to_dict() == sync_result.to_dict()


def test_async_awaits_coroutine_provider(gbm_bars, engine_settings):
    calls = []

    class AsyncProvider:
        async def fetch_daily_bars(self, symbol, start, end):
            calls.append((symbol, start, end))
            await asyncio.sleep(0)
            return gbm_bars.between(start, end)

    request = _request(gbm_bars, "bollinger_bands")

    result = asyncio.run(run_backtest_async(request, AsyncProvider(), engine_settings))

    assert calls == [("GBM", gbm_bars[0].date, gbm_bars[-1].date)]
    assert result.bar_count == len(gbm_bars)


def test_async_concurrent_runs_are_independent(gbm_bars, engine_settings):
    provider = StaticPriceHistoryProvider({"GBM": gbm_bars})
    requests = [_request(gbm_bars, name) for name in ("rsi", "macd", "rsi")]

    async def run_all():
        return await asyncio.gather(*(run_backtest_async(r, provider, engine_settings) for r in requests))

    results = asyncio.run(run_all())

    assert results[0].to_dict() == results[2].to_dict()
    assert results[1].strategy_kind == "macd"


def test_async_provider_failure_is_wrapped(gbm_bars, engine_settings):
    class FailingProvider:
        def fetch_daily_bars(self, symbol, start, end):
            raise ConnectionError("upstream unavailable")

    with pytest.raises(PriceHistoryError, match="upstream unavailable"):
        asyncio.run(run_backtest_async(_request(gbm_bars), FailingProvider(), engine_settings))


def test_async_unknown_symbol_propagates_provider_error(gbm_bars, engine_settings):
    provider = StaticPriceHistoryProvider({"OTHER": gbm_bars})

    with pytest.raises(PriceHistoryError, match="No price history"):
        asyncio.run(run_backtest_async(_request(gbm_bars), provider, engine_settings))


def test_async_rejects_non_barseries_from_provider(gbm_bars, engine_settings):
    class FrameProvider:
        def fetch_daily_bars(self, symbol, start, end):
            return pd.DataFrame()

    with pytest.raises(PriceHistoryError, match="expected BarSeries"):
        asyncio.run(run_backtest_async(_request(gbm_bars), FrameProvider(), engine_settings))


def test_async_validates_request_before_fetching(gbm_bars, engine_settings):
    calls = []

    class RecordingProvider:
        def fetch_daily_bars(self, symbol, start, end):
            calls.append(symbol)
            return gbm_bars

    with pytest.raises(UnknownStrategyError):
        asyncio.run(run_backtest_async(_request(gbm_bars, "nope"), RecordingProvider(), engine_settings))
    assert calls == []


def test_async_accepts_both_provider_flavours(gbm_bars, engine_settings):
    class AsyncProvider:
        async def fetch_daily_bars(self, symbol, start, end):
            return gbm_bars.between(start, end)

    static = StaticPriceHistoryProvider({"GBM": gbm_bars})
    coroutine = AsyncProvider()
    assert isinstance(static, PriceHistoryProvider)
    assert isinstance(coroutine, AsyncPriceHistoryProvider)

    request = _request(gbm_bars, "rsi")
    results = [asyncio.run(run_backtest_async(request, p, engine_settings)) for p in (static, coroutine)]

    assert results[0].to_dict() == results[1].to_dict()


def test_async_range_outside_fetched_history_is_rejected(gbm_bars, engine_settings):
    provider = StaticPriceHistoryProvider({"GBM": gbm_bars})
    request = _request(gbm_bars, "rsi", start_date="2015-01-01")

    with pytest.raises(InvalidDateRangeError, match="beyond available history"):
        asyncio.run(run_backtest_async(request, provider, engine_settings))
