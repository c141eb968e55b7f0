#!/usr/bin/env python3
"""
Run one strategy backtest from the command line.

**Purpose**: Drive the engine end to end:
  1. Load price history from a CSV file (``--csv``) or Yahoo Finance.
  2. Run the chosen strategy with any parameter overrides.
  3. Print a summary table (strategy vs buy-and-hold).
  4. Optionally write the full result (trades, equity curve) as JSON.

**Usage**:
    From project root:
    ```bash
    # List strategies and their parameters
    python actions/run_backtest.py --list-strategies

    # RSI on SPY from Yahoo Finance
    python actions/run_backtest.py SPY --start 2022-01-01 --end 2023-12-31 \\
        --strategy rsi --param period=14 --param oversold=25

    # Moving-average crossover on a local CSV, with costs, saving JSON
    python actions/run_backtest.py QQQ --start 2020-01-01 --end 2024-12-31 \\
        --strategy "Moving Average Crossover" --param short_period=20 \\
        --csv data/raw/QQQ.csv --commission 0.001 --slippage 0.0005 \\
        --output data/results/qqq_ma_crossover.json
    ```

**Exit codes**:
  - 0: Success
  - 1: Data error (missing file, provider failure, malformed bars)
  - 2: Configuration error (unknown strategy, bad parameter, bad dates)
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from backtester.backtesting.engine import BacktestRequest, BacktestResult, run_backtest_async
from backtester.config.settings import get_settings
from backtester.data.io import read_price_csv, write_result_json
from backtester.strategies.catalog import list_strategies
from backtester.utils.errors import ConfigurationError, DataError
from backtester.utils.logging_setup import configure_logging
from backtester.venues.base import StaticPriceHistoryProvider
from backtester.venues.yfinance_data_provider import YFinanceDataProvider


def parse_param_overrides(items: list[str] | None) -> dict[str, str]:
    """
    Parse repeated ``--param name=value`` options into a dict.

    Values stay strings; the strategy schema coerces and validates them.

    Raises:
        ConfigurationError: If an item has no '=' or an empty name.
    """
    overrides: dict[str, str] = {}
    for item in items or []:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ConfigurationError(f"Invalid --param '{item}'. Expected name=value.")
        overrides[name] = value.strip()
    return overrides


def print_strategies() -> None:
    print("=" * 80)
    print("Available strategies")
    print("=" * 80)
    for definition in list_strategies():
        print(f"\n{definition.name}  [{definition.kind.value}]")
        print(f"  {definition.description}")
        for param in definition.parameters:
            print(
                f"    --param {param.name}=<{param.type.value}>  "
                f"default={param.default}  range=[{param.min_value}, {param.max_value}]"
            )
    print()


def print_summary(result: BacktestResult) -> None:
    bench = result.benchmark
    print("=" * 80)
    print(f"{result.strategy_name} on {result.symbol}: {result.start_date} to {result.end_date}")
    print(f"Parameters: {json.dumps(dict(result.parameters))}")
    print("=" * 80)
    print(f"{'':24s}{'Strategy':>18s}{'Buy & Hold':>18s}")
    print(f"{'Final capital':24s}{result.final_capital:>18,.2f}{bench.final_capital:>18,.2f}")
    print(f"{'Total return':24s}{result.total_return:>18,.2f}{bench.total_return:>18,.2f}")
    print(f"{'Total return %':24s}{result.total_return_percent:>17.2f}%{bench.total_return_percent:>17.2f}%")
    print(f"{'Annualized return %':24s}{result.annualized_return * 100:>17.2f}%{bench.annualized_return * 100:>17.2f}%")
    print(f"{'Max drawdown %':24s}{result.max_drawdown_percent:>17.2f}%{bench.max_drawdown_percent:>17.2f}%")
    print(f"{'Sharpe (daily)':24s}{result.sharpe_ratio:>18.4f}{bench.sharpe_ratio:>18.4f}")
    print("-" * 80)
    stats = result.statistics
    print(f"Round trips: {stats.total_trades}  (wins {stats.winning_trades}, losses {stats.losing_trades})")
    print(f"Win rate: {stats.win_rate:.1f}%   Profit factor: {stats.profit_factor:.2f}")
    print(f"Average win: {stats.average_win:,.2f}   Average loss: {stats.average_loss:,.2f}")
    print(f"Commission paid: {stats.total_commission:,.2f}")
    print("=" * 80)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backtest a technical strategy on daily bars.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("symbol", nargs="?", help="Ticker symbol (e.g. SPY).")
    parser.add_argument("--start", help="Start date (YYYY-MM-DD), inclusive.")
    parser.add_argument("--end", help="End date (YYYY-MM-DD), inclusive.")
    parser.add_argument(
        "--strategy",
        default="ma_crossover",
        help="Strategy kind or display name. Default: ma_crossover.",
    )
    parser.add_argument(
        "--param",
        action="append",
        metavar="NAME=VALUE",
        help="Strategy parameter override; repeatable.",
    )
    parser.add_argument("--capital", type=float, default=10_000.0, help="Initial capital. Default: 10000.")
    parser.add_argument("--commission", type=float, default=None, help="Commission rate (fraction of value).")
    parser.add_argument("--slippage", type=float, default=None, help="Slippage rate (fraction of price).")
    parser.add_argument("--csv", type=Path, default=None, help="Read bars from this CSV instead of Yahoo Finance.")
    parser.add_argument("--output", type=Path, default=None, help="Write the full result JSON here.")
    parser.add_argument("--list-strategies", action="store_true", help="List strategies and exit.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint.

    Returns:
        Process exit code (see module docstring).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log)

    if args.list_strategies:
        print_strategies()
        return 0

    if not args.symbol or not args.start or not args.end:
        parser.error("symbol, --start and --end are required unless --list-strategies is given")

    try:
        request = BacktestRequest(
            symbol=args.symbol.upper(),
            start_date=args.start,
            end_date=args.end,
            initial_capital=args.capital,
            strategy_name=args.strategy,
            parameters=parse_param_overrides(args.param),
            commission_rate=args.commission,
            slippage_rate=args.slippage,
        )

        if args.csv is not None:
            provider = StaticPriceHistoryProvider({request.symbol: read_price_csv(args.csv, symbol=request.symbol)})
        else:
            provider = YFinanceDataProvider(settings.yfinance)

        result = asyncio.run(run_backtest_async(request, provider, settings.engine))
    except ConfigurationError as e:
        logger.error("Configuration error: {}", e)
        return 2
    except (DataError, FileNotFoundError) as e:
        logger.error("Data error: {}", e)
        return 1

    print_summary(result)

    if args.output is not None:
        write_result_json(result, args.output)
        print(f"Result written to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
