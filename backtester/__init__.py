"""
strategy_backtester – daily-bar backtest engine.

Evaluates parameterized trading rules against historical daily price series:
indicators feed strategy signals, signals drive a cash/position simulator, and
the resulting trades and equity curve are summarized into performance
statistics alongside a buy-and-hold benchmark.
"""
