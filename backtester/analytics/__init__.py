"""
Technical indicators, performance statistics, and synthetic price data.

Includes SMA/EMA/RSI/MACD/Bollinger computations, return/drawdown/Sharpe and
trade statistics, and seeded generators for test price paths.
"""
