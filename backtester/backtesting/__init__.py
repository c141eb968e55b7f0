"""
Backtest orchestration.

Wires price bars, strategy signals, the trade simulator, and the performance
analyzer together into a single request -> result entry point.
"""
