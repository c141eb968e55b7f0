"""
Trade simulation.

Turns per-bar signals into full-position market buys and sells against a
cash balance, applying commission and slippage and recording an equity curve.
"""
