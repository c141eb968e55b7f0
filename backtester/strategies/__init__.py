"""
Strategy descriptors, signal generators, and the strategy catalog.

Each strategy maps a bar series plus a validated parameter assignment to a
per-bar Buy/Sell/Hold signal sequence.
"""
