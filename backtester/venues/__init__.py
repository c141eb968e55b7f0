"""
Price-history provider abstractions and concrete adapters.

Defines the provider protocol the orchestrator awaits for bars, plus static
and Yahoo Finance implementations.
"""
