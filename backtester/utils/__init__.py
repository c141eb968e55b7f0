"""
Generic utility functions shared across modules.

Includes mathematical helpers, logging setup, and error classes.
"""
