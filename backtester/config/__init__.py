"""
Configuration loading and validation for engine, provider, and logging settings.

Provides strongly typed settings objects loaded from environment variables
with upfront validation.
"""
