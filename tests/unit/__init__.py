"""
Unit tests for the MetaVault allocation engine.

This package contains unit tests that test individual components in isolation.
Unit tests should be fast, deterministic, and not require external dependencies.
"""
