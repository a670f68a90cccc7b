"""
Core framework components for the MetaVault allocation engine.

Provides logging, exceptions, events, configuration and shared types.
"""
