"""
Configuration management for the MetaVault allocation engine.

Usage:
    ```python
    from metavault.core.config import get_config

    config = get_config()
    quantum = config.allocation.asset_quantum
    ```
"""

from .allocation import AllocationConfig
from .base import BaseConfig
from .logging import LoggingConfig
from .main import Config, get_config
from .vault import VaultConfig

__all__ = [
    "AllocationConfig",
    "BaseConfig",
    "Config",
    "LoggingConfig",
    "VaultConfig",
    "get_config",
]
