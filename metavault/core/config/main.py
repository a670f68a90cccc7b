"""Main configuration aggregator for the MetaVault allocation engine."""

import json
from pathlib import Path
from typing import Any

import yaml

from metavault.core.exceptions import ConfigurationError

from .allocation import AllocationConfig
from .logging import LoggingConfig
from .vault import VaultConfig


class Config:
    """
    Main configuration aggregator.

    Aggregates the domain-specific configurations and provides a unified
    interface for loading them from environment variables and files.
    """

    def __init__(self, config_file: str | None = None):
        """
        Initialize configuration from environment and optional config file.

        Args:
            config_file: Optional path to YAML/JSON config file
        """
        self.allocation = AllocationConfig()
        self.vault = VaultConfig()
        self.logging = LoggingConfig()

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str) -> None:
        """Load configuration from YAML or JSON file."""
        config_path = Path(config_file)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        config_data = self._parse_config_file(config_path)
        self._apply_config_data(config_data)

    def _parse_config_file(self, config_path: Path) -> dict[str, Any]:
        """Parse config file based on format."""
        try:
            with open(config_path) as file_handle:
                if config_path.suffix in [".yaml", ".yml"]:
                    data = yaml.safe_load(file_handle)
                elif config_path.suffix == ".json":
                    data = json.load(file_handle)
                else:
                    raise ConfigurationError(
                        f"Unsupported config file format: {config_path.suffix}"
                    )
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse config file {config_path}: {e!s}") from e

        return data or {}

    def _apply_config_data(self, config_data: dict[str, Any]) -> None:
        """Apply configuration data to domain configs."""
        config_mappings = {
            "allocation": self.allocation,
            "vault": self.vault,
            "logging": self.logging,
        }

        for section_name, config_obj in config_mappings.items():
            section_data = config_data.get(section_name) or {}
            for key, value in section_data.items():
                if not hasattr(config_obj, key):
                    raise ConfigurationError(
                        f"Unknown setting '{key}' in section '{section_name}'", config_key=key
                    )
                setattr(config_obj, key, value)

    def to_dict(self) -> dict[str, Any]:
        """Build complete configuration data for serialization."""
        return {
            "allocation": self.allocation.model_dump(mode="json"),
            "vault": self.vault.model_dump(mode="json"),
            "logging": self.logging.model_dump(mode="json"),
        }


_config_instance: Config | None = None


def get_config(config_file: str | None = None, reload: bool = False) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        config_file: Optional path to config file
        reload: Force reload of configuration

    Returns:
        Global Config instance
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = Config(config_file=config_file)

    return _config_instance
