"""
Unit tests for core configuration system.

These tests verify the configuration loading, validation, and management.
"""

import json
from decimal import Decimal

import pytest

from metavault.core.config import (
    AllocationConfig,
    Config,
    LoggingConfig,
    VaultConfig,
    get_config,
)
from metavault.core.exceptions import ConfigurationError


class TestAllocationConfig:
    """Test allocation configuration."""

    def test_allocation_config_defaults(self):
        config = AllocationConfig()

        assert config.asset_quantum == Decimal("0.000001")
        assert config.cost_precision == Decimal("10000")
        assert config.max_targets == 32
        assert config.event_history_size == 1000

    def test_max_targets_validation(self):
        config = AllocationConfig()

        config.max_targets = 256
        assert config.max_targets == 256

        with pytest.raises(ValueError):
            config.max_targets = 0

        with pytest.raises(ValueError):
            config.max_targets = 257

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("METAVAULT_ALLOCATION_MAX_TARGETS", "4")
        assert AllocationConfig().max_targets == 4


class TestVaultConfig:
    """Test vault configuration."""

    def test_vault_config_defaults(self):
        config = VaultConfig()

        assert config.address == "metavault"
        assert config.entry_cost_bps == Decimal("0")
        assert config.exit_cost_bps == Decimal("0")

    def test_cost_bounds(self):
        config = VaultConfig()

        config.exit_cost_bps = Decimal("50")
        assert config.exit_cost_bps == Decimal("50")

        with pytest.raises(ValueError):
            config.exit_cost_bps = Decimal("-1")

        with pytest.raises(ValueError):
            config.entry_cost_bps = Decimal("10000")

    def test_address_whitespace_rejected(self):
        with pytest.raises(ValueError):
            VaultConfig(address=" vault ")


class TestLoggingConfig:
    def test_level_pattern(self):
        assert LoggingConfig().level == "INFO"
        with pytest.raises(ValueError):
            LoggingConfig(level="VERBOSE")


class TestConfig:
    """Test main configuration aggregator."""

    def test_sections(self):
        config = Config()

        assert isinstance(config.allocation, AllocationConfig)
        assert isinstance(config.vault, VaultConfig)
        assert isinstance(config.logging, LoggingConfig)

    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / "metavault.yaml"
        config_file.write_text(
            "allocation:\n  max_targets: 8\nvault:\n  address: mv-1\n  exit_cost_bps: '25'\n"
        )

        config = Config(config_file=str(config_file))

        assert config.allocation.max_targets == 8
        assert config.vault.address == "mv-1"
        assert config.vault.exit_cost_bps == Decimal("25")

    def test_load_json(self, tmp_path):
        config_file = tmp_path / "metavault.json"
        config_file.write_text(json.dumps({"logging": {"level": "DEBUG"}}))

        config = Config(config_file=str(config_file))

        assert config.logging.level == "DEBUG"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config(config_file=str(tmp_path / "absent.yaml"))

    def test_unsupported_format(self, tmp_path):
        config_file = tmp_path / "metavault.toml"
        config_file.write_text("[vault]\n")

        with pytest.raises(ConfigurationError):
            Config(config_file=str(config_file))

    def test_unknown_key(self, tmp_path):
        config_file = tmp_path / "metavault.yaml"
        config_file.write_text("vault:\n  leverage: 3\n")

        with pytest.raises(ConfigurationError) as exc_info:
            Config(config_file=str(config_file))
        assert exc_info.value.error_code == "CONF_001"

    def test_to_dict(self):
        data = Config().to_dict()

        assert set(data) == {"allocation", "vault", "logging"}
        assert data["vault"]["address"] == "metavault"

    def test_get_config_reload(self):
        first = get_config(reload=True)
        assert get_config() is first
        assert get_config(reload=True) is not first
