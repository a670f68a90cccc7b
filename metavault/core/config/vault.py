"""MetaVault orchestrator configuration."""

from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from .base import BaseConfig


class VaultConfig(BaseConfig):
    """Settings for the MetaVault share layer."""

    model_config = SettingsConfigDict(env_prefix="METAVAULT_VAULT_")

    address: str = Field(
        default="metavault",
        description="Account identifier of the vault on the asset token",
        min_length=1,
    )

    entry_cost_bps: Decimal = Field(
        default=Decimal("0"),
        description="Cost charged on deposits, in basis points",
        ge=Decimal("0"),
        lt=Decimal("10000"),
    )

    exit_cost_bps: Decimal = Field(
        default=Decimal("0"),
        description="Cost charged on withdrawals, in basis points",
        ge=Decimal("0"),
        lt=Decimal("10000"),
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Addresses are compared case-sensitively, reject padding."""
        if v != v.strip():
            raise ValueError("Vault address must not contain surrounding whitespace")
        return v
