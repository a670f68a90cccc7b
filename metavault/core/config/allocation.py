"""Allocation engine configuration."""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from metavault.utils.decimal_utils import BASIS_POINTS, DEFAULT_ASSET_QUANTUM

from .base import BaseConfig


class AllocationConfig(BaseConfig):
    """Settings for the allocation ledger, manager and adapter."""

    model_config = SettingsConfigDict(env_prefix="METAVAULT_ALLOCATION_")

    asset_quantum: Decimal = Field(
        default=DEFAULT_ASSET_QUANTUM,
        description="Smallest transferable unit of the underlying asset",
        gt=Decimal("0"),
    )

    cost_precision: Decimal = Field(
        default=BASIS_POINTS,
        description="Denominator of entry/exit cost rates (10000 = basis points)",
        gt=Decimal("0"),
    )

    max_targets: int = Field(
        default=32,
        description="Maximum number of approved targets per vault",
        gt=0,
        le=256,
    )

    event_history_size: int = Field(
        default=1000,
        description="Number of allocation events kept in memory",
        ge=0,
    )
