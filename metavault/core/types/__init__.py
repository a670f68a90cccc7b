"""
Core type definitions for the MetaVault allocation engine.
"""

from .allocation import (
    LEDGER_SCHEMA_VERSION,
    NO_OBLIGATION_KEY,
    ClaimSweepResult,
    LedgerSnapshot,
    ObligationEntry,
    ObligationKey,
    PendingAndClaimable,
    ResolvedObligation,
    WithdrawRequest,
    is_obligation_key,
    make_obligation_key,
)
from .base import BaseValidatedModel, FrozenModel
from .vault import UserWithdrawRequest

__all__ = [
    "LEDGER_SCHEMA_VERSION",
    "NO_OBLIGATION_KEY",
    "BaseValidatedModel",
    "ClaimSweepResult",
    "FrozenModel",
    "LedgerSnapshot",
    "ObligationEntry",
    "ObligationKey",
    "PendingAndClaimable",
    "ResolvedObligation",
    "UserWithdrawRequest",
    "WithdrawRequest",
    "is_obligation_key",
    "make_obligation_key",
]
