"""
Allocation type definitions.

Obligation keys are opaque 32-byte identifiers rendered as ``0x``-prefixed
hex strings. The all-zero key is reserved: a target returns it when a
withdrawal settled synchronously and no obligation exists.
"""

import hashlib
import re
from decimal import Decimal

from pydantic import Field, field_validator

from .base import BaseValidatedModel, FrozenModel

ObligationKey = str

NO_OBLIGATION_KEY: ObligationKey = "0x" + "00" * 32

_KEY_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")

LEDGER_SCHEMA_VERSION = 1


def is_obligation_key(key: ObligationKey | None) -> bool:
    """True when ``key`` denotes a real outstanding obligation."""
    return bool(key) and key != NO_OBLIGATION_KEY


def make_obligation_key(*parts: object) -> ObligationKey:
    """Derive a key from its parts, never returning the reserved zero key."""
    digest = hashlib.sha256("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    key = "0x" + digest
    if key == NO_OBLIGATION_KEY:  # pragma: no cover - sha256 preimage of zero
        raise ValueError("Derived key collides with the reserved zero key")
    return key


def validate_key_format(key: str) -> str:
    """Validate the textual shape of an obligation key."""
    if not _KEY_PATTERN.match(key):
        raise ValueError(f"Malformed obligation key: {key!r}")
    return key


class WithdrawRequest(BaseValidatedModel):
    """Per-key request record kept by an asynchronous target."""

    key: ObligationKey
    owner: str
    receiver: str
    requested_assets: Decimal = Field(ge=Decimal("0"))
    accumulated_requested_assets: Decimal = Field(ge=Decimal("0"))
    is_claimed: bool = False

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        return validate_key_format(v)


class PendingAndClaimable(FrozenModel):
    """Outstanding allocation obligations split by claimability."""

    pending: Decimal = Decimal("0")
    claimable: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.pending + self.claimable


class ResolvedObligation(FrozenModel):
    """One (target, key) pair resolved or inspected by a claim sweep."""

    target: str
    key: ObligationKey
    assets: Decimal = Decimal("0")


class ClaimSweepResult(FrozenModel):
    """Outcome of ``claim_allocations``."""

    claimed_assets: Decimal = Decimal("0")
    claimed: tuple[ResolvedObligation, ...] = ()
    claimed_externally: tuple[ResolvedObligation, ...] = ()
    still_pending: tuple[ResolvedObligation, ...] = ()

    @property
    def resolved_count(self) -> int:
        return len(self.claimed) + len(self.claimed_externally)


class ObligationEntry(FrozenModel):
    """Serialized ledger entry for one outstanding obligation."""

    key: ObligationKey
    requested_assets: Decimal = Decimal("0")


class LedgerSnapshot(FrozenModel):
    """Serializable copy of the allocation ledger."""

    schema_version: int = LEDGER_SCHEMA_VERSION
    allocated_targets: tuple[str, ...] = ()
    claimable_targets: tuple[str, ...] = ()
    obligations: dict[str, tuple[ObligationEntry, ...]] = Field(default_factory=dict)
