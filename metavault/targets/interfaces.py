"""
Target capability protocols.

A target is an external vault-like entity. Every target implements the
synchronous ``TargetVault`` surface; the optional protocols below describe
extensions a target may or may not offer. Capabilities are resolved per call
by ``capabilities_of`` because a target may gain or lose them over time.
"""

from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable

from metavault.core.types import ObligationKey, WithdrawRequest


class Capability(Enum):
    """Optional method sets a target may expose."""

    PREVIEW = "preview"
    ASYNC_WITHDRAW = "async_withdraw"
    IDLE_ASSETS = "idle_assets"
    COSTS = "costs"


@runtime_checkable
class AssetToken(Protocol):
    """Underlying asset shared by the MetaVault and all targets."""

    async def balance_of(self, account: str) -> Decimal: ...

    async def transfer(self, sender: str, recipient: str, amount: Decimal) -> None: ...


@runtime_checkable
class TargetVault(Protocol):
    """Synchronous settlement surface every target implements."""

    address: str

    async def deposit(self, assets: Decimal, receiver: str, sender: str) -> Decimal: ...

    async def withdraw(self, assets: Decimal, receiver: str, owner: str) -> Decimal: ...

    async def redeem(self, shares: Decimal, receiver: str, owner: str) -> Decimal: ...

    async def balance_of(self, owner: str) -> Decimal: ...

    async def convert_to_assets(self, shares: Decimal) -> Decimal: ...

    async def convert_to_shares(self, assets: Decimal) -> Decimal: ...

    async def max_withdraw(self, owner: str) -> Decimal: ...


@runtime_checkable
class PreviewCapable(Protocol):
    """Exact share-to-asset preview including exit costs."""

    async def preview_redeem(self, shares: Decimal) -> Decimal: ...


@runtime_checkable
class AsyncWithdrawCapable(Protocol):
    """Request/claim withdrawal protocol."""

    async def max_request_withdraw(self, owner: str) -> Decimal: ...

    async def max_request_redeem(self, owner: str) -> Decimal: ...

    async def request_withdraw(
        self, assets: Decimal, receiver: str, owner: str
    ) -> ObligationKey: ...

    async def request_redeem(self, shares: Decimal, receiver: str, owner: str) -> ObligationKey: ...

    async def claim(self, key: ObligationKey) -> Decimal: ...

    async def is_claimable(self, key: ObligationKey) -> bool: ...

    async def get_withdraw_request(self, key: ObligationKey) -> WithdrawRequest: ...


@runtime_checkable
class IdleAssetsCapable(Protocol):
    """Reports assets the target can pay out without unwinding positions."""

    async def idle_assets(self) -> Decimal: ...


@runtime_checkable
class CostCapable(Protocol):
    """Reports entry and exit cost rates in basis points."""

    async def entry_cost(self) -> Decimal: ...

    async def exit_cost(self) -> Decimal: ...


@runtime_checkable
class CapabilityReporting(Protocol):
    """Target that narrows its own capability set at runtime."""

    def supported_capabilities(self) -> frozenset[Capability]: ...


_CAPABILITY_PROTOCOLS: dict[Capability, type] = {
    Capability.PREVIEW: PreviewCapable,
    Capability.ASYNC_WITHDRAW: AsyncWithdrawCapable,
    Capability.IDLE_ASSETS: IdleAssetsCapable,
    Capability.COSTS: CostCapable,
}


def capabilities_of(target: object) -> frozenset[Capability]:
    """
    Resolve the optional method sets ``target`` offers right now.

    A capability is present when the target structurally implements the
    matching protocol and, if the target reports its own capabilities,
    lists it there.
    """
    present = frozenset(
        capability
        for capability, protocol in _CAPABILITY_PROTOCOLS.items()
        if isinstance(target, protocol)
    )
    if isinstance(target, CapabilityReporting):
        present &= target.supported_capabilities()
    return present
