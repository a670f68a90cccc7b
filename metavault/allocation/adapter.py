"""
Capability adapter over heterogeneous targets.

Presents one call surface over targets that settle synchronously only and
targets that also implement the asynchronous request/claim protocol.
Capabilities are resolved on every call. Queries degrade to a conservative
default (zero or False) when a capability is absent or the target fails;
only ``deposit`` and the synchronous withdraw/redeem fallback propagate
target errors because they move assets.
"""

from decimal import Decimal
from typing import Any

from metavault.allocation.costs import cost_on_raw, cost_on_total
from metavault.core.logging import get_logger
from metavault.core.types import NO_OBLIGATION_KEY, ObligationKey
from metavault.targets.interfaces import Capability, TargetVault, capabilities_of
from metavault.utils.decimal_utils import BASIS_POINTS, DEFAULT_ASSET_QUANTUM, ZERO


class TargetAdapter:
    """Failure-tolerant access to target vaults."""

    def __init__(
        self,
        cost_precision: Decimal = BASIS_POINTS,
        quantum: Decimal = DEFAULT_ASSET_QUANTUM,
    ) -> None:
        self.cost_precision = cost_precision
        self.quantum = quantum
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Capability resolution
    # ------------------------------------------------------------------

    def capabilities(self, target: TargetVault) -> frozenset[Capability]:
        """Optional method sets ``target`` offers for this call."""
        try:
            return capabilities_of(target)
        except Exception as e:
            self._absorbed(target, "supported_capabilities", e)
            return frozenset()

    def supports(self, target: TargetVault, capability: Capability) -> bool:
        return capability in self.capabilities(target)

    def _absorbed(self, target: Any, operation: str, error: Exception) -> None:
        self._logger.warning(
            "Target call failed, using fallback",
            target=getattr(target, "address", repr(target)),
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )

    # ------------------------------------------------------------------
    # State-changing calls
    # ------------------------------------------------------------------

    async def deposit(self, target: TargetVault, assets: Decimal, on_behalf_of: str) -> Decimal:
        """Deposit ``assets`` from ``on_behalf_of``; target errors propagate."""
        return await target.deposit(assets, on_behalf_of, on_behalf_of)

    async def try_request_withdraw(
        self, target: TargetVault, assets: Decimal, receiver: str, owner: str
    ) -> ObligationKey:
        """
        Request an asynchronous withdrawal, falling back to a synchronous one.

        Returns:
            The target's obligation key, or ``NO_OBLIGATION_KEY`` when the
            synchronous fallback settled the withdrawal.
        """
        if self.supports(target, Capability.ASYNC_WITHDRAW):
            try:
                return await target.request_withdraw(assets, receiver, owner)
            except Exception as e:
                self._absorbed(target, "request_withdraw", e)

        await target.withdraw(assets, receiver, owner)
        return NO_OBLIGATION_KEY

    async def try_request_redeem(
        self, target: TargetVault, shares: Decimal, receiver: str, owner: str
    ) -> ObligationKey:
        """Share-denominated twin of ``try_request_withdraw``."""
        if self.supports(target, Capability.ASYNC_WITHDRAW):
            try:
                return await target.request_redeem(shares, receiver, owner)
            except Exception as e:
                self._absorbed(target, "request_redeem", e)

        await target.redeem(shares, receiver, owner)
        return NO_OBLIGATION_KEY

    async def try_claim(self, target: TargetVault, key: ObligationKey) -> Decimal:
        """Collect a settled obligation; zero when the claim cannot be made."""
        if not self.supports(target, Capability.ASYNC_WITHDRAW):
            return ZERO
        try:
            return await target.claim(key)
        except Exception as e:
            self._absorbed(target, "claim", e)
            return ZERO

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def try_is_claimable(self, target: TargetVault, key: ObligationKey) -> bool:
        if not self.supports(target, Capability.ASYNC_WITHDRAW):
            return False
        try:
            return bool(await target.is_claimable(key))
        except Exception as e:
            self._absorbed(target, "is_claimable", e)
            return False

    async def try_is_claimed(self, target: TargetVault, key: ObligationKey) -> bool:
        if not self.supports(target, Capability.ASYNC_WITHDRAW):
            return False
        try:
            request = await target.get_withdraw_request(key)
        except Exception as e:
            self._absorbed(target, "get_withdraw_request", e)
            return False
        return bool(request.is_claimed)

    async def try_preview_assets(self, target: TargetVault, shares: Decimal) -> Decimal:
        """Assets ``shares`` would realize: exact preview, else linear conversion."""
        if shares <= ZERO:
            return ZERO
        if self.supports(target, Capability.PREVIEW):
            try:
                return await target.preview_redeem(shares)
            except Exception as e:
                self._absorbed(target, "preview_redeem", e)
        try:
            return await target.convert_to_assets(shares)
        except Exception as e:
            self._absorbed(target, "convert_to_assets", e)
            return ZERO

    async def try_idle_assets(self, target: TargetVault) -> Decimal:
        if not self.supports(target, Capability.IDLE_ASSETS):
            return ZERO
        try:
            return await target.idle_assets()
        except Exception as e:
            self._absorbed(target, "idle_assets", e)
            return ZERO

    async def try_entry_cost(self, target: TargetVault) -> Decimal:
        if not self.supports(target, Capability.COSTS):
            return ZERO
        try:
            return await target.entry_cost()
        except Exception as e:
            self._absorbed(target, "entry_cost", e)
            return ZERO

    async def try_exit_cost(self, target: TargetVault) -> Decimal:
        if not self.supports(target, Capability.COSTS):
            return ZERO
        try:
            return await target.exit_cost()
        except Exception as e:
            self._absorbed(target, "exit_cost", e)
            return ZERO

    async def try_share_balance(self, target: TargetVault, owner: str) -> Decimal:
        try:
            return await target.balance_of(owner)
        except Exception as e:
            self._absorbed(target, "balance_of", e)
            return ZERO

    async def try_max_withdraw(self, target: TargetVault, owner: str) -> Decimal:
        try:
            return await target.max_withdraw(owner)
        except Exception as e:
            self._absorbed(target, "max_withdraw", e)
            return ZERO

    async def try_max_request_withdraw(self, target: TargetVault, owner: str) -> Decimal:
        """Largest withdrawal ``owner`` may route to ``target``, sync or async."""
        if self.supports(target, Capability.ASYNC_WITHDRAW):
            try:
                return await target.max_request_withdraw(owner)
            except Exception as e:
                self._absorbed(target, "max_request_withdraw", e)
        return await self.try_max_withdraw(target, owner)

    # ------------------------------------------------------------------
    # Cost application
    # ------------------------------------------------------------------

    def cost_on_raw(self, assets: Decimal, rate: Decimal) -> Decimal:
        return cost_on_raw(assets, rate, self.cost_precision, self.quantum)

    def cost_on_total(self, assets: Decimal, rate: Decimal) -> Decimal:
        return cost_on_total(assets, rate, self.cost_precision, self.quantum)
