"""
Allocation Manager.

Allocate, deallocate (withdraw / redeem) and claim-sweep operations on top of
the ``AllocationLedger`` and the ``TargetAdapter``. The manager is the only
writer of the ledger; every entry it holds is derived from the sequence of
operations below.
"""

from collections.abc import Sequence
from decimal import Decimal

from metavault.allocation.adapter import TargetAdapter
from metavault.allocation.ledger import AllocationLedger
from metavault.core.events import EventPublisher, VaultEventType
from metavault.core.exceptions import InvalidInputLengthError
from metavault.core.logging import get_logger, log_async_performance
from metavault.core.types import (
    NO_OBLIGATION_KEY,
    ClaimSweepResult,
    ObligationKey,
    PendingAndClaimable,
    ResolvedObligation,
    is_obligation_key,
)
from metavault.targets.interfaces import AssetToken, TargetVault
from metavault.utils.decimal_utils import ZERO, saturating_sub


def validate_batch(targets: Sequence[TargetVault], amounts: Sequence[Decimal]) -> None:
    """Reject parallel arrays of different length before any side effect."""
    if len(targets) != len(amounts):
        raise InvalidInputLengthError(
            "Targets and amounts differ in length",
            expected_length=len(targets),
            actual_length=len(amounts),
        )


class AllocationManager:
    """
    Moves capital between the vault and its targets and keeps the ledger.

    Args:
        owner: Account of the vault on the asset token and on every target
        asset: Underlying asset token
        ledger: Ledger owned by the vault
        adapter: Capability adapter used for every target call
        events: Optional publisher for allocation events
    """

    def __init__(
        self,
        owner: str,
        asset: AssetToken,
        ledger: AllocationLedger,
        adapter: TargetAdapter,
        events: EventPublisher | None = None,
    ) -> None:
        self.owner = owner
        self.asset = asset
        self.ledger = ledger
        self.adapter = adapter
        self.events = events or EventPublisher()
        self._logger = get_logger(__name__).bind(component="AllocationManager", vault=owner)

    # ------------------------------------------------------------------
    # Allocate
    # ------------------------------------------------------------------

    async def allocate(self, target: TargetVault, assets: Decimal) -> Decimal:
        """
        Deposit ``assets`` into ``target``.

        Returns:
            Shares received, zero for a zero amount
        """
        if assets == ZERO:
            return ZERO

        shares = await self.adapter.deposit(target, assets, self.owner)
        self.ledger.add_allocated(target)

        self._logger.info(
            "Allocated", target=target.address, assets=str(assets), shares=str(shares)
        )
        await self.events.emit(
            VaultEventType.ALLOCATED,
            self.owner,
            target=target.address,
            assets=assets,
            shares=shares,
        )
        return shares

    async def allocate_batch(
        self, targets: Sequence[TargetVault], amounts: Sequence[Decimal]
    ) -> list[Decimal]:
        validate_batch(targets, amounts)
        return [await self.allocate(target, assets) for target, assets in zip(targets, amounts)]

    # ------------------------------------------------------------------
    # Deallocate
    # ------------------------------------------------------------------

    async def withdraw_allocation(
        self, target: TargetVault, assets: Decimal, receiver: str
    ) -> ObligationKey:
        """
        Withdraw ``assets`` from ``target`` to ``receiver``.

        Returns:
            The target's obligation key, ``NO_OBLIGATION_KEY`` when settled
            synchronously or for a zero amount
        """
        if assets == ZERO:
            return NO_OBLIGATION_KEY

        before = await self.asset.balance_of(receiver)
        key = await self.adapter.try_request_withdraw(target, assets, receiver, self.owner)
        immediate = saturating_sub(await self.asset.balance_of(receiver), before)

        pending = await self._record_obligation(target, key, assets, immediate)
        await self._prune_allocated(target)

        self._logger.info(
            "Allocation withdrawn",
            target=target.address,
            assets=str(assets),
            immediate=str(immediate),
            pending=str(pending),
            key=key,
        )
        await self.events.emit(
            VaultEventType.ALLOCATION_WITHDRAWN,
            self.owner,
            target=target.address,
            assets=assets,
            receiver=receiver,
            immediate=immediate,
            key=key,
        )
        return key

    async def redeem_allocation(
        self, target: TargetVault, shares: Decimal, receiver: str
    ) -> ObligationKey:
        """
        Redeem ``shares`` of ``target`` to ``receiver``.

        The expected asset amount is previewed before the call so the
        unsettled part of an asynchronous redemption can be recorded.
        """
        if shares == ZERO:
            return NO_OBLIGATION_KEY

        requested = await self.adapter.try_preview_assets(target, shares)
        before = await self.asset.balance_of(receiver)
        key = await self.adapter.try_request_redeem(target, shares, receiver, self.owner)
        immediate = saturating_sub(await self.asset.balance_of(receiver), before)

        pending = await self._record_obligation(target, key, requested, immediate)
        await self._prune_allocated(target)

        self._logger.info(
            "Allocation redeemed",
            target=target.address,
            shares=str(shares),
            immediate=str(immediate),
            pending=str(pending),
            key=key,
        )
        await self.events.emit(
            VaultEventType.ALLOCATION_REDEEMED,
            self.owner,
            target=target.address,
            shares=shares,
            receiver=receiver,
            immediate=immediate,
            key=key,
        )
        return key

    async def withdraw_allocations(
        self, targets: Sequence[TargetVault], amounts: Sequence[Decimal], receiver: str
    ) -> list[ObligationKey]:
        validate_batch(targets, amounts)
        return [
            await self.withdraw_allocation(target, assets, receiver)
            for target, assets in zip(targets, amounts)
        ]

    async def redeem_allocations(
        self, targets: Sequence[TargetVault], amounts: Sequence[Decimal], receiver: str
    ) -> list[ObligationKey]:
        validate_batch(targets, amounts)
        return [
            await self.redeem_allocation(target, shares, receiver)
            for target, shares in zip(targets, amounts)
        ]

    async def _record_obligation(
        self,
        target: TargetVault,
        key: ObligationKey,
        requested: Decimal,
        immediate: Decimal,
    ) -> Decimal:
        if not is_obligation_key(key):
            return ZERO
        # a key with nothing pending is still tracked until a sweep confirms it
        pending = saturating_sub(requested, immediate)
        self.ledger.add_obligation(target, key, pending)
        return pending

    async def _prune_allocated(self, target: TargetVault) -> None:
        if not self.ledger.is_allocated(target):
            return
        if await self.adapter.try_share_balance(target, self.owner) == ZERO:
            self.ledger.remove_allocated(target)
            self._logger.debug("Target drained", target=target.address)

    # ------------------------------------------------------------------
    # Claim sweep
    # ------------------------------------------------------------------

    @log_async_performance
    async def claim_allocations(self) -> ClaimSweepResult:
        """
        Visit every outstanding key and resolve what can be resolved.

        - claimable: claim it and drop the key
        - already claimed directly against the target: drop the key without
          collecting, the target delivered the assets to the receiver
        - otherwise: keep it

        Callable by anyone; it only collects assets the vault is owed.
        """
        claimed: list[ResolvedObligation] = []
        claimed_externally: list[ResolvedObligation] = []
        still_pending: list[ResolvedObligation] = []
        claimed_assets = ZERO

        for target in self.ledger.claimable_targets():
            for key in self.ledger.withdraw_keys_for(target):
                requested = self.ledger.requested_assets(target, key)

                if await self.adapter.try_is_claimable(target, key):
                    assets = await self.adapter.try_claim(target, key)
                    if assets == ZERO and not await self.adapter.try_is_claimed(target, key):
                        # claim did not go through, keep the key for the next sweep
                        still_pending.append(
                            ResolvedObligation(target=target.address, key=key, assets=requested)
                        )
                        continue
                    self.ledger.remove_obligation(target, key)
                    claimed_assets += assets
                    claimed.append(ResolvedObligation(target=target.address, key=key, assets=assets))
                    await self.events.emit(
                        VaultEventType.ALLOCATION_CLAIMED,
                        self.owner,
                        target=target.address,
                        key=key,
                        assets=assets,
                    )
                elif await self.adapter.try_is_claimed(target, key):
                    self.ledger.remove_obligation(target, key)
                    claimed_externally.append(
                        ResolvedObligation(target=target.address, key=key, assets=requested)
                    )
                    self._logger.info(
                        "Obligation claimed outside the sweep", target=target.address, key=key
                    )
                    await self.events.emit(
                        VaultEventType.ALLOCATION_CLAIMED_EXTERNALLY,
                        self.owner,
                        target=target.address,
                        key=key,
                        requested_assets=requested,
                    )
                else:
                    still_pending.append(
                        ResolvedObligation(target=target.address, key=key, assets=requested)
                    )

        result = ClaimSweepResult(
            claimed_assets=claimed_assets,
            claimed=tuple(claimed),
            claimed_externally=tuple(claimed_externally),
            still_pending=tuple(still_pending),
        )
        await self.events.emit(
            VaultEventType.CLAIM_SWEEP_COMPLETED,
            self.owner,
            claimed_assets=claimed_assets,
            resolved=result.resolved_count,
            pending=len(still_pending),
        )
        return result

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def allocated_targets(self) -> list[TargetVault]:
        return self.ledger.allocated_targets()

    def claimable_targets(self) -> list[TargetVault]:
        return self.ledger.claimable_targets()

    def withdraw_keys_for(self, target: TargetVault) -> list[ObligationKey]:
        return self.ledger.withdraw_keys_for(target)

    async def allocated_assets_for(self, target: TargetVault) -> Decimal:
        shares = await self.adapter.try_share_balance(target, self.owner)
        return await self.adapter.try_preview_assets(target, shares)

    async def allocated_assets(self) -> Decimal:
        total = ZERO
        for target in self.ledger.allocated_targets():
            total += await self.allocated_assets_for(target)
        return total

    async def allocation_pending_and_claimable(self) -> PendingAndClaimable:
        """Split outstanding requested amounts into pending and claimable."""
        pending = ZERO
        claimable = ZERO
        for target in self.ledger.claimable_targets():
            for key in self.ledger.withdraw_keys_for(target):
                if await self.adapter.try_is_claimed(target, key):
                    continue
                requested = self.ledger.requested_assets(target, key)
                if await self.adapter.try_is_claimable(target, key):
                    claimable += requested
                else:
                    pending += requested
        return PendingAndClaimable(pending=pending, claimable=claimable)
