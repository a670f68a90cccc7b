"""
MetaVault - aggregating vault over a dynamic set of targets.

User deposits sit idle in the vault until a curator allocates them into
approved targets. Withdrawals are served from idle assets first, then from
target liquidity in ascending exit-cost order, and finally by routing
asynchronous withdrawal requests to targets. Whatever cannot be paid at
once is owed to the user under a withdraw key that becomes claimable once
the vault has collected enough assets, in request order.

Every state-changing operation holds the vault lock for its whole
duration; read-only views never take it.
"""

import asyncio
from collections.abc import Sequence
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

from metavault.allocation.adapter import TargetAdapter
from metavault.allocation.costs import cost_on_raw, cost_on_total
from metavault.allocation.ledger import AllocationLedger
from metavault.allocation.manager import AllocationManager, validate_batch
from metavault.allocation.sorting import sort_by_exit_cost
from metavault.core.config import AllocationConfig, Config, VaultConfig
from metavault.core.events import EventPublisher, VaultEventType
from metavault.core.exceptions import (
    InsufficientIdleAssetsError,
    StateConsistencyError,
    ValidationError,
    VaultShutdownError,
    WithdrawalError,
    WithdrawalLimitError,
    WithdrawNotClaimableError,
)
from metavault.core.logging import get_logger
from metavault.core.types import (
    NO_OBLIGATION_KEY,
    ClaimSweepResult,
    LedgerSnapshot,
    ObligationKey,
    PendingAndClaimable,
    UserWithdrawRequest,
    make_obligation_key,
)
from metavault.targets.interfaces import AssetToken, Capability, TargetVault
from metavault.utils.decimal_utils import ZERO, mul_div, saturating_sub

from .registry import TargetRegistry


class MetaVault:
    """
    Aggregating vault with a minimal share layer.

    Args:
        asset: Underlying asset token
        registry: Approved targets; allocation into anything else is rejected
        vault_config: Address and entry/exit costs of the share layer
        allocation_config: Quantum, cost precision and event history size
        ledger: Existing allocation ledger, e.g. restored from a snapshot
        events: Publisher shared with the allocation manager
    """

    def __init__(
        self,
        asset: AssetToken,
        registry: TargetRegistry | None = None,
        vault_config: VaultConfig | None = None,
        allocation_config: AllocationConfig | None = None,
        ledger: AllocationLedger | None = None,
        events: EventPublisher | None = None,
    ):
        self.vault_config = vault_config or VaultConfig()
        self.allocation_config = allocation_config or AllocationConfig()

        self.address = self.vault_config.address
        self.asset = asset
        self.quantum = self.allocation_config.asset_quantum
        self.cost_precision = self.allocation_config.cost_precision

        self.registry = registry or TargetRegistry(self.allocation_config.max_targets)
        self.events = events or EventPublisher(self.allocation_config.event_history_size)
        self.ledger = ledger or AllocationLedger()
        self.adapter = TargetAdapter(self.cost_precision, self.quantum)
        self.manager = AllocationManager(
            self.address, asset, self.ledger, self.adapter, self.events
        )

        # Share layer
        self._shares: dict[str, Decimal] = {}
        self._total_supply = ZERO

        # User withdraw requests, settled in request order
        self._accumulated_requested = ZERO
        self._processed = ZERO
        self._claimed = ZERO
        self._requests: dict[ObligationKey, UserWithdrawRequest] = {}
        self._request_nonce = 0

        self._is_shutdown = False
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__).bind(component="MetaVault", vault=self.address)

    @classmethod
    def from_config(
        cls,
        asset: AssetToken,
        config: Config,
        registry: TargetRegistry | None = None,
        events: EventPublisher | None = None,
    ) -> "MetaVault":
        return cls(
            asset,
            registry=registry,
            vault_config=config.vault,
            allocation_config=config.allocation,
            events=events,
        )

    # ------------------------------------------------------------------
    # Accounting views
    # ------------------------------------------------------------------

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    @property
    def total_supply(self) -> Decimal:
        return self._total_supply

    @property
    def owed_to_users(self) -> Decimal:
        """Requested by users and not yet paid out."""
        return self._accumulated_requested - self._claimed

    @property
    def pending_user_withdrawals(self) -> Decimal:
        """Requested by users and not yet covered by collected assets."""
        return self._accumulated_requested - self._processed

    async def balance_of(self, owner: str) -> Decimal:
        return self._shares.get(owner, ZERO)

    async def asset_balance(self) -> Decimal:
        return await self.asset.balance_of(self.address)

    async def idle_assets(self) -> Decimal:
        """Asset balance not reserved for user withdraw requests."""
        return saturating_sub(await self.asset_balance(), self.owed_to_users)

    async def total_assets(self) -> Decimal:
        """
        Assets attributable to shareholders:
        balance + allocated + pending + claimable - owed to users.
        """
        obligations = await self.manager.allocation_pending_and_claimable()
        gross = await self.asset_balance() + await self.manager.allocated_assets()
        return saturating_sub(gross + obligations.total, self.owed_to_users)

    async def _to_shares(self, assets: Decimal, rounding: str) -> Decimal:
        total = await self.total_assets()
        if self._total_supply == ZERO or total == ZERO:
            return assets.quantize(self.quantum, rounding=rounding)
        return mul_div(assets, self._total_supply, total, rounding, self.quantum)

    async def _to_assets(self, shares: Decimal, rounding: str) -> Decimal:
        if self._total_supply == ZERO:
            return shares.quantize(self.quantum, rounding=rounding)
        total = await self.total_assets()
        return mul_div(shares, total, self._total_supply, rounding, self.quantum)

    async def convert_to_shares(self, assets: Decimal) -> Decimal:
        return await self._to_shares(assets, ROUND_FLOOR)

    async def convert_to_assets(self, shares: Decimal) -> Decimal:
        return await self._to_assets(shares, ROUND_FLOOR)

    async def preview_deposit(self, assets: Decimal) -> Decimal:
        net = assets - self._cost_on_total(assets, self.vault_config.entry_cost_bps)
        return await self._to_shares(net, ROUND_FLOOR)

    async def preview_redeem(self, shares: Decimal) -> Decimal:
        gross = await self._to_assets(shares, ROUND_FLOOR)
        return gross - self._cost_on_total(gross, self.vault_config.exit_cost_bps)

    async def preview_withdraw(self, assets: Decimal) -> Decimal:
        gross = assets + self._cost_on_raw(assets, self.vault_config.exit_cost_bps)
        return await self._to_shares(gross, ROUND_CEILING)

    def _cost_on_raw(self, assets: Decimal, rate: Decimal) -> Decimal:
        return cost_on_raw(assets, rate, self.cost_precision, self.quantum)

    def _cost_on_total(self, assets: Decimal, rate: Decimal) -> Decimal:
        return cost_on_total(assets, rate, self.cost_precision, self.quantum)

    async def _position(self, owner: str) -> Decimal:
        return await self.preview_redeem(await self.balance_of(owner))

    async def _target_liquidity(self, target: TargetVault) -> Decimal:
        """Assets ``target`` pays the vault synchronously right now."""
        max_withdraw = await self.adapter.try_max_withdraw(target, self.address)
        if not self.adapter.supports(target, Capability.IDLE_ASSETS):
            return max_withdraw
        return min(await self.adapter.try_idle_assets(target), max_withdraw)

    async def _liquidity(self) -> Decimal:
        total = await self.idle_assets()
        for target in self.manager.allocated_targets():
            total += await self._target_liquidity(target)
        return total

    async def max_withdraw(self, owner: str) -> Decimal:
        return min(await self._position(owner), await self._liquidity())

    async def max_redeem(self, owner: str) -> Decimal:
        shares = await self.balance_of(owner)
        if await self._position(owner) <= await self._liquidity():
            return shares
        return min(shares, await self.convert_to_shares(await self._liquidity()))

    async def max_request_withdraw(self, owner: str) -> Decimal:
        return await self._position(owner)

    async def max_request_redeem(self, owner: str) -> Decimal:
        return await self.balance_of(owner)

    # ------------------------------------------------------------------
    # Allocation views
    # ------------------------------------------------------------------

    def allocated_targets(self) -> list[TargetVault]:
        return self.manager.allocated_targets()

    def claimable_targets(self) -> list[TargetVault]:
        return self.manager.claimable_targets()

    def withdraw_keys_for(self, target: TargetVault) -> list[ObligationKey]:
        return self.manager.withdraw_keys_for(target)

    async def allocated_assets(self) -> Decimal:
        return await self.manager.allocated_assets()

    async def allocated_assets_for(self, target: TargetVault) -> Decimal:
        return await self.manager.allocated_assets_for(target)

    async def allocation_pending_and_claimable(self) -> PendingAndClaimable:
        return await self.manager.allocation_pending_and_claimable()

    def snapshot(self) -> LedgerSnapshot:
        return self.ledger.snapshot()

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    async def deposit(self, assets: Decimal, receiver: str, sender: str) -> Decimal:
        """
        Deposit ``assets`` from ``sender`` and mint shares to ``receiver``.

        Returns:
            Shares minted

        Raises:
            VaultShutdownError: If the vault has been shut down
            ValidationError: If the deposit would mint no shares
        """
        async with self._lock:
            if self._is_shutdown:
                raise VaultShutdownError("Deposits are disabled after shutdown")
            if assets <= ZERO:
                raise ValidationError("Deposit must be positive", field_name="assets", field_value=assets)

            shares = await self.preview_deposit(assets)
            if shares <= ZERO:
                raise ValidationError("Deposit mints no shares", field_name="assets", field_value=assets)

            await self.asset.transfer(sender, self.address, assets)
            self._mint(receiver, shares)
            await self._process_pending_withdrawals()

            self._logger.info("Deposited", receiver=receiver, assets=str(assets), shares=str(shares))
            await self.events.emit(
                VaultEventType.DEPOSITED,
                self.address,
                sender=sender,
                receiver=receiver,
                assets=assets,
                shares=shares,
            )
            return shares

    def _mint(self, owner: str, shares: Decimal) -> None:
        self._shares[owner] = self._shares.get(owner, ZERO) + shares
        self._total_supply += shares

    def _burn(self, owner: str, shares: Decimal) -> None:
        balance = self._shares.get(owner, ZERO)
        if shares > balance:
            raise WithdrawalLimitError(
                "Burn exceeds share balance", owner=owner, requested=shares, maximum=balance
            )
        self._shares[owner] = balance - shares
        self._total_supply -= shares

    # ------------------------------------------------------------------
    # Synchronous withdrawals
    # ------------------------------------------------------------------

    async def withdraw(self, assets: Decimal, receiver: str, owner: str) -> Decimal:
        """
        Withdraw ``assets`` to ``receiver``, settled in full right now.

        Returns:
            Shares burned

        Raises:
            WithdrawalLimitError: If ``assets`` exceeds ``max_withdraw(owner)``
        """
        async with self._lock:
            self._require_positive(assets, "assets")
            maximum = await self.max_withdraw(owner)
            if assets > maximum:
                raise WithdrawalLimitError(
                    "Withdraw exceeds max", owner=owner, requested=assets, maximum=maximum
                )

            shares = await self._shares_for_withdraw(assets, owner)
            await self._settle_now(assets, shares, receiver, owner)
            return shares

    async def redeem(self, shares: Decimal, receiver: str, owner: str) -> Decimal:
        """Redeem ``shares`` for assets settled in full right now."""
        async with self._lock:
            self._require_positive(shares, "shares")
            maximum = await self.max_redeem(owner)
            if shares > maximum:
                raise WithdrawalLimitError(
                    "Redeem exceeds max", owner=owner, requested=shares, maximum=maximum
                )

            assets = await self.preview_redeem(shares)
            await self._settle_now(assets, shares, receiver, owner)
            return assets

    async def _settle_now(
        self, assets: Decimal, shares: Decimal, receiver: str, owner: str
    ) -> None:
        # shares are burned only once every target call has succeeded
        await self._pull_target_liquidity(assets)

        idle = await self.idle_assets()
        if idle < assets:
            raise StateConsistencyError(
                "Target liquidity did not cover a checked withdrawal",
                state_component="liquidity",
                requested=str(assets),
                available=str(idle),
            )
        self._burn(owner, shares)
        await self._pay(assets, shares, receiver, owner)

    async def _shares_for_withdraw(self, assets: Decimal, owner: str) -> Decimal:
        shares = await self.preview_withdraw(assets)
        balance = await self.balance_of(owner)
        # rounding dust when withdrawing the full position
        if shares > balance and assets <= await self.preview_redeem(balance):
            return balance
        return shares

    async def _pull_target_liquidity(self, assets: Decimal) -> None:
        """Withdraw target liquidity, cheapest exit first, until idle covers ``assets``."""
        shortfall = saturating_sub(assets, await self.idle_assets())
        if shortfall == ZERO:
            return

        for target in await sort_by_exit_cost(self.manager.allocated_targets(), self.adapter):
            amount = min(await self._target_liquidity(target), shortfall)
            if amount == ZERO:
                continue
            before = await self.asset_balance()
            await self.manager.withdraw_allocation(target, amount, self.address)
            shortfall = saturating_sub(shortfall, await self.asset_balance() - before)
            if shortfall == ZERO:
                return

    async def _pay(self, assets: Decimal, shares: Decimal, receiver: str, owner: str) -> None:
        await self.asset.transfer(self.address, receiver, assets)
        self._logger.info(
            "Withdrawn", owner=owner, receiver=receiver, assets=str(assets), shares=str(shares)
        )
        await self.events.emit(
            VaultEventType.WITHDRAWN,
            self.address,
            owner=owner,
            receiver=receiver,
            assets=assets,
            shares=shares,
        )

    # ------------------------------------------------------------------
    # Asynchronous withdrawals
    # ------------------------------------------------------------------

    async def request_withdraw(
        self, assets: Decimal, receiver: str, owner: str
    ) -> ObligationKey:
        """
        Withdraw ``assets``, deferring what cannot be paid right now.

        Served from idle assets, then from target liquidity in ascending
        exit-cost order. Any remainder is requested from targets in the same
        order and owed to ``receiver`` under the returned key.

        Returns:
            A withdraw key to ``claim`` later, or ``NO_OBLIGATION_KEY`` when
            the withdrawal was settled in full

        Raises:
            WithdrawalLimitError: If ``assets`` exceeds the owner's position
        """
        async with self._lock:
            self._require_positive(assets, "assets")
            maximum = await self.max_request_withdraw(owner)
            if assets > maximum:
                raise WithdrawalLimitError(
                    "Request exceeds max", owner=owner, requested=assets, maximum=maximum
                )

            shares = await self._shares_for_withdraw(assets, owner)
            return await self._settle_or_request(assets, shares, receiver, owner)

    async def request_redeem(self, shares: Decimal, receiver: str, owner: str) -> ObligationKey:
        """Share-denominated form of ``request_withdraw``."""
        async with self._lock:
            self._require_positive(shares, "shares")
            maximum = await self.max_request_redeem(owner)
            if shares > maximum:
                raise WithdrawalLimitError(
                    "Request exceeds max", owner=owner, requested=shares, maximum=maximum
                )

            assets = await self.preview_redeem(shares)
            return await self._settle_or_request(assets, shares, receiver, owner)

    async def _settle_or_request(
        self, assets: Decimal, shares: Decimal, receiver: str, owner: str
    ) -> ObligationKey:
        if await self.idle_assets() >= assets:
            self._burn(owner, shares)
            await self._pay(assets, shares, receiver, owner)
            return NO_OBLIGATION_KEY

        # shares are burned only once every target call has succeeded
        await self._pull_target_liquidity(assets)
        idle = await self.idle_assets()
        if idle >= assets:
            self._burn(owner, shares)
            await self._pay(assets, shares, receiver, owner)
            return NO_OBLIGATION_KEY

        await self._route_requests(assets - idle)

        self._burn(owner, shares)
        paid = min(await self.idle_assets(), assets)
        if paid > ZERO:
            await self.asset.transfer(self.address, receiver, paid)
        remainder = assets - paid
        if remainder == ZERO:
            await self._emit_withdrawn(assets, shares, receiver, owner)
            return NO_OBLIGATION_KEY

        key = self._record_user_request(remainder, receiver, owner)
        await self._process_pending_withdrawals()

        self._logger.info(
            "Withdraw requested",
            owner=owner,
            receiver=receiver,
            assets=str(assets),
            paid=str(paid),
            owed=str(remainder),
            key=key,
        )
        await self.events.emit(
            VaultEventType.WITHDRAW_REQUESTED,
            self.address,
            owner=owner,
            receiver=receiver,
            assets=assets,
            shares=shares,
            paid=paid,
            owed=remainder,
            key=key,
        )
        return key

    async def _emit_withdrawn(
        self, assets: Decimal, shares: Decimal, receiver: str, owner: str
    ) -> None:
        await self.events.emit(
            VaultEventType.WITHDRAWN,
            self.address,
            owner=owner,
            receiver=receiver,
            assets=assets,
            shares=shares,
        )

    async def _route_requests(self, shortfall: Decimal) -> None:
        """Request ``shortfall`` from targets, cheapest exit first."""
        for target in await sort_by_exit_cost(self.manager.allocated_targets(), self.adapter):
            if shortfall == ZERO:
                break
            amount = min(
                await self.adapter.try_max_request_withdraw(target, self.address), shortfall
            )
            if amount <= ZERO:
                continue
            await self.manager.withdraw_allocation(target, amount, self.address)
            shortfall -= amount

        if shortfall > ZERO:
            # covered by obligations already outstanding once they are claimed
            self._logger.info("Shortfall left unrouted", shortfall=str(shortfall))

    def _record_user_request(self, assets: Decimal, receiver: str, owner: str) -> ObligationKey:
        key = make_obligation_key(self.address, owner, self._request_nonce)
        self._request_nonce += 1
        self._accumulated_requested += assets
        self._requests[key] = UserWithdrawRequest(
            key=key,
            owner=owner,
            receiver=receiver,
            requested_assets=assets,
            accumulated_requested_assets=self._accumulated_requested,
        )
        return key

    async def _process_pending_withdrawals(self) -> None:
        """Reserve free balance for unprocessed user requests, in request order."""
        pending = self.pending_user_withdrawals
        if pending <= ZERO:
            return
        reserved = self._processed - self._claimed
        free = saturating_sub(await self.asset_balance(), reserved)
        self._processed += min(free, pending)

    async def is_claimable(self, key: ObligationKey) -> bool:
        request = self._requests.get(key)
        if request is None or request.is_claimed:
            return False
        return request.accumulated_requested_assets <= self._processed

    async def withdraw_request(self, key: ObligationKey) -> UserWithdrawRequest:
        request = self._requests.get(key)
        if request is None:
            raise WithdrawalError("Unknown withdraw key", withdraw_key=key)
        return request.model_copy()

    async def claim(self, key: ObligationKey) -> Decimal:
        """
        Pay out a processed user withdraw request to its receiver.

        Returns:
            Assets paid

        Raises:
            WithdrawNotClaimableError: If the key is unknown, claimed or not yet processed
        """
        async with self._lock:
            if not await self.is_claimable(key):
                raise WithdrawNotClaimableError("Withdraw request is not claimable", withdraw_key=key)

            request = self._requests[key]
            request.is_claimed = True
            self._claimed += request.requested_assets
            await self.asset.transfer(self.address, request.receiver, request.requested_assets)

            self._logger.info(
                "Withdraw claimed", key=key, receiver=request.receiver, assets=str(request.requested_assets)
            )
            await self.events.emit(
                VaultEventType.WITHDRAW_CLAIMED,
                self.address,
                key=key,
                owner=request.owner,
                receiver=request.receiver,
                assets=request.requested_assets,
            )
            return request.requested_assets

    # ------------------------------------------------------------------
    # Curator entry points
    # ------------------------------------------------------------------

    async def allocate(
        self, targets: Sequence[TargetVault], amounts: Sequence[Decimal]
    ) -> list[Decimal]:
        """
        Allocate idle assets into approved targets.

        Every check runs before the first deposit.

        Raises:
            VaultShutdownError: After shutdown
            InvalidInputLengthError: If targets and amounts differ in length
            IneligibleTargetError: If a target is not approved
            InsufficientIdleAssetsError: If the amounts exceed idle assets
        """
        async with self._lock:
            if self._is_shutdown:
                raise VaultShutdownError("Allocation is disabled after shutdown")
            validate_batch(targets, amounts)
            for target, assets in zip(targets, amounts):
                self.registry.require_eligible(target)
                if assets < ZERO:
                    raise ValidationError(
                        "Allocation must not be negative", field_name="amounts", field_value=assets
                    )

            requested = sum(amounts, ZERO)
            idle = await self.idle_assets()
            if requested > idle:
                raise InsufficientIdleAssetsError(
                    "Allocation exceeds idle assets", requested=requested, available=idle
                )

            return await self.manager.allocate_batch(targets, amounts)

    async def withdraw_allocations(
        self, targets: Sequence[TargetVault], amounts: Sequence[Decimal]
    ) -> list[ObligationKey]:
        """Withdraw assets from targets back into the vault."""
        async with self._lock:
            keys = await self.manager.withdraw_allocations(targets, amounts, self.address)
            await self._process_pending_withdrawals()
            return keys

    async def redeem_allocations(
        self, targets: Sequence[TargetVault], shares: Sequence[Decimal]
    ) -> list[ObligationKey]:
        """Redeem target shares back into the vault."""
        async with self._lock:
            keys = await self.manager.redeem_allocations(targets, shares, self.address)
            await self._process_pending_withdrawals()
            return keys

    async def claim_allocations(self) -> ClaimSweepResult:
        """Collect settled target obligations. Callable by anyone."""
        async with self._lock:
            result = await self.manager.claim_allocations()
            await self._process_pending_withdrawals()
            return result

    async def shutdown(self) -> None:
        """Reject new deposits and allocations; withdrawals stay open."""
        async with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            self._logger.warning("Vault shut down")
            await self.events.emit(VaultEventType.SHUTDOWN, self.address)

    @staticmethod
    def _require_positive(amount: Decimal, field_name: str) -> None:
        if amount <= ZERO:
            raise ValidationError(
                f"{field_name} must be positive", field_name=field_name, field_value=amount
            )
