"""
In-memory target vaults.

``SyncTargetVault`` is a plain share vault that settles every withdrawal
immediately and exposes no optional capabilities. ``AsyncTargetVault``
deploys capital into a strategy, charges entry/exit costs, and settles
withdrawals that exceed its idle assets through the request/claim protocol.
"""

from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

from metavault.allocation.costs import cost_on_raw, cost_on_total
from metavault.core.exceptions import TargetRevertError
from metavault.core.logging import get_logger
from metavault.core.types import (
    NO_OBLIGATION_KEY,
    ObligationKey,
    WithdrawRequest,
    make_obligation_key,
)
from metavault.targets.interfaces import AssetToken, Capability
from metavault.utils.decimal_utils import (
    DEFAULT_ASSET_QUANTUM,
    ZERO,
    mul_div,
    saturating_sub,
)


class SyncTargetVault:
    """Share vault whose whole balance is always withdrawable."""

    def __init__(
        self,
        address: str,
        asset: AssetToken,
        quantum: Decimal = DEFAULT_ASSET_QUANTUM,
    ):
        self.address = address
        self._asset = asset
        self._quantum = quantum
        self._shares: dict[str, Decimal] = {}
        self._total_supply = ZERO
        self._logger = get_logger(__name__).bind(target=address)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.address!r})"

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    @property
    def total_supply(self) -> Decimal:
        return self._total_supply

    async def total_assets(self) -> Decimal:
        return await self._asset.balance_of(self.address)

    async def balance_of(self, owner: str) -> Decimal:
        return self._shares.get(owner, ZERO)

    async def _to_shares(self, assets: Decimal, rounding: str) -> Decimal:
        total = await self.total_assets()
        if self._total_supply == ZERO or total == ZERO:
            return assets.quantize(self._quantum, rounding=rounding)
        return mul_div(assets, self._total_supply, total, rounding, self._quantum)

    async def _to_assets(self, shares: Decimal, rounding: str) -> Decimal:
        if self._total_supply == ZERO:
            return shares.quantize(self._quantum, rounding=rounding)
        total = await self.total_assets()
        return mul_div(shares, total, self._total_supply, rounding, self._quantum)

    async def convert_to_shares(self, assets: Decimal) -> Decimal:
        return await self._to_shares(assets, ROUND_FLOOR)

    async def convert_to_assets(self, shares: Decimal) -> Decimal:
        return await self._to_assets(shares, ROUND_FLOOR)

    def _mint(self, owner: str, shares: Decimal) -> None:
        self._shares[owner] = self._shares.get(owner, ZERO) + shares
        self._total_supply += shares

    def _burn(self, owner: str, shares: Decimal) -> None:
        balance = self._shares.get(owner, ZERO)
        if shares > balance:
            raise TargetRevertError(
                "Burn exceeds share balance", target=self.address, operation="burn"
            )
        self._shares[owner] = balance - shares
        self._total_supply -= shares

    async def _liquid_assets(self) -> Decimal:
        return await self._asset.balance_of(self.address)

    # ------------------------------------------------------------------
    # Synchronous surface
    # ------------------------------------------------------------------

    async def deposit(self, assets: Decimal, receiver: str, sender: str) -> Decimal:
        if assets <= ZERO:
            raise TargetRevertError("Zero deposit", target=self.address, operation="deposit")
        shares = await self._shares_for_deposit(assets)
        if shares <= ZERO:
            raise TargetRevertError("Zero shares", target=self.address, operation="deposit")
        await self._asset.transfer(sender, self.address, assets)
        self._mint(receiver, shares)
        await self._after_deposit()
        return shares

    async def _shares_for_deposit(self, assets: Decimal) -> Decimal:
        return await self.convert_to_shares(assets)

    async def _after_deposit(self) -> None:
        return None

    async def max_withdraw(self, owner: str) -> Decimal:
        position = await self._net_assets(await self.balance_of(owner))
        return min(position, await self._liquid_assets())

    async def _net_assets(self, shares: Decimal) -> Decimal:
        return await self.convert_to_assets(shares)

    async def _shares_for_withdraw(self, assets: Decimal, owner: str) -> Decimal:
        shares = await self._to_shares(assets, ROUND_CEILING)
        balance = await self.balance_of(owner)
        # rounding dust when withdrawing the full position
        if shares > balance and assets <= await self._net_assets(balance):
            return balance
        return shares

    async def withdraw(self, assets: Decimal, receiver: str, owner: str) -> Decimal:
        if assets <= ZERO or assets > await self.max_withdraw(owner):
            raise TargetRevertError(
                "Withdraw exceeds max", target=self.address, operation="withdraw"
            )
        shares = await self._shares_for_withdraw(assets, owner)
        self._burn(owner, shares)
        await self._asset.transfer(self.address, receiver, assets)
        return shares

    async def redeem(self, shares: Decimal, receiver: str, owner: str) -> Decimal:
        if shares <= ZERO or shares > await self.balance_of(owner):
            raise TargetRevertError("Redeem exceeds max", target=self.address, operation="redeem")
        assets = await self._net_assets(shares)
        if assets > await self._liquid_assets():
            raise TargetRevertError(
                "Insufficient liquidity", target=self.address, operation="redeem"
            )
        self._burn(owner, shares)
        await self._asset.transfer(self.address, receiver, assets)
        return assets


class AsyncTargetVault(SyncTargetVault):
    """
    Strategy-backed vault with the asynchronous request/claim protocol.

    Assets either sit idle in the vault or are utilized by its strategy.
    A withdrawal request pays out whatever is idle immediately and records
    the remainder under a fresh key; the remainder becomes claimable once
    ``deutilize`` has returned enough assets to process every earlier
    request (FIFO by accumulated requested amount).
    """

    def __init__(
        self,
        address: str,
        asset: AssetToken,
        entry_cost_bps: Decimal = ZERO,
        exit_cost_bps: Decimal = ZERO,
        quantum: Decimal = DEFAULT_ASSET_QUANTUM,
        issue_key_on_immediate_settlement: bool = False,
    ):
        super().__init__(address, asset, quantum)
        self.strategy_address = f"{address}:strategy"
        self.entry_cost_bps = entry_cost_bps
        self.exit_cost_bps = exit_cost_bps
        self.issue_key_on_immediate_settlement = issue_key_on_immediate_settlement
        self.async_withdraw_enabled = True

        self._utilized = ZERO
        self._accumulated_requested = ZERO
        self._processed = ZERO
        self._claimed = ZERO
        self._requests: dict[ObligationKey, WithdrawRequest] = {}
        self._nonces: dict[str, int] = {}

    def supported_capabilities(self) -> frozenset[Capability]:
        capabilities = {Capability.PREVIEW, Capability.IDLE_ASSETS, Capability.COSTS}
        if self.async_withdraw_enabled:
            capabilities.add(Capability.ASYNC_WITHDRAW)
        return frozenset(capabilities)

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    @property
    def utilized_assets(self) -> Decimal:
        return self._utilized

    @property
    def assets_to_claim(self) -> Decimal:
        return self._processed - self._claimed

    @property
    def pending_withdraw(self) -> Decimal:
        return self._accumulated_requested - self._processed

    async def total_assets(self) -> Decimal:
        balance = await self._asset.balance_of(self.address)
        return saturating_sub(
            balance - self.assets_to_claim + self._utilized, self.pending_withdraw
        )

    async def idle_assets(self) -> Decimal:
        balance = await self._asset.balance_of(self.address)
        return saturating_sub(balance, self.assets_to_claim + self.pending_withdraw)

    async def _liquid_assets(self) -> Decimal:
        return await self.idle_assets()

    async def entry_cost(self) -> Decimal:
        return self.entry_cost_bps

    async def exit_cost(self) -> Decimal:
        return self.exit_cost_bps

    async def _shares_for_deposit(self, assets: Decimal) -> Decimal:
        net = assets - cost_on_total(assets, self.entry_cost_bps, quantum=self._quantum)
        return await self.convert_to_shares(net)

    async def _after_deposit(self) -> None:
        await self._process_pending()

    async def _net_assets(self, shares: Decimal) -> Decimal:
        return await self.preview_redeem(shares)

    async def preview_redeem(self, shares: Decimal) -> Decimal:
        gross = await self.convert_to_assets(shares)
        return gross - cost_on_total(gross, self.exit_cost_bps, quantum=self._quantum)

    async def preview_withdraw(self, assets: Decimal) -> Decimal:
        gross = assets + cost_on_raw(assets, self.exit_cost_bps, quantum=self._quantum)
        return await self._to_shares(gross, ROUND_CEILING)

    async def _shares_for_withdraw(self, assets: Decimal, owner: str) -> Decimal:
        shares = await self.preview_withdraw(assets)
        balance = await self.balance_of(owner)
        if shares > balance and assets <= await self.preview_redeem(balance):
            return balance
        return shares

    async def _process_pending(self) -> None:
        pending = self.pending_withdraw
        if pending <= ZERO:
            return
        balance = await self._asset.balance_of(self.address)
        processed = min(saturating_sub(balance, self.assets_to_claim), pending)
        self._processed += processed

    # ------------------------------------------------------------------
    # Strategy
    # ------------------------------------------------------------------

    async def utilize(self, assets: Decimal) -> None:
        """Move idle assets into the strategy."""
        if assets > await self.idle_assets():
            raise TargetRevertError("Utilize exceeds idle", target=self.address, operation="utilize")
        await self._asset.transfer(self.address, self.strategy_address, assets)
        self._utilized += assets

    async def deutilize(self, assets: Decimal) -> None:
        """Return assets from the strategy and process pending requests."""
        if assets > self._utilized:
            raise TargetRevertError(
                "Deutilize exceeds utilized", target=self.address, operation="deutilize"
            )
        await self._asset.transfer(self.strategy_address, self.address, assets)
        self._utilized -= assets
        await self._process_pending()

    # ------------------------------------------------------------------
    # Asynchronous surface
    # ------------------------------------------------------------------

    def _require_async(self, operation: str) -> None:
        if not self.async_withdraw_enabled:
            raise TargetRevertError(
                "Asynchronous withdrawals disabled", target=self.address, operation=operation
            )

    async def max_request_withdraw(self, owner: str) -> Decimal:
        self._require_async("max_request_withdraw")
        return await self.preview_redeem(await self.balance_of(owner))

    async def max_request_redeem(self, owner: str) -> Decimal:
        self._require_async("max_request_redeem")
        return await self.balance_of(owner)

    async def request_withdraw(self, assets: Decimal, receiver: str, owner: str) -> ObligationKey:
        self._require_async("request_withdraw")
        if assets <= ZERO or assets > await self.max_request_withdraw(owner):
            raise TargetRevertError(
                "Request exceeds max", target=self.address, operation="request_withdraw"
            )
        shares = await self._shares_for_withdraw(assets, owner)
        self._burn(owner, shares)
        return await self._settle_request(assets, receiver, owner)

    async def request_redeem(self, shares: Decimal, receiver: str, owner: str) -> ObligationKey:
        self._require_async("request_redeem")
        if shares <= ZERO or shares > await self.balance_of(owner):
            raise TargetRevertError(
                "Request exceeds max", target=self.address, operation="request_redeem"
            )
        assets = await self.preview_redeem(shares)
        self._burn(owner, shares)
        return await self._settle_request(assets, receiver, owner)

    async def _settle_request(self, assets: Decimal, receiver: str, owner: str) -> ObligationKey:
        immediate = min(await self.idle_assets(), assets)
        if immediate > ZERO:
            await self._asset.transfer(self.address, receiver, immediate)

        remaining = assets - immediate
        if remaining == ZERO and not self.issue_key_on_immediate_settlement:
            return NO_OBLIGATION_KEY

        nonce = self._nonces.get(owner, 0)
        self._nonces[owner] = nonce + 1
        key = make_obligation_key(self.address, owner, nonce)

        self._accumulated_requested += remaining
        self._requests[key] = WithdrawRequest(
            key=key,
            owner=owner,
            receiver=receiver,
            requested_assets=remaining,
            accumulated_requested_assets=self._accumulated_requested,
        )
        self._logger.debug(
            "Withdraw request recorded",
            key=key,
            immediate=str(immediate),
            remaining=str(remaining),
        )
        return key

    async def is_claimable(self, key: ObligationKey) -> bool:
        self._require_async("is_claimable")
        request = self._requests.get(key)
        if request is None or request.is_claimed:
            return False
        return request.accumulated_requested_assets <= self._processed

    async def claim(self, key: ObligationKey) -> Decimal:
        """Pay a processed request to its receiver. Callable by anyone."""
        self._require_async("claim")
        if not await self.is_claimable(key):
            raise TargetRevertError("Request not claimable", target=self.address, operation="claim")
        request = self._requests[key]
        request.is_claimed = True
        self._claimed += request.requested_assets
        await self._asset.transfer(self.address, request.receiver, request.requested_assets)
        return request.requested_assets

    async def get_withdraw_request(self, key: ObligationKey) -> WithdrawRequest:
        self._require_async("get_withdraw_request")
        request = self._requests.get(key)
        if request is None:
            raise TargetRevertError(
                "Unknown withdraw key", target=self.address, operation="get_withdraw_request"
            )
        return request.model_copy()
