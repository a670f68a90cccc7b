"""
Unit tests for the in-memory asset and target vaults.

The integration scenarios rely on these behaving like real share vaults,
so their settlement rules are pinned down here.
"""

from decimal import Decimal

import pytest

from metavault.core.exceptions import InsufficientBalanceError, TargetRevertError, ValidationError
from metavault.core.types import NO_OBLIGATION_KEY
from metavault.simulation import AsyncTargetVault, InMemoryAsset, SyncTargetVault

USER = "user"


class TestInMemoryAsset:
    @pytest.mark.asyncio
    async def test_mint_and_transfer(self):
        asset = InMemoryAsset()
        asset.mint(USER, Decimal("10"))

        await asset.transfer(USER, "other", Decimal("4"))

        assert await asset.balance_of(USER) == Decimal("6")
        assert await asset.balance_of("other") == Decimal("4")
        assert asset.total_supply == Decimal("10")

    @pytest.mark.asyncio
    async def test_transfer_guards(self):
        asset = InMemoryAsset()
        with pytest.raises(InsufficientBalanceError):
            await asset.transfer(USER, "other", Decimal("1"))
        with pytest.raises(ValidationError):
            await asset.transfer(USER, "other", Decimal("-1"))


class TestSyncTargetVault:
    @pytest.fixture
    def asset(self):
        asset = InMemoryAsset()
        asset.mint(USER, Decimal("1000"))
        return asset

    @pytest.mark.asyncio
    async def test_shares_track_yield(self, asset):
        target = SyncTargetVault("s", asset)
        await target.deposit(Decimal("1000"), USER, USER)
        asset.mint("s", Decimal("100"))

        assert await target.convert_to_assets(Decimal("1000")) == Decimal("1100")
        assert await target.max_withdraw(USER) == Decimal("1100")

    @pytest.mark.asyncio
    async def test_redeem_beyond_balance_reverts(self, asset):
        target = SyncTargetVault("s", asset)
        await target.deposit(Decimal("100"), USER, USER)
        with pytest.raises(TargetRevertError):
            await target.redeem(Decimal("101"), USER, USER)


class TestAsyncTargetVault:
    @pytest.fixture
    def asset(self):
        asset = InMemoryAsset()
        asset.mint(USER, Decimal("1000"))
        return asset

    @pytest.mark.asyncio
    async def test_entry_cost_reduces_shares(self, asset):
        target = AsyncTargetVault("a", asset, entry_cost_bps=Decimal("100"))

        shares = await target.deposit(Decimal("1000"), USER, USER)

        assert shares == Decimal("990.099009")

    @pytest.mark.asyncio
    async def test_request_settles_idle_first(self, asset):
        target = AsyncTargetVault("a", asset)
        await target.deposit(Decimal("1000"), USER, USER)
        await target.utilize(Decimal("600"))

        key = await target.request_withdraw(Decimal("500"), "receiver", USER)

        assert await asset.balance_of("receiver") == Decimal("400")
        request = await target.get_withdraw_request(key)
        assert request.requested_assets == Decimal("100")
        assert request.receiver == "receiver"
        assert not await target.is_claimable(key)

        await target.deutilize(Decimal("100"))
        assert await target.is_claimable(key)
        assert await target.claim(key) == Decimal("100")
        assert await asset.balance_of("receiver") == Decimal("500")
        assert (await target.get_withdraw_request(key)).is_claimed

    @pytest.mark.asyncio
    async def test_fully_idle_request_has_no_key(self, asset):
        target = AsyncTargetVault("a", asset)
        await target.deposit(Decimal("1000"), USER, USER)

        assert await target.request_withdraw(Decimal("200"), USER, USER) == NO_OBLIGATION_KEY

    @pytest.mark.asyncio
    async def test_double_claim_reverts(self, asset):
        target = AsyncTargetVault("a", asset)
        await target.deposit(Decimal("1000"), USER, USER)
        await target.utilize(Decimal("1000"))
        key = await target.request_withdraw(Decimal("10"), USER, USER)
        await target.deutilize(Decimal("10"))
        await target.claim(key)

        with pytest.raises(TargetRevertError):
            await target.claim(key)

    @pytest.mark.asyncio
    async def test_disabled_async_surface_reverts(self, asset):
        target = AsyncTargetVault("a", asset)
        target.async_withdraw_enabled = False
        with pytest.raises(TargetRevertError):
            await target.max_request_withdraw(USER)

    @pytest.mark.asyncio
    async def test_unknown_key(self, asset):
        target = AsyncTargetVault("a", asset)
        with pytest.raises(TargetRevertError):
            await target.get_withdraw_request("0x" + "11" * 32)
