"""
Integration tests for curator operations, conservation and claim
reconciliation on a full MetaVault.
"""

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest

from metavault.allocation import AllocationLedger
from metavault.core.events import VaultEventType
from metavault.core.exceptions import (
    IneligibleTargetError,
    InsufficientIdleAssetsError,
    InvalidInputLengthError,
    VaultShutdownError,
)
from metavault.core.types import NO_OBLIGATION_KEY, is_obligation_key
from metavault.simulation import AsyncTargetVault

ALICE = "alice"
BOB = "bob"
TREASURY = "treasury"


async def accounted_assets(vault) -> Decimal:
    """Allocated + idle + outstanding obligations."""
    obligations = await vault.allocation_pending_and_claimable()
    return await vault.allocated_assets() + await vault.idle_assets() + obligations.total


class TestCuratorChecks:
    """Allocation checks run before any side effect."""

    @pytest.mark.asyncio
    async def test_ineligible_target(self, funded_vault, asset):
        rogue = AsyncTargetVault("rogue", asset)

        with pytest.raises(IneligibleTargetError):
            await funded_vault.allocate([funded_vault.registry.get("target-a"), rogue], [Decimal("1"), Decimal("1")])

        assert funded_vault.allocated_targets() == []
        assert await funded_vault.idle_assets() == Decimal("5000")

    @pytest.mark.asyncio
    async def test_allocation_beyond_idle(self, funded_vault, cheap_target, dear_target):
        with pytest.raises(InsufficientIdleAssetsError):
            await funded_vault.allocate([cheap_target, dear_target], [Decimal("3000"), Decimal("2001")])
        assert funded_vault.allocated_targets() == []

    @pytest.mark.asyncio
    async def test_length_mismatch(self, funded_vault, cheap_target):
        with pytest.raises(InvalidInputLengthError):
            await funded_vault.allocate([cheap_target], [Decimal("1"), Decimal("2")])
        with pytest.raises(InvalidInputLengthError):
            await funded_vault.withdraw_allocations([cheap_target], [])
        assert funded_vault.manager.ledger.revision == 0

    @pytest.mark.asyncio
    async def test_revoked_target_can_still_be_exited(self, funded_vault, sync_target):
        await funded_vault.allocate([sync_target], [Decimal("1000")])
        funded_vault.registry.revoke(sync_target)

        with pytest.raises(IneligibleTargetError):
            await funded_vault.allocate([sync_target], [Decimal("1")])

        keys = await funded_vault.redeem_allocations([sync_target], [Decimal("1000")])
        assert keys == [NO_OBLIGATION_KEY]
        assert funded_vault.allocated_targets() == []


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_blocks_inflows_only(self, funded_vault, sync_target, asset, recorder):
        await funded_vault.allocate([sync_target], [Decimal("2000")])
        await funded_vault.shutdown()
        await funded_vault.shutdown()

        asset.mint(BOB, Decimal("10"))
        with pytest.raises(VaultShutdownError):
            await funded_vault.deposit(Decimal("10"), BOB, BOB)
        with pytest.raises(VaultShutdownError):
            await funded_vault.allocate([sync_target], [Decimal("10")])

        assert await funded_vault.request_withdraw(Decimal("4000"), ALICE, ALICE) == NO_OBLIGATION_KEY
        await funded_vault.withdraw(Decimal("1000"), ALICE, ALICE)

        assert await asset.balance_of(ALICE) == Decimal("5000")
        assert funded_vault.is_shutdown
        assert len(recorder.of_type(VaultEventType.SHUTDOWN)) == 1


class TestConservation:
    """Accounted assets equal total assets across curator operations."""

    @pytest.mark.asyncio
    async def test_allocate_deallocate_claim_sequence(
        self, funded_vault, async_target, sync_target
    ):
        vault = funded_vault
        assert await accounted_assets(vault) == await vault.total_assets() == Decimal("5000")

        await vault.allocate([async_target, sync_target], [Decimal("2000"), Decimal("1000")])
        assert await accounted_assets(vault) == Decimal("5000")

        await async_target.utilize(Decimal("2000"))
        (key,) = await vault.withdraw_allocations([async_target], [Decimal("500")])
        assert is_obligation_key(key)
        assert await vault.allocated_assets() == Decimal("2500")
        assert await accounted_assets(vault) == await vault.total_assets() == Decimal("5000")

        await async_target.deutilize(Decimal("500"))
        assert (await vault.allocation_pending_and_claimable()).claimable == Decimal("500")
        assert await accounted_assets(vault) == Decimal("5000")

        await vault.claim_allocations()
        assert await vault.idle_assets() == Decimal("2500")
        assert await accounted_assets(vault) == await vault.total_assets() == Decimal("5000")

        await vault.redeem_allocations([sync_target], [Decimal("1000")])
        assert vault.allocated_targets() == [async_target]
        assert await vault.idle_assets() == Decimal("3500")
        assert await accounted_assets(vault) == await vault.total_assets() == Decimal("5000")

    @pytest.mark.asyncio
    async def test_pruning_is_stable(self, funded_vault, sync_target):
        await funded_vault.allocate([sync_target], [Decimal("1000")])
        await funded_vault.withdraw_allocations([sync_target], [Decimal("1000")])

        assert funded_vault.allocated_targets() == []
        assert funded_vault.allocated_targets() == []
        assert await funded_vault.allocated_assets_for(sync_target) == Decimal("0")


class TestExternalClaims:
    """Claims made directly against a target are reconciled, never double counted."""

    @pytest.mark.asyncio
    async def test_external_claim_to_vault(self, funded_vault, async_target, asset):
        vault = funded_vault
        await vault.allocate([async_target], [Decimal("2000")])
        await async_target.utilize(Decimal("2000"))
        (key,) = await vault.withdraw_allocations([async_target], [Decimal("800")])
        await async_target.deutilize(Decimal("800"))

        # anyone may claim; the target pays the receiver fixed at request time
        await async_target.claim(key)
        balance = await vault.asset_balance()
        assert balance == Decimal("3800")
        assert await accounted_assets(vault) == await vault.total_assets() == Decimal("5000")

        result = await vault.claim_allocations()

        assert result.claimed_assets == Decimal("0")
        assert [c.key for c in result.claimed_externally] == [key]
        assert await vault.asset_balance() == balance
        assert vault.claimable_targets() == []
        assert vault.withdraw_keys_for(async_target) == []
        assert await vault.total_assets() == Decimal("5000")

    @pytest.mark.asyncio
    async def test_external_claim_funds_user_request(self, funded_vault, async_target, asset):
        vault = funded_vault
        await vault.allocate([async_target], [Decimal("2000")])
        await async_target.utilize(Decimal("2000"))
        user_key = await vault.request_withdraw(Decimal("4000"), ALICE, ALICE)
        (target_key,) = vault.withdraw_keys_for(async_target)

        await async_target.deutilize(Decimal("1000"))
        await async_target.claim(target_key)
        result = await vault.claim_allocations()

        assert result.claimed_externally[0].key == target_key
        assert await vault.is_claimable(user_key)
        assert await vault.claim(user_key) == Decimal("1000")
        assert await asset.balance_of(ALICE) == Decimal("4000")

    @pytest.mark.asyncio
    async def test_obligation_for_other_receiver(self, manager, async_target, asset):
        """The manager accepts any receiver; the target pays that receiver, not the vault."""
        await manager.allocate(async_target, Decimal("1000"))
        await async_target.utilize(Decimal("1000"))
        key = await manager.withdraw_allocation(async_target, Decimal("600"), TREASURY)
        await async_target.deutilize(Decimal("600"))
        vault_balance = await asset.balance_of(manager.owner)

        await async_target.claim(key)
        result = await manager.claim_allocations()

        assert [c.key for c in result.claimed_externally] == [key]
        assert await asset.balance_of(TREASURY) == Decimal("600")
        assert await asset.balance_of(manager.owner) == vault_balance
        assert manager.claimable_targets() == []


class TestStateHandling:
    @pytest.mark.asyncio
    async def test_snapshot_restores_ledger(self, funded_vault, async_target, sync_target):
        await funded_vault.allocate([async_target, sync_target], [Decimal("1000"), Decimal("1000")])
        await async_target.utilize(Decimal("1000"))
        await funded_vault.withdraw_allocations([async_target], [Decimal("250")])

        snapshot = funded_vault.snapshot()
        restored = AllocationLedger.from_snapshot(snapshot, funded_vault.registry.get)

        assert restored.allocated_targets() == funded_vault.allocated_targets()
        assert restored.claimable_targets() == [async_target]
        assert restored.snapshot() == snapshot

    @pytest.mark.asyncio
    async def test_sweep_timing_logged_once(self, funded_vault, async_target):
        await funded_vault.allocate([async_target], [Decimal("1000")])
        await async_target.utilize(Decimal("1000"))
        await funded_vault.withdraw_allocations([async_target], [Decimal("100")])

        with patch("metavault.core.logging.get_logger") as mock_get_logger:
            await funded_vault.claim_allocations()

        completed = [
            c
            for c in mock_get_logger.return_value.debug.call_args_list
            if c.args == ("Async function execution completed",)
        ]
        assert len(completed) == 1
        assert completed[0].kwargs["function_name"] == "AllocationManager.claim_allocations"

    @pytest.mark.asyncio
    async def test_concurrent_operations_are_serialized(self, funded_vault, asset):
        asset.mint(BOB, Decimal("1000"))

        await asyncio.gather(
            funded_vault.deposit(Decimal("1000"), BOB, BOB),
            funded_vault.withdraw(Decimal("2000"), ALICE, ALICE),
            funded_vault.request_withdraw(Decimal("500"), ALICE, ALICE),
        )

        assert await asset.balance_of(ALICE) == Decimal("2500")
        assert await funded_vault.total_assets() == Decimal("3500")
        assert funded_vault.total_supply == Decimal("3500")
