"""
Unit tests for the allocation ledger.

These tests verify set bookkeeping, obligation pruning and snapshot
restoration.
"""

from decimal import Decimal

import pytest

from metavault.allocation.ledger import AllocationLedger, OrderedTargetSet
from metavault.core.exceptions import StateConsistencyError, ValidationError
from metavault.core.types import NO_OBLIGATION_KEY, LedgerSnapshot, make_obligation_key
from metavault.simulation import InMemoryAsset, SyncTargetVault


class TestOrderedTargetSet:
    def test_insertion_order_and_membership(self):
        items = OrderedTargetSet[str]()
        assert items.add("b", "B")
        assert items.add("a", "A")
        assert not items.add("b", "B2")

        assert items.values() == ["B", "A"]
        assert "a" in items
        assert len(items) == 2

    def test_remove(self):
        items = OrderedTargetSet[str]()
        items.add("a", "A")
        assert items.remove("a")
        assert not items.remove("a")
        assert items.values() == []


class TestAllocationLedger:
    """Test ledger bookkeeping."""

    @pytest.fixture
    def targets(self):
        asset = InMemoryAsset()
        return [SyncTargetVault(name, asset) for name in ("t1", "t2", "t3")]

    @pytest.fixture
    def ledger(self):
        return AllocationLedger()

    def test_allocated_targets_in_insertion_order(self, ledger, targets):
        t1, t2, t3 = targets
        ledger.add_allocated(t2)
        ledger.add_allocated(t1)
        ledger.add_allocated(t2)

        assert ledger.allocated_targets() == [t2, t1]
        assert ledger.is_allocated(t1)
        assert not ledger.is_allocated(t3)

    def test_obligation_lifecycle_prunes_target(self, ledger, targets):
        t1 = targets[0]
        k1 = make_obligation_key("t1", 1)
        k2 = make_obligation_key("t1", 2)

        ledger.add_obligation(t1, k1, Decimal("100"))
        ledger.add_obligation(t1, k2, Decimal("50"))
        assert ledger.claimable_targets() == [t1]
        assert ledger.withdraw_keys_for(t1) == [k1, k2]
        assert ledger.total_requested_assets() == Decimal("150")

        assert ledger.remove_obligation(t1, k1) == Decimal("100")
        assert ledger.claimable_targets() == [t1]

        assert ledger.remove_obligation(t1, k2) == Decimal("50")
        assert ledger.claimable_targets() == []
        assert ledger.withdraw_keys_for(t1) == []
        assert ledger.obligation_count() == 0

    def test_zero_pending_key_is_tracked_without_amount(self, ledger, targets):
        t1 = targets[0]
        key = make_obligation_key("t1", "settled")

        ledger.add_obligation(t1, key, Decimal("0"))

        assert ledger.withdraw_keys_for(t1) == [key]
        assert ledger.requested_assets(t1, key) == Decimal("0")
        assert ledger.snapshot().obligations["t1"][0].requested_assets == Decimal("0")

    def test_zero_key_rejected(self, ledger, targets):
        with pytest.raises(ValidationError):
            ledger.add_obligation(targets[0], NO_OBLIGATION_KEY, Decimal("1"))
        assert ledger.claimable_targets() == []

    def test_negative_pending_rejected(self, ledger, targets):
        with pytest.raises(ValidationError):
            ledger.add_obligation(targets[0], make_obligation_key("x"), Decimal("-1"))

    def test_duplicate_key_rejected(self, ledger, targets):
        key = make_obligation_key("dup")
        ledger.add_obligation(targets[0], key, Decimal("1"))
        with pytest.raises(StateConsistencyError):
            ledger.add_obligation(targets[0], key, Decimal("1"))

    def test_same_key_on_different_targets(self, ledger, targets):
        key = make_obligation_key("shared")
        ledger.add_obligation(targets[0], key, Decimal("1"))
        ledger.add_obligation(targets[1], key, Decimal("2"))

        assert ledger.requested_assets(targets[0], key) == Decimal("1")
        assert ledger.requested_assets(targets[1], key) == Decimal("2")

    def test_removing_unknown_key_is_noop(self, ledger, targets):
        revision = ledger.revision
        assert ledger.remove_obligation(targets[0], make_obligation_key("nope")) == Decimal("0")
        assert ledger.revision == revision

    def test_revision_counts_changes(self, ledger, targets):
        ledger.add_allocated(targets[0])
        ledger.add_allocated(targets[0])
        ledger.remove_allocated(targets[0])
        assert ledger.revision == 2


class TestLedgerSnapshot:
    """Snapshots restore an equivalent ledger."""

    @pytest.fixture
    def targets(self):
        asset = InMemoryAsset()
        return {name: SyncTargetVault(name, asset) for name in ("t1", "t2")}

    def test_round_trip(self, targets):
        ledger = AllocationLedger()
        ledger.add_allocated(targets["t2"])
        ledger.add_allocated(targets["t1"])
        key = make_obligation_key("t1", 0)
        ledger.add_obligation(targets["t1"], key, Decimal("12.5"))

        snapshot = ledger.snapshot()
        restored = AllocationLedger.from_snapshot(
            LedgerSnapshot.model_validate_json(snapshot.model_dump_json()), targets.__getitem__
        )

        assert restored.allocated_targets() == [targets["t2"], targets["t1"]]
        assert restored.claimable_targets() == [targets["t1"]]
        assert restored.requested_assets(targets["t1"], key) == Decimal("12.5")
        assert restored.snapshot() == snapshot

    def test_unsupported_schema_version(self, targets):
        snapshot = LedgerSnapshot(schema_version=99)
        with pytest.raises(StateConsistencyError):
            AllocationLedger.from_snapshot(snapshot, targets.__getitem__)

    def test_claimable_targets_must_match_obligations(self, targets):
        snapshot = LedgerSnapshot(claimable_targets=("t1",))
        with pytest.raises(StateConsistencyError):
            AllocationLedger.from_snapshot(snapshot, targets.__getitem__)
