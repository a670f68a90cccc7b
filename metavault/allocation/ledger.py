"""
Allocation ledger.

Per-vault record of which targets hold capital and which targets owe the
vault outstanding withdrawal obligations. The ledger is an explicit state
object owned by the MetaVault and handed to the ``AllocationManager``,
which is its only writer.
"""

from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Generic, TypeVar

from metavault.core.exceptions import StateConsistencyError, ValidationError
from metavault.core.types import (
    LEDGER_SCHEMA_VERSION,
    LedgerSnapshot,
    ObligationEntry,
    ObligationKey,
    is_obligation_key,
)
from metavault.targets.interfaces import TargetVault
from metavault.utils.decimal_utils import ZERO

T = TypeVar("T")


class OrderedTargetSet(Generic[T]):
    """Insertion-ordered set of targets keyed by address.

    Membership, insertion and removal are O(1); ``values()`` enumerates in
    insertion order.
    """

    def __init__(self) -> None:
        self._items: dict[str, T] = {}

    def add(self, address: str, item: T) -> bool:
        if address in self._items:
            return False
        self._items[address] = item
        return True

    def remove(self, address: str) -> bool:
        return self._items.pop(address, None) is not None

    def get(self, address: str) -> T | None:
        return self._items.get(address)

    def values(self) -> list[T]:
        return list(self._items.values())

    def keys(self) -> list[str]:
        return list(self._items)

    def __contains__(self, address: object) -> bool:
        return address in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))


class AllocationLedger:
    """
    Allocation state of one MetaVault.

    - allocated targets: targets where the vault holds shares
    - claimable targets: targets with at least one outstanding key
    - withdraw keys by target: outstanding obligation keys per target
    - requested assets by key: unsettled amount recorded at request time

    A target is claimable exactly when its key set is non-empty; removing
    the last key removes the target from the claimable set.
    """

    schema_version = LEDGER_SCHEMA_VERSION

    def __init__(self) -> None:
        self._allocated = OrderedTargetSet[TargetVault]()
        self._claimable = OrderedTargetSet[TargetVault]()
        self._withdraw_keys: dict[str, dict[ObligationKey, None]] = {}
        self._requested_assets: dict[tuple[str, ObligationKey], Decimal] = {}
        self.revision = 0

    # ------------------------------------------------------------------
    # Allocated targets
    # ------------------------------------------------------------------

    def add_allocated(self, target: TargetVault) -> bool:
        added = self._allocated.add(target.address, target)
        self._touch(added)
        return added

    def remove_allocated(self, target: TargetVault) -> bool:
        removed = self._allocated.remove(target.address)
        self._touch(removed)
        return removed

    def is_allocated(self, target: TargetVault) -> bool:
        return target.address in self._allocated

    def allocated_targets(self) -> list[TargetVault]:
        return self._allocated.values()

    # ------------------------------------------------------------------
    # Obligations
    # ------------------------------------------------------------------

    def add_obligation(self, target: TargetVault, key: ObligationKey, pending: Decimal) -> None:
        """Record an outstanding key; ``pending`` is stored only when positive."""
        if not is_obligation_key(key):
            raise ValidationError("The zero key never denotes an obligation", field_value=key)
        if pending < ZERO:
            raise ValidationError("Pending amount must not be negative", field_value=pending)

        keys = self._withdraw_keys.setdefault(target.address, {})
        if key in keys:
            raise StateConsistencyError(
                "Obligation key already tracked for target",
                state_component="withdraw_keys",
                target=target.address,
                key=key,
            )

        self._claimable.add(target.address, target)
        keys[key] = None
        if pending > ZERO:
            self._requested_assets[(target.address, key)] = pending
        self._touch(True)

    def remove_obligation(self, target: TargetVault, key: ObligationKey) -> Decimal:
        """Drop a key and its requested amount; prune the target when it has no keys left.

        Returns:
            The requested amount that was recorded for the key
        """
        keys = self._withdraw_keys.get(target.address)
        if keys is None or key not in keys:
            return ZERO

        del keys[key]
        requested = self._requested_assets.pop((target.address, key), ZERO)
        if not keys:
            del self._withdraw_keys[target.address]
            self._claimable.remove(target.address)
        self._touch(True)
        return requested

    def claimable_targets(self) -> list[TargetVault]:
        return self._claimable.values()

    def withdraw_keys_for(self, target: TargetVault) -> list[ObligationKey]:
        return list(self._withdraw_keys.get(target.address, {}))

    def requested_assets(self, target: TargetVault, key: ObligationKey) -> Decimal:
        return self._requested_assets.get((target.address, key), ZERO)

    def total_requested_assets(self) -> Decimal:
        return sum(self._requested_assets.values(), ZERO)

    def obligation_count(self) -> int:
        return sum(len(keys) for keys in self._withdraw_keys.values())

    def _touch(self, changed: bool) -> None:
        if changed:
            self.revision += 1

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Serializable copy of the current state."""
        return LedgerSnapshot(
            schema_version=self.schema_version,
            allocated_targets=tuple(self._allocated.keys()),
            claimable_targets=tuple(self._claimable.keys()),
            obligations={
                address: tuple(
                    ObligationEntry(
                        key=key, requested_assets=self._requested_assets.get((address, key), ZERO)
                    )
                    for key in keys
                )
                for address, keys in self._withdraw_keys.items()
            },
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        resolve_target: Callable[[str], TargetVault],
    ) -> "AllocationLedger":
        """Rebuild a ledger, resolving target addresses to target objects."""
        if snapshot.schema_version != LEDGER_SCHEMA_VERSION:
            raise StateConsistencyError(
                f"Unsupported ledger schema version {snapshot.schema_version}",
                state_component="snapshot",
            )
        if set(snapshot.claimable_targets) != set(snapshot.obligations):
            raise StateConsistencyError(
                "Claimable targets do not match obligation owners",
                state_component="snapshot",
            )

        ledger = cls()
        for address in snapshot.allocated_targets:
            ledger.add_allocated(resolve_target(address))
        for address in snapshot.claimable_targets:
            target = resolve_target(address)
            for entry in snapshot.obligations[address]:
                ledger.add_obligation(target, entry.key, entry.requested_assets)
        return ledger
