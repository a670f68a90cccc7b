"""Exit-cost priority ordering of targets."""

from collections.abc import Sequence
from decimal import Decimal

from metavault.allocation.adapter import TargetAdapter
from metavault.targets.interfaces import TargetVault


async def exit_costs(
    targets: Sequence[TargetVault], adapter: TargetAdapter
) -> list[tuple[TargetVault, Decimal]]:
    """Pair each target with its exit cost, querying every target once."""
    return [(target, await adapter.try_exit_cost(target)) for target in targets]


async def sort_by_exit_cost(
    targets: Sequence[TargetVault],
    adapter: TargetAdapter,
    descending: bool = False,
) -> list[TargetVault]:
    """
    Order targets by exit cost, cheapest first unless ``descending``.

    The sort is stable in both directions: targets with equal cost keep
    their input order. Targets without a cost capability rank as cost zero.
    """
    costed = await exit_costs(targets, adapter)
    # sorted(reverse=True) keeps ties in input order
    ordered = sorted(costed, key=lambda pair: pair[1], reverse=descending)
    return [target for target, _ in ordered]
