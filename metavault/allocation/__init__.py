"""
Allocation engine.

Tracks capital deployed into targets and the withdrawal obligations those
targets owe back, over a mix of synchronously and asynchronously settling
targets.
"""

from .adapter import TargetAdapter
from .costs import cost_on_raw, cost_on_total
from .ledger import AllocationLedger, OrderedTargetSet
from .manager import AllocationManager, validate_batch
from .sorting import exit_costs, sort_by_exit_cost

__all__ = [
    "AllocationLedger",
    "AllocationManager",
    "OrderedTargetSet",
    "TargetAdapter",
    "cost_on_raw",
    "cost_on_total",
    "exit_costs",
    "sort_by_exit_cost",
    "validate_batch",
]
