"""
Entry/exit cost math.

Rates are expressed against ``precision`` (basis points by default). Both
functions round up on the asset quantum so that the vault, never the
counterparty, absorbs rounding.

    cost_on_raw(net, r)    = ceil(net * r / P)        cost to add to a net amount
    cost_on_total(gross, r) = ceil(gross * r / (r + P)) cost embedded in a gross amount

``cost_on_raw(total - cost_on_total(total, r), r) == cost_on_total(total, r)`` holds
for amounts well above the quantum. Both sides round up, so it can break at
dust sizes: one quantum at 100 bps embeds a full quantum of cost and leaves
a net of zero.
"""

from decimal import ROUND_CEILING, Decimal

from metavault.core.exceptions import ValidationError
from metavault.utils.decimal_utils import BASIS_POINTS, DEFAULT_ASSET_QUANTUM, ZERO, mul_div


def _check_rate(rate: Decimal) -> None:
    if rate < ZERO:
        raise ValidationError("Cost rate must not be negative", field_name="rate", field_value=rate)


def cost_on_raw(
    assets: Decimal,
    rate: Decimal,
    precision: Decimal = BASIS_POINTS,
    quantum: Decimal = DEFAULT_ASSET_QUANTUM,
) -> Decimal:
    """Cost to add to a net amount to obtain the gross amount."""
    _check_rate(rate)
    if assets <= ZERO or rate == ZERO:
        return ZERO
    return mul_div(assets, rate, precision, ROUND_CEILING, quantum)


def cost_on_total(
    assets: Decimal,
    rate: Decimal,
    precision: Decimal = BASIS_POINTS,
    quantum: Decimal = DEFAULT_ASSET_QUANTUM,
) -> Decimal:
    """Cost embedded in a gross amount."""
    _check_rate(rate)
    if assets <= ZERO or rate == ZERO:
        return ZERO
    return mul_div(assets, rate, rate + precision, ROUND_CEILING, quantum)
