"""
Decimal precision utilities for vault accounting.

All asset amounts, share amounts and cost rates are Decimal. Amounts are
kept on an asset quantum (the smallest transferable unit) and every
multiply-then-divide picks its rounding direction explicitly so that
rounding always favors the vault.
"""

from decimal import ROUND_CEILING, ROUND_FLOOR, Context, Decimal

from metavault.core.exceptions import ValidationError

# Common decimal constants
ZERO = Decimal("0")
ONE = Decimal("1")

# Basis point precision for cost rates (10_000 bps == 100%)
BASIS_POINTS = Decimal("10000")

# Default asset quantum (6 decimals, USDC/USDT style)
DEFAULT_ASSET_QUANTUM = Decimal("0.000001")

# Wide context for intermediate products so quantization is the only rounding step
_WIDE_PRECISION = 60


def to_decimal(value: str | int | Decimal) -> Decimal:
    """
    Convert a value to Decimal.

    Floats are rejected since they cannot represent asset amounts exactly.

    Raises:
        ValidationError: If value cannot be converted to Decimal
    """
    if value is None:
        raise ValidationError("Cannot convert None to Decimal")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValidationError("Floats are not accepted for amounts", field_value=value)

    try:
        return Decimal(str(value))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid Decimal conversion: {e}", field_value=value) from e


def quantize_down(value: Decimal, quantum: Decimal = DEFAULT_ASSET_QUANTUM) -> Decimal:
    """Round value toward negative infinity on the quantum."""
    return value.quantize(quantum, rounding=ROUND_FLOOR)


def quantize_up(value: Decimal, quantum: Decimal = DEFAULT_ASSET_QUANTUM) -> Decimal:
    """Round value toward positive infinity on the quantum."""
    return value.quantize(quantum, rounding=ROUND_CEILING)


def mul_div(
    x: Decimal,
    y: Decimal,
    denominator: Decimal,
    rounding: str = ROUND_FLOOR,
    quantum: Decimal = DEFAULT_ASSET_QUANTUM,
) -> Decimal:
    """
    Compute ``x * y / denominator`` rounded on the quantum.

    Args:
        x: First factor
        y: Second factor
        denominator: Divisor, must be positive
        rounding: ROUND_FLOOR or ROUND_CEILING
        quantum: Smallest representable unit of the result

    Returns:
        Quantized result

    Raises:
        ValidationError: If denominator is not positive
    """
    if denominator <= ZERO:
        raise ValidationError("mul_div denominator must be positive", field_value=denominator)

    ctx = Context(prec=_WIDE_PRECISION, rounding=rounding)
    product = ctx.multiply(x, y)
    return ctx.divide(product, denominator).quantize(quantum, rounding=rounding, context=ctx)


def saturating_sub(a: Decimal, b: Decimal) -> Decimal:
    """Return ``a - b`` floored at zero."""
    return a - b if a > b else ZERO
