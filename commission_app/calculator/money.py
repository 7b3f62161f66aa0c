# ==============================================================================
# commission_app/calculator/money.py
# ------------------------------------------------------------------------------
# Exact decimal arithmetic for currency. Line items are summed unrounded and
# rounding to cents happens once, when an amount is persisted.
# ==============================================================================

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal('0')
CENTS = Decimal('0.01')
HUNDRED = Decimal('100')


def to_decimal(value):
    """Converts ints, floats, strings and Decimals to a finite Decimal (0 otherwise)."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        return Decimal(value)
    else:
        # floats go through str() so 0.1 stays 0.1 and not its binary expansion
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    return result if result.is_finite() else ZERO


def quantize_money(value):
    """Rounds to cents, half-up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def percent_of(amount, percent):
    """`amount * percent / 100` without intermediate rounding."""
    return to_decimal(amount) * to_decimal(percent) / HUNDRED

