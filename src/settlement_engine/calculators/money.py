"""Fixed-point money helpers.

Money crosses every persistence boundary as integer cents. Derived values
are computed in Decimal and rounded half-up exactly once, when converted.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENTS_PER_DOLLAR = 100
OUTPUT_PRECISION = Decimal("0.01")
RATE_PRECISION = Decimal("0.0001")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric value to Decimal; ``None`` becomes zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal | int | float | str | None) -> int:
    """Convert a dollar amount to integer cents, rounding half-up."""
    dollars = to_decimal(amount)
    return int((dollars * CENTS_PER_DOLLAR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_cents(cents: Decimal) -> int:
    """Round a fractional cent amount to whole cents, half-up."""
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int) -> Decimal:
    """Exact dollar value of an integer cent amount."""
    return (Decimal(cents) / CENTS_PER_DOLLAR).quantize(OUTPUT_PRECISION)


def format_fixed(value: Decimal | int | float | None, places: int = 2) -> str:
    """Fixed-point string with ``places`` decimals, half-up."""
    exponent = Decimal(1).scaleb(-places)
    return str(to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP))
