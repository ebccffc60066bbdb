"""Money helpers: integer minor units inside, two-decimal values outside.

Every amount the ledger stores or compares passes through ``to_cents``.
Using one rounding function everywhere keeps payments, refunds and totals
from drifting apart by a cent.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from protean.exceptions import ValidationError

CENT = Decimal("0.01")

# Tolerance for rounding when comparing tendered amounts against balances
ROUNDING_TOLERANCE_CENTS = 1


def to_decimal(value, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError({field: [f"Invalid {field}: {value!r}"]})
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError({field: [f"Invalid {field}: {value!r}"]}) from None

    if not result.is_finite():
        raise ValidationError({field: [f"Invalid {field}: {value!r}"]})
    return result


def round_money(value, field: str = "amount") -> Decimal:
    """Round half-up to the cent."""
    return to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value, field: str = "amount") -> int:
    """Convert a currency value to integer minor units (round half-up)."""
    return int(round_money(value, field) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer minor units back to a two-decimal value."""
    return (Decimal(cents) / 100).quantize(CENT)


def format_money(cents: int, symbol: str = "$") -> str:
    """Render minor units for log lines and error messages."""
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{from_cents(abs(cents)):,.2f}"
