"""Membership tier discount rates.

Rates are fractions of the subtotal. Family tiers mirror the individual
tiers. A tier that is not listed earns no discount.
"""

from decimal import Decimal

DEFAULT_TIER_RATES = {
    "par": Decimal("0.10"),
    "birdie": Decimal("0.15"),
    "eagle": Decimal("0.20"),
    "family_par": Decimal("0.10"),
    "family_birdie": Decimal("0.15"),
    "family_eagle": Decimal("0.20"),
}


def tier_rate(tier: str | None, rates: dict | None = None) -> Decimal:
    """Return the discount rate for ``tier``, or zero when it is unknown."""
    if not tier:
        return Decimal("0")
    table = DEFAULT_TIER_RATES if rates is None else rates
    return Decimal(str(table.get(tier.strip().lower(), 0)))
