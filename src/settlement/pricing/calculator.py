"""Pricing calculator: subtotal, discount, tax, tip and total.

Pure functions with no ledger state. Each line is rounded to the cent before
summing so a long cart cannot accumulate sub-cent drift, and every derived
amount (discount, tax, tip) goes through the same half-up rounding.

    subtotal  = sum(round(unit_price * quantity))
    taxable   = max(subtotal - discount, 0)
    tax       = round(taxable * tax_rate)        (0 when tax exempt)
    total     = taxable + tax + tip
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from protean.exceptions import ValidationError

from settlement.config import DEFAULT_TAX_RATE, MAX_TRANSACTION
from settlement.pricing.tiers import DEFAULT_TIER_RATES, tier_rate
from settlement.shared.money import from_cents, to_cents, to_decimal

HUNDRED = Decimal("100")


class DiscountType(Enum):
    PERCENT = "percent"
    FIXED = "fixed"
    MEMBERSHIP = "membership"


@dataclass(frozen=True)
class Discount:
    """Discount requested for a cart."""

    type: DiscountType
    value: Decimal = Decimal("0")
    tier: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Discount":
        raw_type = data.get("type")
        try:
            discount_type = DiscountType(raw_type)
        except ValueError:
            raise ValidationError({"discount": [f"Unknown discount type: {raw_type!r}"]}) from None

        value = data.get("value")
        return cls(
            type=discount_type,
            value=to_decimal(value, "discount") if value is not None else Decimal("0"),
            tier=data.get("tier") or data.get("membership_tier"),
        )


@dataclass(frozen=True)
class PricedLine:
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


@dataclass(frozen=True)
class PricingBreakdown:
    """Cents-exact pricing for a cart. All amounts carry two decimals."""

    lines: tuple[PricedLine, ...]
    subtotal: Decimal
    discount_amount: Decimal
    discount_info: dict | None
    taxable_amount: Decimal
    tax: Decimal
    tax_rate: Decimal
    tax_exempt: bool
    tip: Decimal
    tip_percent: int
    total: Decimal
    item_count: int = field(default=0)


def _item_value(item, *names):
    for name in names:
        if isinstance(item, Mapping):
            if item.get(name) is not None:
                return item[name]
        elif getattr(item, name, None) is not None:
            return getattr(item, name)
    return None


def price_line(item, position: int = 0) -> PricedLine:
    """Validate one cart item and compute its rounded line total."""
    name = _item_value(item, "name") or f"Item {position + 1}"

    raw_price = _item_value(item, "unit_price", "price")
    if raw_price is None:
        raise ValidationError({"items": [f"Item {name!r} has no price"]})
    unit_price = to_decimal(raw_price, "unit_price")
    if unit_price < 0:
        raise ValidationError({"items": [f"Item {name!r} has a negative price"]})

    raw_quantity = _item_value(item, "quantity", "qty")
    quantity = 1 if raw_quantity is None else raw_quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({"items": [f"Item {name!r} must have a positive whole quantity"]})

    line_total = from_cents(to_cents(unit_price * quantity))
    return PricedLine(
        name=str(name),
        unit_price=from_cents(to_cents(unit_price)),
        quantity=quantity,
        line_total=line_total,
    )


def calculate_discount(
    subtotal: Decimal,
    discount: Discount | Mapping | None,
    tier_rates: Mapping[str, Decimal] | None = None,
) -> tuple[Decimal, dict | None]:
    """Return ``(discount_amount, discount_info)`` for ``subtotal``."""
    if discount is None:
        return Decimal("0.00"), None
    if isinstance(discount, Mapping):
        discount = Discount.from_dict(discount)

    if discount.type == DiscountType.PERCENT:
        percent = min(max(discount.value, Decimal("0")), HUNDRED)
        amount = subtotal * percent / HUNDRED
        info = {"type": discount.type.value, "value": str(percent)}
    elif discount.type == DiscountType.FIXED:
        if discount.value < 0:
            raise ValidationError({"discount": ["Fixed discount cannot be negative"]})
        amount = min(discount.value, subtotal)
        info = {"type": discount.type.value, "value": str(discount.value)}
    else:
        rate = tier_rate(discount.tier, tier_rates)
        amount = subtotal * rate
        info = {"type": discount.type.value, "tier": discount.tier, "rate": str(rate)}

    return from_cents(to_cents(amount)), info


def calculate_tax(taxable_amount: Decimal, tax_rate: Decimal, tax_exempt: bool = False) -> Decimal:
    if tax_exempt:
        return Decimal("0.00")
    return from_cents(to_cents(taxable_amount * tax_rate))


def calculate_tip(subtotal: Decimal, tip=None, tip_percent=None) -> tuple[Decimal, int]:
    """Resolve a flat tip or a percentage-of-subtotal tip.

    Returns ``(tip_amount, tip_percent)``; the percent is recomputed from the
    rounded amount so a flat tip also reports its share of the subtotal.
    """
    if tip is not None and tip_percent is not None:
        raise ValidationError({"tip": ["Provide either a tip amount or a tip percent, not both"]})

    if tip_percent is not None:
        percent = to_decimal(tip_percent, "tip_percent")
        if percent < 0:
            raise ValidationError({"tip_percent": ["Tip percent cannot be negative"]})
        amount = from_cents(to_cents(subtotal * percent / HUNDRED))
    elif tip is not None:
        amount = from_cents(to_cents(tip, "tip"))
        if amount < 0:
            raise ValidationError({"tip": ["Tip cannot be negative"]})
    else:
        return Decimal("0.00"), 0

    if amount > subtotal:
        raise ValidationError({"tip": ["Tip cannot exceed 100% of the subtotal"]})

    if subtotal == 0:
        return amount, 0
    percent_of_subtotal = (amount / subtotal * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return amount, int(percent_of_subtotal)


def calculate_pricing(
    items: Iterable,
    discount: Discount | Mapping | None = None,
    tax_rate=DEFAULT_TAX_RATE,
    tip=None,
    tip_percent=None,
    tax_exempt: bool = False,
    tier_rates: Mapping[str, Decimal] | None = None,
    max_total=MAX_TRANSACTION,
) -> PricingBreakdown:
    """Price a cart.

    Raises ``ValidationError`` for an empty cart, non-positive quantities,
    negative prices, an out-of-range tax rate, an oversized tip, or a total
    above ``max_total``.
    """
    items = list(items or [])
    if not items:
        raise ValidationError({"items": ["Transaction must have at least one item"]})

    rate = to_decimal(tax_rate, "tax_rate")
    if rate < 0 or rate > 1:
        raise ValidationError({"tax_rate": ["Tax rate must be between 0 and 1"]})

    lines = tuple(price_line(item, position) for position, item in enumerate(items))
    subtotal = from_cents(sum(to_cents(line.line_total) for line in lines))

    discount_amount, discount_info = calculate_discount(
        subtotal, discount, DEFAULT_TIER_RATES if tier_rates is None else tier_rates
    )
    taxable_amount = max(subtotal - discount_amount, Decimal("0.00"))
    tax = calculate_tax(taxable_amount, rate, tax_exempt)
    tip_amount, tip_pct = calculate_tip(subtotal, tip, tip_percent)

    total = from_cents(to_cents(taxable_amount) + to_cents(tax) + to_cents(tip_amount))
    if max_total is not None and total > to_decimal(max_total, "max_total"):
        raise ValidationError({"total": [f"Transaction total {total} exceeds the maximum of {max_total}"]})

    return PricingBreakdown(
        lines=lines,
        subtotal=subtotal,
        discount_amount=discount_amount,
        discount_info=discount_info,
        taxable_amount=taxable_amount,
        tax=tax,
        tax_rate=rate,
        tax_exempt=tax_exempt,
        tip=tip_amount,
        tip_percent=tip_pct,
        total=total,
        item_count=sum(line.quantity for line in lines),
    )
