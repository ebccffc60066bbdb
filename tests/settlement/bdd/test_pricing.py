"""BDD tests for cart pricing."""

from decimal import Decimal

from pytest_bdd import given, parsers, scenarios, then, when
from settlement.pricing.calculator import calculate_pricing

scenarios("features/pricing.feature")


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a cart of {quantity:d} x "{name}" at {price}'), target_fixture="cart")
def cart(quantity, name, price):
    return [{"name": name, "unit_price": price, "quantity": quantity}]


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse('the cart is priced for a "{tier}" member with tax rate {rate}'),
    target_fixture="breakdown",
)
def price_for_member(cart, tier, rate):
    return calculate_pricing(cart, discount={"type": "membership", "tier": tier}, tax_rate=Decimal(rate))


@when(
    parsers.cfparse("the cart is priced with a {percent:d} percent tip and tax rate {rate}"),
    target_fixture="breakdown",
)
def price_with_tip(cart, percent, rate):
    return calculate_pricing(cart, tip_percent=percent, tax_rate=Decimal(rate))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the subtotal is {amount}"))
def subtotal_is(transaction, amount):
    assert transaction.pricing.subtotal == Decimal(amount)


@then(parsers.cfparse("the tax is {amount}"))
def tax_is(transaction, amount):
    assert transaction.pricing.tax == Decimal(amount)


@then(parsers.cfparse("the priced discount is {amount}"))
def priced_discount(breakdown, amount):
    assert breakdown.discount_amount == Decimal(amount)


@then(parsers.cfparse("the priced total is {amount}"))
def priced_total(breakdown, amount):
    assert breakdown.total == Decimal(amount)
