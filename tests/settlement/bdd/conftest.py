"""Shared BDD fixtures and step definitions for the Settlement domain."""

import asyncio
from decimal import Decimal

import pytest
from pytest_bdd import given, parsers, then, when
from settlement.shared.errors import ErrorKind


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def outcome():
    """Container for the most recent service result."""
    return {"result": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a pending transaction for {quantity:d} x "{name}" at {price} with tax rate {rate}'),
    target_fixture="transaction",
)
def pending_cart(service, quantity, name, price, rate):
    result = asyncio.run(
        service.open([{"name": name, "unit_price": price, "quantity": quantity}], tax_rate=Decimal(rate))
    )
    return result.value


@given(parsers.cfparse("a pending transaction totalling {total}"), target_fixture="transaction")
def pending_transaction(service, total):
    result = asyncio.run(service.open([{"name": "Lesson", "unit_price": total}], tax_rate=Decimal("0")))
    return result.value


@given(parsers.cfparse("a transaction of {total} paid by card"), target_fixture="transaction")
def card_paid_transaction(service, total):
    txn = asyncio.run(service.open([{"name": "Lesson", "unit_price": total}], tax_rate=Decimal("0"))).value
    asyncio.run(service.add_payment(txn.id, {"method": "card", "amount": total}))
    return txn


@given("the card terminal declines")
def terminal_declines(terminal):
    terminal.configure(should_succeed=False, failure_reason="Card declined")


@given("the card terminal leaves captures in flight")
def terminal_leaves_pending(terminal):
    terminal.configure(leave_pending=True)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("a cash payment of {amount} is tendered with {tendered}"))
def cash_payment(service, transaction, outcome, amount, tendered):
    outcome["result"] = asyncio.run(
        service.add_payment(transaction.id, {"method": "cash", "amount": amount, "tendered": tendered})
    )


@when(parsers.cfparse("a card payment of {amount} is made"))
def card_payment(service, transaction, outcome, amount):
    outcome["result"] = asyncio.run(service.add_payment(transaction.id, {"method": "card", "amount": amount}))


@when(parsers.cfparse("a refund of {amount} to the original payment is requested"))
def refund_original(service, transaction, outcome, amount):
    outcome["result"] = asyncio.run(service.create_refund(transaction.id, amount, reason="Customer request"))


@when(parsers.cfparse('the transaction is voided because "{reason}"'))
def void_transaction(service, transaction, outcome, reason):
    outcome["result"] = asyncio.run(service.void_transaction(transaction.id, reason=reason, employee_id="emp-1"))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the request succeeds")
def request_succeeds(outcome):
    assert outcome["result"].success, outcome["result"].error


@then(parsers.cfparse("the request fails with {kind}"))
def request_fails(outcome, kind):
    assert outcome["result"].kind == ErrorKind(kind)


@then(parsers.cfparse('the error reports "{key}" of {amount}'))
def error_detail(outcome, key, amount):
    assert outcome["result"].error.details[key] == Decimal(amount)


@then(parsers.cfparse('the transaction status is "{status}"'))
def transaction_status(transaction, status):
    assert transaction.status == status


@then(parsers.cfparse("the remaining balance is {amount}"))
def remaining_balance(transaction, amount):
    assert transaction.remaining_balance == Decimal(amount)


@then(parsers.cfparse("the transaction has {count:d} payments"))
def payment_count(transaction, count):
    assert len(transaction.payments) == count


@then(parsers.cfparse("the refunded total is {amount}"))
def refunded_total(transaction, amount):
    assert transaction.refunded_total == Decimal(amount)
