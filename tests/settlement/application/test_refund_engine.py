"""Tests for refunds through the refund engine."""

import asyncio
from decimal import Decimal

import pytest
from settlement.shared.errors import ErrorKind
from settlement.transaction.transaction import RefundMethod, TransactionStatus


def _paid(service, *payments, total="100.00", customer=None):
    txn = asyncio.run(
        service.open([{"name": "Lesson", "unit_price": total}], customer=customer, tax_rate=Decimal("0"))
    ).value
    for payment in payments:
        result = asyncio.run(service.add_payment(txn.id, payment))
        assert result.success
    return txn


def _refund(service, txn, amount, **options):
    return asyncio.run(service.create_refund(txn.id, amount, **options))


class TestScenarioC:
    def test_partial_then_ceiling(self, service, terminal):
        txn = _paid(service, {"method": "card", "amount": 100})

        first = _refund(service, txn, Decimal("30"), reason="Wrong size")
        assert first.success
        assert first.value.refunded_total == Decimal("30.00")
        assert first.value.status == TransactionStatus.PARTIALLY_REFUNDED.value
        refund_calls = [c for c in terminal.calls if c["method"] == "refund"]
        assert refund_calls[0]["amount_minor_units"] == 3000
        assert refund_calls[0]["intent_id"] == txn.payments[0].intent_id

        second = _refund(service, txn, Decimal("70.01"))
        assert second.kind == ErrorKind.VALIDATION_ERROR
        assert second.error.details["max_refundable"] == Decimal("70.00")
        assert txn.refunded_total == Decimal("30.00")

    def test_remaining_refund_fully_refunds(self, service, event_bus):
        txn = _paid(service, {"method": "card", "amount": 100})
        _refund(service, txn, "30")
        result = _refund(service, txn, "70")
        assert result.value.status == TransactionStatus.FULLY_REFUNDED.value
        assert len(event_bus.of("refund.completed")) == 2

        again = _refund(service, txn, "0.01")
        assert again.kind == ErrorKind.VALIDATION_ERROR
        assert again.error.details["max_refundable"] == Decimal("0.00")


class TestValidation:
    def test_unknown_transaction(self, service):
        result = asyncio.run(service.create_refund("missing", Decimal("1")))
        assert result.kind == ErrorKind.NOT_FOUND

    def test_pending_transaction(self, service):
        txn = asyncio.run(service.open([{"name": "Lesson", "unit_price": "10.00"}])).value
        result = _refund(service, txn, "1.00")
        assert result.kind == ErrorKind.INVALID_STATE
        assert result.error.details["status"] == TransactionStatus.PENDING.value

    def test_voided_transaction(self, service):
        txn = asyncio.run(service.open([{"name": "Lesson", "unit_price": "10.00"}])).value
        asyncio.run(service.void_transaction(txn.id, reason="Cancelled"))
        assert _refund(service, txn, "1.00").kind == ErrorKind.INVALID_STATE

    @pytest.mark.parametrize("amount", ["0", "-5", "100.01"])
    def test_amount_bounds(self, service, amount):
        txn = _paid(service, {"method": "cash", "amount": 100})
        result = _refund(service, txn, amount)
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.details["max_refundable"] == Decimal("100.00")

    def test_unknown_method(self, service):
        txn = _paid(service, {"method": "cash", "amount": 100})
        assert _refund(service, txn, "1", method="cheque").kind == ErrorKind.VALIDATION_ERROR

    def test_unknown_line_items(self, service):
        txn = _paid(service, {"method": "cash", "amount": 100})
        result = _refund(service, txn, "1", items=["no-such-line"])
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert "no-such-line" in result.error.message

    def test_known_line_items_recorded(self, service):
        txn = _paid(service, {"method": "cash", "amount": 100})
        line_id = str(txn.ordered_items[0].id)
        result = _refund(service, txn, "10", items=[line_id])
        assert result.success
        assert line_id in result.value.refund.items


class TestOriginalAllocation:
    def test_walks_payments_in_recorded_order(self, service, gift_cards):
        txn = _paid(
            service,
            {"method": "gift_card", "amount": 20, "gift_card_code": "GC-100"},
            {"method": "cash", "amount": 80},
        )
        result = _refund(service, txn, "50")

        allocations = result.value.refund.allocation_list
        assert [(a["method"], a["amount_cents"]) for a in allocations] == [("gift_card", 2000), ("cash", 3000)]
        assert allocations[1]["reference"] == "manual"
        assert gift_cards.balance_of("GC-100") == 10000

    def test_never_refunds_more_than_an_instrument_collected(self, service):
        txn = _paid(
            service,
            {"method": "gift_card", "amount": 20, "gift_card_code": "GC-100"},
            {"method": "cash", "amount": 80},
        )
        _refund(service, txn, "15")
        result = _refund(service, txn, "15")

        gift, cash = txn.ordered_payments
        assert gift.refunded_cents == 2000
        assert cash.refunded_cents == 1000
        assert [a["amount_cents"] for a in result.value.refund.allocation_list] == [500, 1000]

    def test_house_account_balance_is_reduced(self, service, directory):
        txn = _paid(service, {"method": "house_account", "amount": 100}, customer={"id": "cust-001"})
        assert directory.accounts["cust-001"].balance == Decimal("200.00")

        assert _refund(service, txn, "40").success
        assert directory.accounts["cust-001"].balance == Decimal("160.00")

    def test_failing_instrument_keeps_earlier_allocations(self, service, terminal, gift_cards):
        txn = _paid(
            service,
            {"method": "gift_card", "amount": 20, "gift_card_code": "GC-100"},
            {"method": "card", "amount": 80},
        )
        terminal.configure(refund_succeeds=False, failure_reason="Refund window closed")

        result = _refund(service, txn, "50")

        assert result.kind == ErrorKind.PAYMENT_ERROR
        assert result.error.message == "Refund window closed"
        assert result.error.details["refunded"] == Decimal("20.00")
        assert result.error.details["requested"] == Decimal("50.00")
        (refund,) = txn.refunds
        assert result.error.details["refund_id"] == str(refund.id)
        assert refund.amount == Decimal("20.00")
        assert refund.error == "Refund window closed"
        assert txn.refunded_total == Decimal("20.00")
        assert txn.status == TransactionStatus.PARTIALLY_REFUNDED.value
        assert gift_cards.balance_of("GC-100") == 10000

    def test_first_instrument_failing_books_nothing(self, service, terminal, event_bus):
        txn = _paid(service, {"method": "card", "amount": 100})
        terminal.configure(refund_succeeds=False)

        result = _refund(service, txn, "10")

        assert result.kind == ErrorKind.PAYMENT_ERROR
        assert result.error.details["refunded"] == Decimal("0.00")
        assert not txn.refunds
        assert txn.status == TransactionStatus.COMPLETED.value
        assert event_bus.of("refund.completed") == []


class TestOtherMethods:
    def test_store_credit(self, service, directory):
        txn = _paid(service, {"method": "cash", "amount": 100}, customer={"id": "cust-001"})
        result = _refund(service, txn, "25", method=RefundMethod.STORE_CREDIT.value, employee_id="emp-7")

        assert result.success
        assert directory.accounts["cust-001"].store_credit == Decimal("25.00")
        assert result.value.refund.processed_by == "emp-7"
        (record,) = directory.refunds["cust-001"]
        assert record.amount == Decimal("25.00")
        assert record.method == "store_credit"

    def test_store_credit_requires_customer(self, service):
        txn = _paid(service, {"method": "cash", "amount": 100})
        assert _refund(service, txn, "25", method="store_credit").kind == ErrorKind.VALIDATION_ERROR

    def test_cash_refund_is_manual(self, service, terminal):
        txn = _paid(service, {"method": "card", "amount": 100})
        result = _refund(service, txn, "25", method="cash")
        assert result.value.refund.allocation_list == [{"method": "cash", "amount_cents": 2500, "reference": "manual"}]
        assert [c for c in terminal.calls if c["method"] == "refund"] == []

    def test_directory_outage_does_not_undo_refund(self, service, directory):
        directory.fail_on.add("record_refund")
        txn = _paid(service, {"method": "cash", "amount": 100}, customer={"id": "cust-001"})
        result = _refund(service, txn, "10")
        assert result.success
        assert txn.refunded_total == Decimal("10.00")
