"""Tests for opening transactions through the ledger."""

import asyncio
from decimal import Decimal

from settlement.config import SettlementConfig
from settlement.service import SettlementService
from settlement.shared.errors import ErrorKind
from settlement.transaction.transaction import TransactionStatus

RANGE_BUCKET = {"name": "Range Bucket (L)", "unit_price": "15.99", "quantity": 2}


class TestCreate:
    def test_creates_pending_transaction(self, service):
        result = service.create([RANGE_BUCKET])
        assert result.success
        txn = result.value
        assert txn.status == TransactionStatus.PENDING.value
        assert txn.total == Decimal("34.01")

    def test_nothing_is_persisted(self, service, store):
        service.create([RANGE_BUCKET])
        assert store.transactions == {}

    def test_emits_created_event(self, service, event_bus):
        txn = service.create([RANGE_BUCKET], customer={"id": "cust-001"}, register_id="pro-shop").value
        (payload,) = event_bus.of("transaction.created")
        assert payload["transaction_id"] == str(txn.id)
        assert payload["total"] == "34.01"
        assert payload["customer_id"] == "cust-001"
        assert payload["register_id"] == "pro-shop"

    def test_empty_cart_is_validation_error(self, service, event_bus):
        result = service.create([])
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert "at least one item" in result.error.message
        assert event_bus.events == []

    def test_zero_quantity_is_validation_error(self, service):
        result = service.create([{"name": "Tee", "unit_price": "1.00", "quantity": 0}])
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert "items" in result.error.details["errors"]

    def test_customer_without_id_is_validation_error(self, service):
        result = service.create([RANGE_BUCKET], customer={"name": "Nobody"})
        assert result.kind == ErrorKind.VALIDATION_ERROR

    def test_membership_discount_uses_customer_tier(self, service):
        result = service.create(
            [{"name": "Lesson", "unit_price": "100.00"}],
            customer={"id": "cust-001", "membership_tier": "eagle"},
            discount={"type": "membership"},
            tax_rate=Decimal("0"),
        )
        txn = result.value
        assert txn.pricing.discount_amount == Decimal("20.00")
        assert txn.total == Decimal("80.00")

    def test_origin_recorded(self, service):
        txn = service.create(
            [RANGE_BUCKET],
            employee_id="emp-7",
            employee_name="Sam",
            booking_id="tee-0800",
            notes="Walk-in",
        ).value
        assert txn.origin.employee_id == "emp-7"
        assert txn.origin.booking_id == "tee-0800"
        assert txn.origin.register_id == "main"

    def test_configured_tax_rate_applies(self, store, terminal, gift_cards, directory, event_bus, receipts):
        untaxed = SettlementService(
            store=store,
            terminal=terminal,
            gift_cards=gift_cards,
            directory=directory,
            event_bus=event_bus,
            receipts=receipts,
            config=SettlementConfig(tax_rate=Decimal("0")),
        )
        assert untaxed.create([RANGE_BUCKET]).value.total == Decimal("31.98")


class TestReads:
    def test_unknown_transaction_not_found(self, service):
        result = asyncio.run(service.get_transaction("missing"))
        assert result.kind == ErrorKind.NOT_FOUND

    def test_remaining_balance_from_held_handle(self, service):
        txn = service.create([RANGE_BUCKET]).value
        result = asyncio.run(service.get_remaining_balance(txn.id, current=txn))
        assert result.value == Decimal("34.01")
