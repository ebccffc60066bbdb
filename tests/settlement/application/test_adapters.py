"""Tests for collaborator port factories and fake adapters."""

import asyncio
from decimal import Decimal

import pytest
from settlement.channel import (
    get_event_bus,
    get_receipt_sender,
    reset_event_bus,
    set_event_bus,
)
from settlement.channel.memory_adapter import FakeReceiptSender, InMemoryEventBus
from settlement.directory import get_directory, reset_directory, set_directory
from settlement.directory.fake_adapter import FakeCustomerDirectory
from settlement.giftcard import get_gift_card_ledger, reset_gift_card_ledger, set_gift_card_ledger
from settlement.giftcard.fake_adapter import FakeGiftCardLedger
from settlement.service import SettlementService, get_service, reset_service, set_service
from settlement.store import get_store, reset_store, set_store
from settlement.store.memory_adapter import InMemoryTransactionStore
from settlement.store.repository_adapter import RepositoryTransactionStore
from settlement.terminal import get_terminal, reset_terminal, set_terminal
from settlement.terminal.fake_adapter import FakeTerminal
from settlement.terminal.port import TerminalResult


class TestFactories:
    def test_defaults(self):
        assert isinstance(get_terminal(), FakeTerminal)
        assert isinstance(get_gift_card_ledger(), FakeGiftCardLedger)
        assert isinstance(get_directory(), FakeCustomerDirectory)
        assert isinstance(get_event_bus(), InMemoryEventBus)
        assert isinstance(get_receipt_sender(), FakeReceiptSender)
        assert isinstance(get_store(), RepositoryTransactionStore)

    def test_defaults_are_singletons(self):
        assert get_terminal() is get_terminal()
        assert get_store() is get_store()

    def test_set_and_reset_terminal(self):
        custom = FakeTerminal()
        set_terminal(custom)
        assert get_terminal() is custom
        reset_terminal()
        assert get_terminal() is not custom

    def test_set_and_reset_others(self):
        ledger, directory, bus, store = (
            FakeGiftCardLedger(),
            FakeCustomerDirectory(),
            InMemoryEventBus(),
            InMemoryTransactionStore(),
        )
        set_gift_card_ledger(ledger)
        set_directory(directory)
        set_event_bus(bus)
        set_store(store)
        assert get_gift_card_ledger() is ledger
        assert get_directory() is directory
        assert get_event_bus() is bus
        assert get_store() is store

        reset_gift_card_ledger()
        reset_directory()
        reset_event_bus()
        reset_store()
        assert get_store() is not store

    def test_service_resolves_collaborators_at_construction(self):
        custom = FakeTerminal()
        set_terminal(custom)
        set_store(InMemoryTransactionStore())
        service = get_service()
        assert service.terminal is custom
        assert service.dispatcher.terminal is custom
        assert service.refunds.terminal is custom
        assert service.voids.terminal is custom

        reset_terminal()
        assert get_service().terminal is custom

    def test_service_shares_one_lock_registry(self, service):
        assert service.ledger.locks is service.refunds.locks is service.voids.locks

    def test_set_and_reset_service(self, service):
        set_service(service)
        assert get_service() is service
        reset_service()
        assert isinstance(get_service(), SettlementService)
        assert get_service() is not service


class TestFakeTerminal:
    def test_default_capture_succeeds(self):
        result = asyncio.run(FakeTerminal().collect_payment(1000, {}))
        assert isinstance(result, TerminalResult)
        assert result.success is True
        assert result.status == "succeeded"

    def test_cancel_can_fail(self):
        terminal = FakeTerminal()
        terminal.configure(cancel_succeeds=False)
        with pytest.raises(ConnectionError):
            asyncio.run(terminal.cancel("pi_1"))

    def test_refund_can_fail(self):
        terminal = FakeTerminal()
        terminal.configure(refund_succeeds=False, failure_reason="Refund window closed")
        result = asyncio.run(terminal.refund("pi_1", 100))
        assert result.success is False
        assert result.failure_reason == "Refund window closed"


class TestFakeGiftCardLedger:
    def test_credit_restores_balance(self):
        ledger = FakeGiftCardLedger()
        ledger.issue("gc-7", 1000)
        asyncio.run(ledger.redeem("GC-7", 400))
        result = asyncio.run(ledger.credit("gc-7", 400))
        assert result.success
        assert ledger.balance_of("GC-7") == 1000

    def test_credit_unknown_card(self):
        assert asyncio.run(FakeGiftCardLedger().credit("nope", 1)).success is False


class TestFakeCustomerDirectory:
    def test_store_credit_accumulates(self):
        directory = FakeCustomerDirectory()
        directory.register("cust-9")
        asyncio.run(directory.add_store_credit("cust-9", Decimal("5.00")))
        asyncio.run(directory.add_store_credit("cust-9", Decimal("2.50")))
        assert directory.accounts["cust-9"].store_credit == Decimal("7.50")

    def test_fail_on_raises(self):
        directory = FakeCustomerDirectory()
        directory.fail_on.add("get_account")
        with pytest.raises(ConnectionError):
            asyncio.run(directory.get_account("cust-9"))


class TestEventBus:
    def test_subscribers_receive_payloads(self):
        bus = InMemoryEventBus()
        received = []
        bus.subscribe("payment.completed", received.append)
        bus.emit("payment.completed", {"amount": "1.00"})
        bus.emit("payment.failed", {"amount": "2.00"})
        assert received == [{"amount": "1.00"}]
        assert bus.names() == ["payment.completed", "payment.failed"]
