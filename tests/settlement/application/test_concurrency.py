"""Tests for per-transaction serialization of payments, refunds and voids."""

import asyncio
from decimal import Decimal

from settlement.service import SettlementService
from settlement.shared.errors import ErrorKind
from settlement.store.memory_adapter import InMemoryTransactionStore
from settlement.terminal.fake_adapter import FakeTerminal
from settlement.transaction.access import TransactionLocks
from settlement.transaction.transaction import TransactionStatus
from settlement.transaction.voiding import VoidHandler


class CountingTerminal(FakeTerminal):
    """Tracks how many captures are in flight at once."""

    def __init__(self) -> None:
        super().__init__()
        self.active = 0
        self.peak = 0

    async def collect_payment(self, amount_minor_units, metadata):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            return await super().collect_payment(amount_minor_units, metadata)
        finally:
            self.active -= 1


def _open(service, total="100.00"):
    return asyncio.run(service.open([{"name": "Lesson", "unit_price": total}], tax_rate=Decimal("0"))).value


class TestSameTransaction:
    def test_second_overshooting_payment_fails(self, service, terminal):
        terminal.configure(delay=0.02)
        txn = _open(service)

        async def race():
            return await asyncio.gather(
                service.add_payment(txn.id, {"method": "card", "amount": 60}),
                service.add_payment(txn.id, {"method": "card", "amount": 60}),
            )

        first, second = asyncio.run(race())

        assert first.success
        assert second.kind == ErrorKind.VALIDATION_ERROR
        assert second.error.details["remaining"] == Decimal("40.00")
        assert txn.paid_cents == 6000
        assert len([c for c in terminal.calls if c["method"] == "collect_payment"]) == 1

    def test_concurrent_split_completes_once(self, service, terminal, event_bus):
        terminal.configure(delay=0.01)
        txn = _open(service)

        async def race():
            return await asyncio.gather(
                service.add_payment(txn.id, {"method": "card", "amount": 50}),
                service.add_payment(txn.id, {"method": "card", "amount": 50}),
            )

        results = asyncio.run(race())

        assert all(r.success for r in results)
        assert sum(r.value.completed for r in results) == 1
        assert len(event_bus.of("transaction.completed")) == 1

    def test_void_waits_for_in_flight_payment(self, service, terminal):
        terminal.configure(delay=0.02)
        txn = _open(service)

        async def race():
            payment = asyncio.ensure_future(service.add_payment(txn.id, {"method": "card", "amount": 100}))
            await asyncio.sleep(0.005)
            void = await service.void_transaction(txn.id, reason="Changed mind")
            return await payment, void

        payment, void = asyncio.run(race())

        assert payment.value.completed is True
        assert void.kind == ErrorKind.INVALID_STATE
        assert txn.status == TransactionStatus.COMPLETED.value
        assert len(txn.completed_payments) == 1

    def test_refund_and_void_share_the_ledger_lock(self, service):
        assert service.ledger.locks is service.locks
        assert service.refunds.locks is service.locks
        assert service.voids.locks is service.locks


class TestDifferentTransactions:
    def test_captures_overlap(self, store, gift_cards, directory, event_bus, receipts, config):
        terminal = CountingTerminal()
        terminal.configure(delay=0.02)
        service = SettlementService(
            store=store,
            terminal=terminal,
            gift_cards=gift_cards,
            directory=directory,
            event_bus=event_bus,
            receipts=receipts,
            config=config,
        )
        first, second = _open(service), _open(service)

        async def both():
            return await asyncio.gather(
                service.add_payment(first.id, {"method": "card", "amount": 100}),
                service.add_payment(second.id, {"method": "card", "amount": 100}),
            )

        results = asyncio.run(both())

        assert all(r.success for r in results)
        assert terminal.peak == 2


class TestTransactionLocks:
    def test_same_id_is_serialized(self):
        locks = TransactionLocks()
        order = []

        async def worker(name):
            async with locks.hold("a"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.001)
                order.append(f"{name}-out")

        async def both():
            await asyncio.gather(worker("one"), worker("two"))

        asyncio.run(both())

        assert order == ["one-in", "one-out", "two-in", "two-out"]

    def test_registry_holds_only_ids_in_use(self):
        locks = TransactionLocks()

        async def nested():
            async with locks.hold("a"):
                async with locks.hold("b"):
                    assert len(locks) == 2

        asyncio.run(nested())

        assert len(locks) == 0

    def test_registry_empties_after_settled_transactions(self, service):
        for _ in range(3):
            txn = _open(service)
            asyncio.run(service.add_payment(txn.id, {"method": "cash", "amount": 100}))
            asyncio.run(service.create_refund(txn.id, 10, reason="Rain delay"))
        voided = _open(service)
        asyncio.run(service.void_transaction(voided.id, reason="Walked out"))

        assert len(service.locks) == 0

    def test_empty_registry_is_still_shared(self):
        locks = TransactionLocks()
        assert len(locks) == 0
        service = SettlementService(store=InMemoryTransactionStore(), terminal=FakeTerminal())
        assert service.ledger.locks is service.locks
        assert VoidHandler(store=InMemoryTransactionStore(), locks=locks).locks is locks
