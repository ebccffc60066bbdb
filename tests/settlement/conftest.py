from decimal import Decimal

import pytest
from protean.integrations.pytest import DomainFixture
from settlement.channel.memory_adapter import FakeReceiptSender, InMemoryEventBus
from settlement.config import SettlementConfig
from settlement.directory.fake_adapter import FakeCustomerDirectory
from settlement.giftcard.fake_adapter import FakeGiftCardLedger
from settlement.service import SettlementService
from settlement.store.memory_adapter import InMemoryTransactionStore
from settlement.store.repository_adapter import RepositoryTransactionStore
from settlement.terminal.fake_adapter import FakeTerminal


@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed):
    with settlement_bed.domain_context():
        yield


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def store():
    return InMemoryTransactionStore()


@pytest.fixture()
def terminal():
    return FakeTerminal()


@pytest.fixture()
def gift_cards():
    ledger = FakeGiftCardLedger()
    ledger.issue("GC-100", 10000)
    return ledger


@pytest.fixture()
def directory():
    customers = FakeCustomerDirectory()
    customers.register(
        "cust-001",
        balance=Decimal("100.00"),
        credit_limit=Decimal("500.00"),
        house_account_enabled=True,
    )
    return customers


@pytest.fixture()
def event_bus():
    return InMemoryEventBus()


@pytest.fixture()
def receipts():
    return FakeReceiptSender()


@pytest.fixture()
def config():
    return SettlementConfig()


@pytest.fixture()
def service(store, terminal, gift_cards, directory, event_bus, receipts, config):
    return SettlementService(
        store=store,
        terminal=terminal,
        gift_cards=gift_cards,
        directory=directory,
        event_bus=event_bus,
        receipts=receipts,
        config=config,
    )


@pytest.fixture()
def repository_service(terminal, gift_cards, directory, event_bus, receipts, config):
    """Service persisting through the Protean repository, so projectors run."""
    return SettlementService(
        store=RepositoryTransactionStore(),
        terminal=terminal,
        gift_cards=gift_cards,
        directory=directory,
        event_bus=event_bus,
        receipts=receipts,
        config=config,
    )
