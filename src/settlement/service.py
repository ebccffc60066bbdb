"""Settlement service: one entry point wired with shared collaborators.

The ledger, refund engine and void handler share a store, an event bus and
one ``TransactionLocks`` so that payments, refunds and voids on the same
transaction are serialized with each other. Collaborators are resolved once,
at construction, from the port factories unless passed in explicitly.
"""

from datetime import date, datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.channel import get_event_bus, get_receipt_sender
from settlement.config import SettlementConfig
from settlement.directory import get_directory
from settlement.giftcard import get_gift_card_ledger
from settlement.payment.dispatcher import PaymentDispatcher
from settlement.projections.daily_sales import DailySales
from settlement.projections.refund_report import RefundReport
from settlement.refund.engine import RefundEngine
from settlement.reporting.summary import filter_transactions, summarize
from settlement.shared.errors import Result
from settlement.store import get_store
from settlement.terminal import get_terminal
from settlement.transaction.access import TransactionLocks
from settlement.transaction.ledger import Ledger
from settlement.transaction.voiding import VoidHandler


class SettlementService:
    def __init__(
        self,
        store=None,
        terminal=None,
        gift_cards=None,
        directory=None,
        event_bus=None,
        receipts=None,
        config: SettlementConfig | None = None,
    ) -> None:
        self.config = config if config is not None else SettlementConfig.from_env()
        self.store = store if store is not None else get_store()
        self.terminal = terminal if terminal is not None else get_terminal()
        self.gift_cards = gift_cards if gift_cards is not None else get_gift_card_ledger()
        self.directory = directory if directory is not None else get_directory()
        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self.receipts = receipts if receipts is not None else get_receipt_sender()
        self.locks = TransactionLocks()

        self.dispatcher = PaymentDispatcher(
            terminal=self.terminal,
            gift_cards=self.gift_cards,
            directory=self.directory,
            config=self.config,
        )
        self.ledger = Ledger(
            store=self.store,
            dispatcher=self.dispatcher,
            directory=self.directory,
            event_bus=self.event_bus,
            receipts=self.receipts,
            config=self.config,
            locks=self.locks,
        )
        self.refunds = RefundEngine(
            store=self.store,
            terminal=self.terminal,
            gift_cards=self.gift_cards,
            directory=self.directory,
            event_bus=self.event_bus,
            locks=self.locks,
        )
        self.voids = VoidHandler(
            store=self.store,
            terminal=self.terminal,
            event_bus=self.event_bus,
            locks=self.locks,
        )

    def create(self, items, customer=None, **options) -> Result:
        return self.ledger.create(items, customer=customer, **options)

    async def open(self, items, customer=None, **options) -> Result:
        """Create a transaction and persist it so later calls can load it by id."""
        result = self.ledger.create(items, customer=customer, **options)
        if result.success:
            await self.ledger._persist(result.value)
        return result

    async def add_payment(self, transaction_id, request, current=None) -> Result:
        return await self.ledger.add_payment(transaction_id, request, current=current)

    async def get_remaining_balance(self, transaction_id, current=None) -> Result:
        return await self.ledger.get_remaining_balance(transaction_id, current=current)

    async def get_transaction(self, transaction_id, current=None) -> Result:
        return await self.ledger.get_transaction(transaction_id, current=current)

    async def create_refund(
        self,
        transaction_id,
        amount,
        reason=None,
        method="original",
        items=None,
        employee_id=None,
        current=None,
    ) -> Result:
        return await self.refunds.create_refund(
            transaction_id,
            amount,
            reason=reason,
            method=method,
            items=items,
            employee_id=employee_id,
            current=current,
        )

    async def void_transaction(self, transaction_id, reason=None, employee_id=None, current=None) -> Result:
        return await self.voids.void_transaction(transaction_id, reason, employee_id, current=current)

    async def list_transactions(self, **filters) -> list:
        return filter_transactions(await self.store.list_all(), **filters)

    async def summary(self, start: datetime | None = None, end: datetime | None = None, **filters):
        transactions = await self.list_transactions(start=start, end=end, **filters)
        return summarize(transactions)

    def daily_sales(self, day: date) -> DailySales | None:
        """Read the day's totals as kept by the daily sales projection."""
        try:
            return current_domain.repository_for(DailySales).get(day.isoformat())
        except ObjectNotFoundError:
            return None

    def refund_report(self, transaction_id=None) -> list[RefundReport]:
        query = current_domain.repository_for(RefundReport)._dao.query
        if transaction_id is not None:
            query = query.filter(transaction_id=str(transaction_id))
        return sorted(query.all().items, key=lambda row: row.issued_at)

    async def drain(self) -> None:
        await self.ledger.drain()


_current_service: SettlementService | None = None


def get_service() -> SettlementService:
    """Return the process-wide service, building it on first use."""
    global _current_service
    if _current_service is None:
        _current_service = SettlementService()
    return _current_service


def set_service(service: SettlementService) -> None:
    global _current_service
    _current_service = service


def reset_service() -> None:
    global _current_service
    _current_service = None
