"""Refund engine: returns money against a completed transaction.

Refunds to the original instruments walk the completed payments in the
order they were recorded, taking from each no more than it still has
unrefunded. The first instrument that fails stops the walk. Amounts already
returned through earlier instruments stay refunded and are booked as a
partial refund; the caller is told what was refunded and what was asked for.
"""

from dataclasses import dataclass
from decimal import Decimal

import structlog
from protean.exceptions import ValidationError

from settlement.channel.port import EventBus
from settlement.directory import get_directory
from settlement.directory.port import CustomerDirectory, RefundRecord
from settlement.giftcard import get_gift_card_ledger
from settlement.giftcard.port import GiftCardLedger
from settlement.shared.errors import ErrorKind, PaymentError, Result, validation_messages
from settlement.shared.money import from_cents, to_cents
from settlement.store.port import TransactionStore
from settlement.terminal import get_terminal
from settlement.terminal.port import PaymentTerminal
from settlement.transaction.access import TransactionAccess, TransactionLocks
from settlement.transaction.transaction import (
    PaymentMethod,
    Refund,
    RefundMethod,
    Transaction,
    TransactionStatus,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    transaction: Transaction
    refund: Refund
    refunded_total: Decimal
    status: str


class RefundEngine(TransactionAccess):
    def __init__(
        self,
        store: TransactionStore | None = None,
        terminal: PaymentTerminal | None = None,
        gift_cards: GiftCardLedger | None = None,
        directory: CustomerDirectory | None = None,
        event_bus: EventBus | None = None,
        locks: TransactionLocks | None = None,
    ) -> None:
        super().__init__(store=store, event_bus=event_bus, locks=locks)
        self.terminal = terminal if terminal is not None else get_terminal()
        self.gift_cards = gift_cards if gift_cards is not None else get_gift_card_ledger()
        self.directory = directory if directory is not None else get_directory()
        self._instrument_refunds = {
            PaymentMethod.CARD: self._refund_card,
            PaymentMethod.GIFT_CARD: self._refund_gift_card,
            PaymentMethod.CASH: self._refund_cash,
            PaymentMethod.HOUSE_ACCOUNT: self._refund_house_account,
        }

    async def create_refund(
        self,
        transaction_id,
        amount,
        reason: str | None = None,
        method: str = RefundMethod.ORIGINAL.value,
        items: list[str] | None = None,
        employee_id: str | None = None,
        current=None,
    ) -> Result:
        async with self.locks.hold(transaction_id):
            transaction = await self._resolve(transaction_id, current)
            if transaction is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Transaction not found", transaction_id=str(transaction_id))

            status = TransactionStatus(transaction.status)
            if status in (TransactionStatus.VOIDED, TransactionStatus.PENDING):
                return Result.fail(
                    ErrorKind.INVALID_STATE,
                    f"Cannot refund a {status.value} transaction",
                    status=status.value,
                )

            max_refundable = from_cents(transaction.max_refundable_cents)
            try:
                amount_cents = to_cents(amount)
                refund_method = self._parse_method(method)
                self._check_items(transaction, items)
            except ValidationError as exc:
                return Result.fail(
                    ErrorKind.VALIDATION_ERROR,
                    validation_messages(exc),
                    max_refundable=max_refundable,
                    errors=exc.messages,
                )

            if amount_cents <= 0:
                return Result.fail(
                    ErrorKind.VALIDATION_ERROR,
                    "Refund amount must be greater than zero",
                    max_refundable=max_refundable,
                )
            if amount_cents > transaction.max_refundable_cents:
                return Result.fail(
                    ErrorKind.VALIDATION_ERROR,
                    f"Refund amount {from_cents(amount_cents)} exceeds maximum refundable {max_refundable}",
                    max_refundable=max_refundable,
                )

            log = logger.bind(
                transaction_id=str(transaction.id),
                amount=str(from_cents(amount_cents)),
                method=refund_method.value,
            )

            if refund_method == RefundMethod.ORIGINAL:
                coverable = sum(p.refundable_cents for p in transaction.completed_payments)
                if amount_cents > coverable:
                    return Result.fail(
                        ErrorKind.VALIDATION_ERROR,
                        "Completed payments cannot cover the refund amount",
                        max_refundable=max_refundable,
                        refundable_to_original=from_cents(coverable),
                    )
                allocations, failure = await self._allocate_to_original(transaction, amount_cents, reason, log)
            elif refund_method == RefundMethod.STORE_CREDIT:
                if transaction.customer is None:
                    return Result.fail(ErrorKind.VALIDATION_ERROR, "Store credit refunds require a customer")
                allocations, failure = await self._allocate_to_store_credit(transaction, amount_cents, log)
            else:
                allocations = [
                    {"method": RefundMethod.CASH.value, "amount_cents": amount_cents, "reference": "manual"},
                ]
                failure = None

            allocated_cents = sum(a["amount_cents"] for a in allocations)
            if allocated_cents == 0:
                log.warning("refund_failed", reason=failure.message if failure else None)
                return Result.fail(
                    ErrorKind.PAYMENT_ERROR,
                    failure.message if failure else "Refund could not be allocated",
                    refunded=Decimal("0.00"),
                    requested=from_cents(amount_cents),
                )

            try:
                refund = transaction.record_refund(
                    amount_cents=allocated_cents,
                    requested_cents=amount_cents,
                    method=refund_method.value,
                    reason=reason,
                    items=items,
                    processed_by=employee_id,
                    allocations=allocations,
                    error=failure.message if failure else None,
                )
            except ValidationError as exc:
                log.error("refund_not_booked", reason=validation_messages(exc), allocations=allocations)
                return Result.fail(ErrorKind.VALIDATION_ERROR, validation_messages(exc), max_refundable=max_refundable)

            await self._after_refund(transaction, refund, log)

            if failure is not None:
                log.warning(
                    "refund_partially_allocated",
                    refund_id=str(refund.id),
                    refunded=str(refund.amount),
                    reason=failure.message,
                )
                return Result.fail(
                    ErrorKind.PAYMENT_ERROR,
                    failure.message,
                    refund_id=str(refund.id),
                    refunded=refund.amount,
                    requested=from_cents(amount_cents),
                )

            return Result.ok(
                RefundOutcome(
                    transaction=transaction,
                    refund=refund,
                    refunded_total=transaction.refunded_total,
                    status=transaction.status,
                )
            )

    # -------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _parse_method(method) -> RefundMethod:
        try:
            return RefundMethod(method)
        except ValueError:
            raise ValidationError({"method": [f"Unknown refund method: {method!r}"]}) from None

    @staticmethod
    def _check_items(transaction, items) -> None:
        if not items:
            return
        known = {str(item.id) for item in transaction.line_items or []}
        unknown = [item_id for item_id in items if str(item_id) not in known]
        if unknown:
            raise ValidationError({"items": [f"Unknown line items: {', '.join(map(str, unknown))}"]})

    # -------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------
    async def _allocate_to_original(self, transaction, amount_cents, reason, log):
        allocations: list[dict] = []
        remaining = amount_cents

        for payment in transaction.completed_payments:
            if remaining <= 0:
                break
            portion = min(remaining, payment.refundable_cents)
            if portion <= 0:
                continue

            refund_instrument = self._instrument_refunds[PaymentMethod(payment.method)]
            try:
                reference = await refund_instrument(transaction, payment, portion, reason)
            except PaymentError as exc:
                log.warning("instrument_refund_failed", payment_id=str(payment.id), reason=exc.message)
                return allocations, exc
            except Exception as exc:
                log.exception("instrument_refund_error", payment_id=str(payment.id))
                return allocations, PaymentError(str(exc) or type(exc).__name__)

            allocations.append(
                {
                    "payment_id": str(payment.id),
                    "method": payment.method,
                    "amount_cents": portion,
                    "reference": reference,
                }
            )
            remaining -= portion

        return allocations, None

    async def _allocate_to_store_credit(self, transaction, amount_cents, log):
        customer_id = str(transaction.customer.customer_id)
        try:
            await self.directory.add_store_credit(customer_id, from_cents(amount_cents))
        except Exception as exc:
            log.exception("store_credit_failed", customer_id=customer_id)
            return [], PaymentError(str(exc) or "Store credit could not be issued")

        return [
            {
                "method": RefundMethod.STORE_CREDIT.value,
                "amount_cents": amount_cents,
                "reference": customer_id,
            }
        ], None

    # -------------------------------------------------------------------
    # Per-instrument refunds
    # -------------------------------------------------------------------
    async def _refund_card(self, transaction, payment, amount_cents, reason) -> str:
        if not payment.intent_id:
            raise PaymentError("Card payment has no terminal reference", payment_id=str(payment.id))
        result = await self.terminal.refund(payment.intent_id, amount_cents, reason)
        if not result.success:
            raise PaymentError(result.failure_reason or "Card refund failed", payment_id=str(payment.id))
        return payment.intent_id

    async def _refund_gift_card(self, transaction, payment, amount_cents, reason) -> str:
        code = payment.details_dict.get("code")
        if not code:
            raise PaymentError("Gift card payment has no code", payment_id=str(payment.id))
        result = await self.gift_cards.credit(code, amount_cents)
        if not result.success:
            raise PaymentError(result.failure_reason or "Gift card credit failed", payment_id=str(payment.id))
        return code

    async def _refund_cash(self, transaction, payment, amount_cents, reason) -> str:
        # Cash leaves the drawer by hand
        return "manual"

    async def _refund_house_account(self, transaction, payment, amount_cents, reason) -> str:
        customer_id = payment.details_dict.get("customer_id")
        if not customer_id and transaction.customer is not None:
            customer_id = str(transaction.customer.customer_id)
        if not customer_id:
            raise PaymentError("House account payment has no customer", payment_id=str(payment.id))

        account = await self.directory.get_account(customer_id)
        if account is None:
            raise PaymentError("Customer account not found", customer_id=customer_id)
        await self.directory.update_house_account_balance(customer_id, account.balance - from_cents(amount_cents))
        return customer_id

    # -------------------------------------------------------------------
    # Side effects
    # -------------------------------------------------------------------
    async def _after_refund(self, transaction, refund, log) -> None:
        log.info(
            "refund_completed",
            refund_id=str(refund.id),
            refunded_total=str(transaction.refunded_total),
            status=transaction.status,
        )
        await self._persist(transaction)

        if transaction.customer is not None:
            try:
                await self.directory.record_refund(
                    str(transaction.customer.customer_id),
                    RefundRecord(
                        transaction_id=str(transaction.id),
                        refund_id=str(refund.id),
                        amount=refund.amount,
                        method=refund.method,
                        refunded_at=refund.created_at,
                    ),
                )
            except Exception:
                log.exception("record_refund_failed", refund_id=str(refund.id))

        self._emit(
            "refund.completed",
            {
                "transaction_id": str(transaction.id),
                "refund_id": str(refund.id),
                "amount": str(refund.amount),
                "method": refund.method,
                "refunded_total": str(transaction.refunded_total),
                "status": transaction.status,
                "allocations": refund.allocation_list,
            },
        )
