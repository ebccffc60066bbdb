"""Ledger: creates transactions and books payments against them.

``add_payment`` follows a fixed sequence under the transaction's lock:

    1. resolve the transaction (stored copy, or a caller-held handle that is
       not behind it)
    2. NOT_FOUND / INVALID_STATE checks
    3. validate the amount against the *current* remaining balance
    4. dispatch to the instrument strategy
    5. append the payment (completed, failed or still pending) and persist;
       a capture that can no longer be applied is kept as a failed payment
       marked ``UNBOOKED_CAPTURE``
    6. on the first moment completed payments reach the total, run the
       completion side effects in order: persist, record the purchase with
       the customer directory, emit ``transaction.completed``, schedule the
       receipt

The work runs in its own task behind ``asyncio.shield``. A register that
gives up waiting does not stop a card capture that is already in flight;
the payment is still booked and completion still fires.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

import structlog
from protean.exceptions import ValidationError

from settlement.channel import get_receipt_sender
from settlement.channel.port import EventBus, ReceiptSender
from settlement.config import SettlementConfig
from settlement.directory import get_directory
from settlement.directory.port import CustomerDirectory, PurchaseRecord
from settlement.payment.dispatcher import DispatchResult, PaymentDispatcher, PaymentRequest
from settlement.pricing.calculator import calculate_pricing
from settlement.shared.errors import ErrorKind, PaymentError, PaymentPendingError, Result, validation_messages
from settlement.shared.money import to_cents
from settlement.store.port import TransactionStore
from settlement.transaction.access import TransactionAccess, TransactionLocks
from settlement.transaction.transaction import (
    CustomerRef,
    Payment,
    PaymentStatus,
    Transaction,
    TransactionOrigin,
    TransactionStatus,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentOutcome:
    """Value of a successful ``add_payment``."""

    transaction: Transaction
    payment: Payment
    completed: bool
    remaining: Decimal
    change: Decimal | None = None
    persisted: bool = True


def customer_ref_from(customer) -> CustomerRef | None:
    """Accept a CustomerRef or a mapping with ``id``/``customer_id``."""
    if customer is None or isinstance(customer, CustomerRef):
        return customer
    if not isinstance(customer, Mapping):
        raise ValidationError({"customer": ["Customer must be a mapping or CustomerRef"]})

    customer_id = customer.get("customer_id") or customer.get("id")
    if not customer_id:
        raise ValidationError({"customer": ["Customer reference requires an id"]})
    return CustomerRef(
        customer_id=str(customer_id),
        name=customer.get("name"),
        email=customer.get("email"),
        phone=customer.get("phone"),
        membership_tier=customer.get("membership_tier") or customer.get("tier"),
    )


class Ledger(TransactionAccess):
    def __init__(
        self,
        store: TransactionStore | None = None,
        dispatcher: PaymentDispatcher | None = None,
        directory: CustomerDirectory | None = None,
        event_bus: EventBus | None = None,
        receipts: ReceiptSender | None = None,
        config: SettlementConfig | None = None,
        locks: TransactionLocks | None = None,
    ) -> None:
        super().__init__(store=store, event_bus=event_bus, locks=locks)
        self.config = config if config is not None else SettlementConfig()
        self.directory = directory if directory is not None else get_directory()
        if dispatcher is None:
            dispatcher = PaymentDispatcher(directory=self.directory, config=self.config)
        self.dispatcher = dispatcher
        self.receipts = receipts if receipts is not None else get_receipt_sender()
        self._inflight: set[asyncio.Task] = set()
        self._background: set[asyncio.Task] = set()

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create(
        self,
        items: Iterable,
        customer=None,
        discount=None,
        tip=None,
        tip_percent=None,
        tax_exempt: bool = False,
        tax_rate=None,
        employee_id: str | None = None,
        employee_name: str | None = None,
        register_id: str | None = None,
        source: str = "pos",
        tab_id: str | None = None,
        booking_id: str | None = None,
        notes: str | None = None,
    ) -> Result:
        """Price ``items`` and open a pending transaction. Nothing is persisted."""
        try:
            customer_ref = customer_ref_from(customer)
            if isinstance(discount, Mapping) and discount.get("type") == "membership" and not discount.get("tier"):
                discount = {**discount, "tier": customer_ref.membership_tier if customer_ref else None}

            breakdown = calculate_pricing(
                items,
                discount=discount,
                tax_rate=self.config.tax_rate if tax_rate is None else tax_rate,
                tip=tip,
                tip_percent=tip_percent,
                tax_exempt=tax_exempt,
                tier_rates=self.config.tier_rates,
                max_total=self.config.max_transaction,
            )
            origin = TransactionOrigin(
                source=source,
                register_id=register_id or self.config.register,
                employee_id=employee_id,
                employee_name=employee_name,
                tab_id=tab_id,
                booking_id=booking_id,
                notes=notes,
            )
            transaction = Transaction.create(breakdown, customer=customer_ref, origin=origin)
        except ValidationError as exc:
            logger.info("transaction_rejected", reason=validation_messages(exc))
            return Result.fail(ErrorKind.VALIDATION_ERROR, validation_messages(exc), errors=exc.messages)

        logger.info(
            "transaction_created",
            transaction_id=str(transaction.id),
            total=str(transaction.total),
            item_count=transaction.item_count,
        )
        self._emit(
            "transaction.created",
            {
                "transaction_id": str(transaction.id),
                "total": str(transaction.total),
                "customer_id": str(customer_ref.customer_id) if customer_ref else None,
                "register_id": origin.register_id,
            },
        )
        return Result.ok(transaction)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def get_transaction(self, transaction_id, current=None) -> Result:
        transaction = await self._resolve(transaction_id, current)
        if transaction is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Transaction not found", transaction_id=str(transaction_id))
        return Result.ok(transaction)

    async def get_remaining_balance(self, transaction_id, current=None) -> Result:
        transaction = await self._resolve(transaction_id, current)
        if transaction is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Transaction not found", transaction_id=str(transaction_id))
        return Result.ok(transaction.remaining_balance)

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    async def add_payment(self, transaction_id, request, current=None) -> Result:
        """Collect one payment against a pending transaction."""
        if isinstance(request, Mapping):
            try:
                request = PaymentRequest.from_dict(request)
            except ValidationError as exc:
                return Result.fail(ErrorKind.VALIDATION_ERROR, validation_messages(exc), errors=exc.messages)

        work = asyncio.ensure_future(self._add_payment(transaction_id, request, current))
        self._inflight.add(work)
        work.add_done_callback(self._inflight.discard)
        return await asyncio.shield(work)

    async def _add_payment(self, transaction_id, request: PaymentRequest, current) -> Result:
        async with self.locks.hold(transaction_id):
            transaction = await self._resolve(transaction_id, current)
            if transaction is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Transaction not found", transaction_id=str(transaction_id))
            if transaction.status != TransactionStatus.PENDING.value:
                return Result.fail(
                    ErrorKind.INVALID_STATE,
                    f"Cannot add a payment to a {transaction.status} transaction",
                    status=transaction.status,
                )

            try:
                request.validate()
                amount_cents = to_cents(request.amount)
                transaction.validate_payment_amount(amount_cents)
            except ValidationError as exc:
                return Result.fail(
                    ErrorKind.VALIDATION_ERROR,
                    validation_messages(exc),
                    remaining=transaction.remaining_balance,
                    errors=exc.messages,
                )

            log = logger.bind(
                transaction_id=str(transaction.id),
                method=request.method,
                amount=str(request.amount),
            )
            try:
                outcome = await self.dispatcher.dispatch(transaction, request, amount_cents)
            except PaymentPendingError as exc:
                return await self._book_pending(transaction, request, amount_cents, exc, log)
            except PaymentError as exc:
                return await self._book_failure(transaction, request, amount_cents, exc, log)

            return await self._book_success(transaction, request, amount_cents, outcome, log)

    async def _book_success(self, transaction, request, amount_cents, outcome: DispatchResult, log) -> Result:
        try:
            payment = transaction.record_payment(
                method=request.method,
                amount_cents=amount_cents,
                status=PaymentStatus.COMPLETED.value,
                details=outcome.details,
                intent_id=outcome.intent_id,
            )
        except ValidationError as exc:
            return await self._book_unapplied_capture(transaction, request, amount_cents, outcome, exc, log)

        log.info("payment_completed", payment_id=str(payment.id), remaining=str(transaction.remaining_balance))
        self._emit(
            "payment.completed",
            {
                "transaction_id": str(transaction.id),
                "payment_id": str(payment.id),
                "method": payment.method,
                "amount": str(payment.amount),
            },
        )

        completed = transaction.status == TransactionStatus.COMPLETED.value
        if completed:
            persisted = await self._on_completed(transaction)
        else:
            persisted = await self._persist(transaction)
        if not persisted:
            log.error("captured_payment_not_persisted", payment_id=str(payment.id), intent_id=outcome.intent_id)

        return Result.ok(
            PaymentOutcome(
                transaction=transaction,
                payment=payment,
                completed=completed,
                remaining=transaction.remaining_balance,
                change=outcome.change,
                persisted=persisted,
            )
        )

    async def _book_unapplied_capture(self, transaction, request, amount_cents, outcome, exc, log) -> Result:
        reason = validation_messages(exc)
        payment = transaction.record_unbooked_capture(
            method=request.method,
            amount_cents=amount_cents,
            reason=reason,
            details=outcome.details,
            intent_id=outcome.intent_id,
        )
        log.error(
            "captured_payment_not_booked",
            payment_id=str(payment.id),
            intent_id=outcome.intent_id,
            reason=reason,
        )
        self._emit(
            "payment.unbooked",
            {
                "transaction_id": str(transaction.id),
                "payment_id": str(payment.id),
                "method": payment.method,
                "amount": str(payment.amount),
                "intent_id": outcome.intent_id,
                "reason": reason,
            },
        )
        await self._persist(transaction)
        return Result.fail(
            ErrorKind.PAYMENT_ERROR,
            f"Payment was captured but could not be applied: {reason}",
            payment_id=str(payment.id),
            intent_id=outcome.intent_id,
            captured=True,
            remaining=transaction.remaining_balance,
        )

    async def _book_failure(self, transaction, request, amount_cents, exc: PaymentError, log) -> Result:
        payment = transaction.record_payment(
            method=request.method,
            amount_cents=amount_cents,
            status=PaymentStatus.FAILED.value,
            details=exc.details,
            intent_id=exc.details.get("intent_id"),
            error=exc.message,
            error_kind=ErrorKind.PAYMENT_ERROR.value,
        )
        log.warning("payment_failed", payment_id=str(payment.id), reason=exc.message)
        self._emit(
            "payment.failed",
            {
                "transaction_id": str(transaction.id),
                "payment_id": str(payment.id),
                "method": payment.method,
                "amount": str(payment.amount),
                "reason": exc.message,
            },
        )
        await self._persist(transaction)
        return Result.fail(
            ErrorKind.PAYMENT_ERROR,
            exc.message,
            payment_id=str(payment.id),
            remaining=transaction.remaining_balance,
            **{k: v for k, v in exc.details.items() if k not in ("payment_id", "remaining")},
        )

    async def _book_pending(self, transaction, request, amount_cents, exc: PaymentPendingError, log) -> Result:
        payment = transaction.record_payment(
            method=request.method,
            amount_cents=amount_cents,
            status=PaymentStatus.PENDING.value,
            details=exc.details,
            intent_id=exc.intent_id,
            error=exc.message,
            error_kind=ErrorKind.PAYMENT_ERROR.value,
        )
        log.warning("payment_pending", payment_id=str(payment.id), intent_id=exc.intent_id)
        await self._persist(transaction)
        return Result.fail(
            ErrorKind.PAYMENT_ERROR,
            exc.message,
            payment_id=str(payment.id),
            intent_id=exc.intent_id,
            pending=True,
            remaining=transaction.remaining_balance,
        )

    # -------------------------------------------------------------------
    # Completion side effects
    # -------------------------------------------------------------------
    async def _on_completed(self, transaction) -> bool:
        transaction_id = str(transaction.id)
        logger.info("transaction_completed", transaction_id=transaction_id, total=str(transaction.total))

        persisted = await self._persist(transaction)

        customer = transaction.customer
        if customer is not None:
            try:
                await self.directory.record_purchase(
                    str(customer.customer_id),
                    PurchaseRecord(
                        transaction_id=transaction_id,
                        amount=transaction.total,
                        item_count=transaction.item_count,
                        purchased_at=transaction.completed_at,
                    ),
                )
            except Exception:
                logger.exception("record_purchase_failed", transaction_id=transaction_id)

        self._emit(
            "transaction.completed",
            {
                "transaction_id": transaction_id,
                "total": str(transaction.total),
                "customer_id": str(customer.customer_id) if customer else None,
                "payment_count": len(transaction.completed_payments),
                "completed_at": transaction.completed_at.isoformat() if transaction.completed_at else None,
            },
        )

        if self.config.receipt_email and customer is not None and customer.email:
            task = asyncio.ensure_future(self._send_receipt(transaction, customer.email))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return persisted

    async def _send_receipt(self, transaction, email: str) -> None:
        try:
            await self.receipts.send_receipt(transaction, email)
        except Exception:
            logger.exception("receipt_send_failed", transaction_id=str(transaction.id))
        else:
            logger.info("receipt_sent", transaction_id=str(transaction.id))

    async def drain(self) -> None:
        """Wait for in-flight payments and background receipts to finish."""
        while self._inflight or self._background:
            await asyncio.gather(*self._inflight, *self._background, return_exceptions=True)
