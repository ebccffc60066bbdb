"""Transaction aggregate (CQRS): the settlement ledger for one sale.

A Transaction captures a priced cart, every payment attempt made against it
and every refund issued afterwards. Money is stored in integer cents; the
Decimal properties are the public view. Payments and refunds are append-only
and carry a ``sequence`` so their recorded order survives persistence.

State Machine:
    PENDING → COMPLETED (completed payments reach the total, fires once)
    PENDING → VOIDED
    COMPLETED → PARTIALLY_REFUNDED → FULLY_REFUNDED
    COMPLETED → FULLY_REFUNDED

Refund status is a pure function of ``(total, refunded_total)``; see
``refund_status_for``.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from settlement.domain import settlement
from settlement.shared.money import ROUNDING_TOLERANCE_CENTS, from_cents, to_cents
from settlement.transaction.events import (
    PaymentFailed,
    PaymentRecorded,
    RefundIssued,
    TransactionCompleted,
    TransactionCreated,
    TransactionVoided,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    VOIDED = "voided"
    PARTIALLY_REFUNDED = "partially_refunded"
    FULLY_REFUNDED = "fully_refunded"


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"
    GIFT_CARD = "gift_card"
    HOUSE_ACCOUNT = "house_account"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundMethod(Enum):
    ORIGINAL = "original"
    CASH = "cash"
    STORE_CREDIT = "store_credit"


class RefundStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED, TransactionStatus.VOIDED},
    TransactionStatus.COMPLETED: {TransactionStatus.PARTIALLY_REFUNDED, TransactionStatus.FULLY_REFUNDED},
    TransactionStatus.PARTIALLY_REFUNDED: {TransactionStatus.PARTIALLY_REFUNDED, TransactionStatus.FULLY_REFUNDED},
    TransactionStatus.FULLY_REFUNDED: set(),  # Terminal
    TransactionStatus.VOIDED: set(),  # Terminal
}

_REFUNDABLE = {
    TransactionStatus.COMPLETED,
    TransactionStatus.PARTIALLY_REFUNDED,
}

# error_kind of a failed Payment whose instrument was charged anyway
UNBOOKED_CAPTURE = "UNBOOKED_CAPTURE"


def refund_status_for(total_cents: int, refunded_cents: int) -> TransactionStatus:
    """Derive the post-completion status from ledger totals alone."""
    if refunded_cents <= 0:
        return TransactionStatus.COMPLETED
    if refunded_cents >= total_cents:
        return TransactionStatus.FULLY_REFUNDED
    return TransactionStatus.PARTIALLY_REFUNDED


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@settlement.value_object(part_of="Transaction")
class CustomerRef:
    """Weak reference to a customer record owned by the customer directory."""

    customer_id = Identifier(required=True)
    name = String(max_length=200)
    email = String(max_length=254)
    phone = String(max_length=30)
    membership_tier = String(max_length=50)


@settlement.value_object(part_of="Transaction")
class Pricing:
    """Cents-exact pricing captured when the transaction was created."""

    subtotal_cents = Integer(default=0)
    discount_cents = Integer(default=0)
    discount_info = Text()  # JSON: {type, value | tier, rate}
    taxable_cents = Integer(default=0)
    tax_cents = Integer(default=0)
    tax_rate = String(max_length=20, default="0")
    tax_exempt = Boolean(default=False)
    tip_cents = Integer(default=0)
    tip_percent = Integer(default=0)
    total_cents = Integer(default=0)

    @property
    def discount_details(self) -> dict | None:
        return json.loads(self.discount_info) if self.discount_info else None

    @property
    def subtotal(self) -> Decimal:
        return from_cents(self.subtotal_cents)

    @property
    def discount_amount(self) -> Decimal:
        return from_cents(self.discount_cents)

    @property
    def taxable_amount(self) -> Decimal:
        return from_cents(self.taxable_cents)

    @property
    def tax(self) -> Decimal:
        return from_cents(self.tax_cents)

    @property
    def tip(self) -> Decimal:
        return from_cents(self.tip_cents)

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)


@settlement.value_object(part_of="Transaction")
class TransactionOrigin:
    """Where the sale was rung up and by whom."""

    source = String(max_length=50, default="pos")
    register_id = String(max_length=50, default="main")
    employee_id = String(max_length=100)
    employee_name = String(max_length=200)
    tab_id = String(max_length=100)
    booking_id = String(max_length=100)
    notes = Text()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@settlement.entity(part_of="Transaction")
class LineItem:
    """A priced line of the cart. Immutable once the transaction exists."""

    sequence = Integer(required=True)
    name = String(required=True, max_length=200)
    unit_price_cents = Integer(required=True)
    quantity = Integer(required=True, min_value=1)
    line_total_cents = Integer(required=True)

    @property
    def unit_price(self) -> Decimal:
        return from_cents(self.unit_price_cents)

    @property
    def line_total(self) -> Decimal:
        return from_cents(self.line_total_cents)


@settlement.entity(part_of="Transaction")
class Payment:
    """One payment attempt. Moves once from pending to completed or failed."""

    sequence = Integer(required=True)
    method = String(required=True, max_length=20, choices=PaymentMethod)
    amount_cents = Integer(required=True)
    status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    details = Text()  # JSON: method-specific payload
    intent_id = String(max_length=255)
    error = String(max_length=500)
    error_kind = String(max_length=30)
    refunded_cents = Integer(default=0)
    created_at = DateTime()
    resolved_at = DateTime()

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def refundable_cents(self) -> int:
        if self.status != PaymentStatus.COMPLETED.value:
            return 0
        return max(self.amount_cents - (self.refunded_cents or 0), 0)

    @property
    def details_dict(self) -> dict:
        return json.loads(self.details) if self.details else {}


@settlement.entity(part_of="Transaction")
class Refund:
    """Money returned against a completed transaction."""

    sequence = Integer(required=True)
    amount_cents = Integer(required=True)
    requested_cents = Integer(required=True)
    reason = String(max_length=500)
    items = Text()  # JSON: list of line item ids
    method = String(required=True, max_length=20, choices=RefundMethod)
    status = String(max_length=20, choices=RefundStatus, default=RefundStatus.PENDING.value)
    processed_by = String(max_length=100)
    allocations = Text()  # JSON: list of {payment_id, method, amount_cents, reference}
    error = String(max_length=500)
    created_at = DateTime()

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def allocation_list(self) -> list[dict]:
        return json.loads(self.allocations) if self.allocations else []


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@settlement.aggregate
class Transaction:
    status = String(
        max_length=30,
        choices=TransactionStatus,
        default=TransactionStatus.PENDING.value,
    )
    line_items = HasMany(LineItem)
    customer = ValueObject(CustomerRef)
    pricing = ValueObject(Pricing)
    payments = HasMany(Payment)
    refunds = HasMany(Refund)
    refunded_cents = Integer(default=0)
    origin = ValueObject(TransactionOrigin)
    created_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()
    voided_at = DateTime()
    void_reason = String(max_length=500)
    voided_by = String(max_length=100)

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def completed_payments_cannot_exceed_total(self):
        if self.pricing is None:
            return
        if self.paid_cents > self.pricing.total_cents + ROUNDING_TOLERANCE_CENTS:
            raise ValidationError({"payments": ["Completed payments exceed the transaction total"]})

    @invariant.post
    def refunds_cannot_exceed_total(self):
        if self.pricing is None:
            return
        if (self.refunded_cents or 0) > self.pricing.total_cents:
            raise ValidationError({"refunds": ["Refunded total exceeds the transaction total"]})

    @invariant.post
    def refund_status_matches_refunded_total(self):
        if self.pricing is None:
            return
        current = TransactionStatus(self.status)
        if current in (TransactionStatus.PENDING, TransactionStatus.VOIDED):
            return
        if current != refund_status_for(self.pricing.total_cents, self.refunded_cents or 0):
            raise ValidationError({"status": [f"Status {current.value} does not match the refunded total"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, breakdown, customer: CustomerRef | None = None, origin: TransactionOrigin | None = None):
        """Open a pending transaction from a ``PricingBreakdown``."""
        if not breakdown.lines:
            raise ValidationError({"items": ["Transaction must have at least one item"]})

        now = datetime.now(UTC)
        pricing = Pricing(
            subtotal_cents=to_cents(breakdown.subtotal),
            discount_cents=to_cents(breakdown.discount_amount),
            discount_info=json.dumps(breakdown.discount_info) if breakdown.discount_info else None,
            taxable_cents=to_cents(breakdown.taxable_amount),
            tax_cents=to_cents(breakdown.tax),
            tax_rate=str(breakdown.tax_rate),
            tax_exempt=breakdown.tax_exempt,
            tip_cents=to_cents(breakdown.tip),
            tip_percent=breakdown.tip_percent,
            total_cents=to_cents(breakdown.total),
        )
        transaction = cls(
            pricing=pricing,
            customer=customer,
            origin=origin or TransactionOrigin(),
            created_at=now,
            updated_at=now,
        )
        for position, line in enumerate(breakdown.lines):
            transaction.add_line_items(
                LineItem(
                    sequence=position,
                    name=line.name,
                    unit_price_cents=to_cents(line.unit_price),
                    quantity=line.quantity,
                    line_total_cents=to_cents(line.line_total),
                )
            )

        transaction.raise_(
            TransactionCreated(
                transaction_id=str(transaction.id),
                customer_id=str(customer.customer_id) if customer else None,
                item_count=breakdown.item_count,
                total_cents=pricing.total_cents,
                register_id=transaction.origin.register_id,
                created_at=now,
            )
        )
        return transaction

    # -------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------
    @property
    def ordered_items(self) -> list[LineItem]:
        return sorted(self.line_items or [], key=lambda i: i.sequence)

    @property
    def ordered_payments(self) -> list[Payment]:
        return sorted(self.payments or [], key=lambda p: p.sequence)

    @property
    def ordered_refunds(self) -> list[Refund]:
        return sorted(self.refunds or [], key=lambda r: r.sequence)

    @property
    def completed_payments(self) -> list[Payment]:
        return [p for p in self.ordered_payments if p.status == PaymentStatus.COMPLETED.value]

    @property
    def pending_payments(self) -> list[Payment]:
        return [p for p in self.ordered_payments if p.status == PaymentStatus.PENDING.value]

    @property
    def total_cents(self) -> int:
        return self.pricing.total_cents if self.pricing else 0

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    @property
    def paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.completed_payments)

    @property
    def remaining_cents(self) -> int:
        return max(self.total_cents - self.paid_cents, 0)

    @property
    def remaining_balance(self) -> Decimal:
        return from_cents(self.remaining_cents)

    @property
    def refunded_total(self) -> Decimal:
        return from_cents(self.refunded_cents or 0)

    @property
    def max_refundable_cents(self) -> int:
        return max(self.total_cents - (self.refunded_cents or 0), 0)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.line_items or [])

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING.value

    @property
    def is_refundable(self) -> bool:
        return TransactionStatus(self.status) in _REFUNDABLE

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: TransactionStatus) -> None:
        current = TransactionStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def validate_payment_amount(self, amount_cents: int) -> None:
        """Reject non-positive amounts and amounts above the remaining balance."""
        if amount_cents <= 0:
            raise ValidationError({"amount": ["Payment amount must be greater than zero"]})
        if amount_cents > self.remaining_cents + ROUNDING_TOLERANCE_CENTS:
            raise ValidationError(
                {
                    "amount": [
                        f"Payment amount {from_cents(amount_cents)} exceeds remaining balance {self.remaining_balance}"
                    ]
                }
            )

    def record_payment(
        self,
        method: str,
        amount_cents: int,
        status: str,
        details: dict | None = None,
        intent_id: str | None = None,
        error: str | None = None,
        error_kind: str | None = None,
    ) -> Payment:
        """Append a resolved (or still in-flight) payment attempt.

        A completed payment that brings the completed sum to the total moves
        the transaction to COMPLETED in the same change.
        """
        if not self.is_pending:
            raise ValidationError({"status": [f"Cannot record payments on a {self.status} transaction"]})

        now = datetime.now(UTC)
        if status == PaymentStatus.COMPLETED.value:
            self.validate_payment_amount(amount_cents)

        payment = Payment(
            sequence=len(self.payments or []),
            method=method,
            amount_cents=amount_cents,
            status=status,
            details=json.dumps(details or {}),
            intent_id=intent_id,
            error=error,
            error_kind=error_kind,
            created_at=now,
            resolved_at=None if status == PaymentStatus.PENDING.value else now,
        )

        completed_now = False
        with atomic_change(self):
            self.add_payments(payment)
            self.updated_at = now
            if status == PaymentStatus.COMPLETED.value and self.paid_cents >= self.total_cents:
                completed_now = True
                self._assert_can_transition(TransactionStatus.COMPLETED)
                self.status = TransactionStatus.COMPLETED.value
                self.completed_at = now

        if status == PaymentStatus.COMPLETED.value:
            self.raise_(
                PaymentRecorded(
                    transaction_id=str(self.id),
                    payment_id=str(payment.id),
                    method=method,
                    amount_cents=amount_cents,
                    recorded_at=now,
                )
            )
        elif status == PaymentStatus.FAILED.value:
            self.raise_(
                PaymentFailed(
                    transaction_id=str(self.id),
                    payment_id=str(payment.id),
                    method=method,
                    amount_cents=amount_cents,
                    reason=error,
                    failed_at=now,
                )
            )

        if completed_now:
            self.raise_(
                TransactionCompleted(
                    transaction_id=str(self.id),
                    customer_id=str(self.customer.customer_id) if self.customer else None,
                    total_cents=self.total_cents,
                    paid_cents=self.paid_cents,
                    payment_count=len(self.completed_payments),
                    tax_cents=self.pricing.tax_cents,
                    tip_cents=self.pricing.tip_cents,
                    employee_id=self.origin.employee_id if self.origin else None,
                    completed_at=now,
                )
            )
        return payment

    def record_unbooked_capture(
        self,
        method: str,
        amount_cents: int,
        reason: str,
        details: dict | None = None,
        intent_id: str | None = None,
    ) -> Payment:
        """Keep a trace of money an instrument took that could not be applied.

        Allowed in any status. The attempt is stored as failed, so it never
        counts toward the paid total, and its details mark it as captured for
        reconciliation.
        """
        now = datetime.now(UTC)
        payment = Payment(
            sequence=len(self.payments or []),
            method=method,
            amount_cents=amount_cents,
            status=PaymentStatus.FAILED.value,
            details=json.dumps({**(details or {}), "captured": True}),
            intent_id=intent_id,
            error=reason,
            error_kind=UNBOOKED_CAPTURE,
            created_at=now,
            resolved_at=now,
        )
        with atomic_change(self):
            self.add_payments(payment)
            self.updated_at = now

        self.raise_(
            PaymentFailed(
                transaction_id=str(self.id),
                payment_id=str(payment.id),
                method=method,
                amount_cents=amount_cents,
                reason=reason,
                failed_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def record_refund(
        self,
        amount_cents: int,
        requested_cents: int,
        method: str,
        reason: str | None = None,
        items: list[str] | None = None,
        processed_by: str | None = None,
        allocations: list[dict] | None = None,
        error: str | None = None,
    ) -> Refund:
        """Append a completed refund and re-derive the refund status.

        ``allocations`` entries that name a ``payment_id`` are charged against
        that payment's refundable amount.
        """
        if not self.is_refundable:
            raise ValidationError({"status": [f"Cannot refund a {self.status} transaction"]})
        if amount_cents <= 0:
            raise ValidationError({"amount": ["Refund amount must be greater than zero"]})
        if amount_cents > self.max_refundable_cents:
            raise ValidationError(
                {
                    "amount": [
                        f"Refund amount {from_cents(amount_cents)} exceeds maximum refundable "
                        f"{from_cents(self.max_refundable_cents)}"
                    ]
                }
            )

        allocations = allocations or []
        payments_by_id = {str(p.id): p for p in self.payments or []}
        for allocation in allocations:
            payment_id = allocation.get("payment_id")
            if payment_id is None:
                continue
            payment = payments_by_id.get(str(payment_id))
            if payment is None:
                raise ValidationError({"allocations": [f"Payment {payment_id} not found"]})
            if allocation["amount_cents"] > payment.refundable_cents:
                raise ValidationError({"allocations": [f"Refund exceeds what payment {payment_id} collected"]})

        now = datetime.now(UTC)
        refunded_cents = (self.refunded_cents or 0) + amount_cents
        new_status = refund_status_for(self.total_cents, refunded_cents)
        self._assert_can_transition(new_status)

        refund = Refund(
            sequence=len(self.refunds or []),
            amount_cents=amount_cents,
            requested_cents=requested_cents,
            reason=reason,
            items=json.dumps(items) if items else None,
            method=method,
            status=RefundStatus.COMPLETED.value,
            processed_by=processed_by,
            allocations=json.dumps(allocations),
            error=error,
            created_at=now,
        )

        with atomic_change(self):
            for allocation in allocations:
                payment_id = allocation.get("payment_id")
                if payment_id is not None:
                    payment = payments_by_id[str(payment_id)]
                    payment.refunded_cents = (payment.refunded_cents or 0) + allocation["amount_cents"]
            self.add_refunds(refund)
            self.refunded_cents = refunded_cents
            self.status = new_status.value
            self.updated_at = now

        self.raise_(
            RefundIssued(
                transaction_id=str(self.id),
                refund_id=str(refund.id),
                method=method,
                amount_cents=amount_cents,
                refunded_total_cents=refunded_cents,
                status=new_status.value,
                reason=reason,
                issued_at=now,
            )
        )
        return refund

    # -------------------------------------------------------------------
    # Voiding
    # -------------------------------------------------------------------
    def void(self, reason: str | None, voided_by: str | None) -> list[Payment]:
        """Cancel a pending transaction.

        In-flight payments are marked failed. Returns the payments that were
        still pending so the caller can release their external intents.
        """
        self._assert_can_transition(TransactionStatus.VOIDED)

        now = datetime.now(UTC)
        released = self.pending_payments

        with atomic_change(self):
            for payment in released:
                payment.status = PaymentStatus.FAILED.value
                payment.error = "voided"
                payment.resolved_at = now
            self.status = TransactionStatus.VOIDED.value
            self.voided_at = now
            self.void_reason = reason
            self.voided_by = voided_by
            self.updated_at = now

        self.raise_(
            TransactionVoided(
                transaction_id=str(self.id),
                reason=reason,
                voided_by=voided_by,
                voided_at=now,
            )
        )
        return released
