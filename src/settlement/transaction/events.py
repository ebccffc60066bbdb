"""Domain events for the Transaction aggregate.

Amounts are carried in integer cents so consumers never re-round. The
event-bus notifications emitted by the services (``transaction.completed``
and friends) are built from the same facts.
"""

from protean.fields import DateTime, Identifier, Integer, String

from settlement.domain import settlement


@settlement.event(part_of="Transaction")
class TransactionCreated:
    """A priced cart was turned into a pending transaction."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier()
    item_count = Integer(required=True)
    total_cents = Integer(required=True)
    register_id = String(max_length=50)
    created_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PaymentRecorded:
    """An instrument captured funds against the transaction."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    amount_cents = Integer(required=True)
    recorded_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PaymentFailed:
    """A payment attempt was declined or could not be captured."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    amount_cents = Integer(required=True)
    reason = String(max_length=500)
    failed_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class TransactionCompleted:
    """Completed payments reached the transaction total."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier()
    total_cents = Integer(required=True)
    paid_cents = Integer(required=True)
    payment_count = Integer(required=True)
    tax_cents = Integer(default=0)
    tip_cents = Integer(default=0)
    employee_id = String(max_length=100)
    completed_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class RefundIssued:
    """Money was returned to the customer for a completed transaction."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    amount_cents = Integer(required=True)
    refunded_total_cents = Integer(required=True)
    status = String(required=True, max_length=30)
    reason = String(max_length=500)
    issued_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class TransactionVoided:
    """A pending transaction was cancelled before completion."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    reason = String(max_length=500)
    voided_by = String(max_length=100)
    voided_at = DateTime(required=True)
