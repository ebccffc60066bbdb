"""Daily sales: per-day settlement totals for the back office.

Keyed by date (YYYY-MM-DD). Sales land on the day the transaction completed,
refunds on the day they were issued and voids on the day they happened, so a
day's net can go negative when it refunds older sales.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.transaction.events import RefundIssued, TransactionCompleted, TransactionVoided
from settlement.transaction.transaction import Transaction


@settlement.projection
class DailySales:
    date = String(identifier=True, required=True, max_length=10)  # YYYY-MM-DD
    completed_count = Integer(default=0)
    voided_count = Integer(default=0)
    refund_count = Integer(default=0)
    gross_sales_cents = Integer(default=0)
    tax_cents = Integer(default=0)
    tip_cents = Integer(default=0)
    refunds_cents = Integer(default=0)
    net_sales_cents = Integer(default=0)


def _get_or_create(date_key):
    repo = current_domain.repository_for(DailySales)
    try:
        return repo.get(date_key)
    except ObjectNotFoundError:
        return DailySales(
            date=date_key,
            completed_count=0,
            voided_count=0,
            refund_count=0,
            gross_sales_cents=0,
            tax_cents=0,
            tip_cents=0,
            refunds_cents=0,
            net_sales_cents=0,
        )


@settlement.projector(projector_for=DailySales, aggregates=[Transaction])
class DailySalesProjector:
    @on(TransactionCompleted)
    def on_transaction_completed(self, event):
        record = _get_or_create(event.completed_at.date().isoformat())
        record.completed_count = (record.completed_count or 0) + 1
        record.gross_sales_cents = (record.gross_sales_cents or 0) + event.total_cents
        record.tax_cents = (record.tax_cents or 0) + (event.tax_cents or 0)
        record.tip_cents = (record.tip_cents or 0) + (event.tip_cents or 0)
        record.net_sales_cents = record.gross_sales_cents - (record.refunds_cents or 0)
        current_domain.repository_for(DailySales).add(record)

    @on(RefundIssued)
    def on_refund_issued(self, event):
        record = _get_or_create(event.issued_at.date().isoformat())
        record.refund_count = (record.refund_count or 0) + 1
        record.refunds_cents = (record.refunds_cents or 0) + event.amount_cents
        record.net_sales_cents = (record.gross_sales_cents or 0) - record.refunds_cents
        current_domain.repository_for(DailySales).add(record)

    @on(TransactionVoided)
    def on_transaction_voided(self, event):
        record = _get_or_create(event.voided_at.date().isoformat())
        record.voided_count = (record.voided_count or 0) + 1
        current_domain.repository_for(DailySales).add(record)
