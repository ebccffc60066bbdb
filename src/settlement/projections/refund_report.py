"""Refund report: one row per refund for end-of-day reconciliation."""

from protean.core.projector import on
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.transaction.events import RefundIssued
from settlement.transaction.transaction import Transaction


@settlement.projection
class RefundReport:
    refund_id = Identifier(identifier=True, required=True)
    transaction_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    amount_cents = Integer(required=True)
    refunded_total_cents = Integer(required=True)
    transaction_status = String(required=True, max_length=30)
    reason = String(max_length=500)
    issued_at = DateTime()


@settlement.projector(projector_for=RefundReport, aggregates=[Transaction])
class RefundReportProjector:
    @on(RefundIssued)
    def on_refund_issued(self, event):
        current_domain.repository_for(RefundReport).add(
            RefundReport(
                refund_id=event.refund_id,
                transaction_id=event.transaction_id,
                method=event.method,
                amount_cents=event.amount_cents,
                refunded_total_cents=event.refunded_total_cents,
                transaction_status=event.status,
                reason=event.reason,
                issued_at=event.issued_at,
            )
        )
