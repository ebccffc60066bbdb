"""FastAPI routes for the Settlement domain for transactions, payments, refunds."""

import os
from dataclasses import asdict
from datetime import date, datetime

from fastapi import APIRouter, HTTPException

from settlement.api.schemas import (
    AddPaymentRequest,
    BalanceResponse,
    ConfigureTerminalRequest,
    CreateRefundRequest,
    CreateTransactionRequest,
    DailySalesResponse,
    LineItemResponse,
    PaymentResponse,
    PaymentResultResponse,
    PricingResponse,
    RefundReportEntry,
    RefundReportResponse,
    RefundResponse,
    RefundResultResponse,
    SummaryResponse,
    TerminalConfigResponse,
    TransactionResponse,
    VoidTransactionRequest,
)
from settlement.service import get_service
from settlement.shared.errors import ErrorKind, Result
from settlement.shared.money import from_cents
from settlement.terminal.fake_adapter import FakeTerminal

_STATUS_CODES = {
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.PAYMENT_ERROR: 402,
}


def _raise_for(result: Result) -> None:
    if not result.success:
        raise HTTPException(status_code=_STATUS_CODES[result.error.kind], detail=result.error.to_dict())


def _transaction_response(transaction) -> TransactionResponse:
    pricing = transaction.pricing
    return TransactionResponse(
        transaction_id=str(transaction.id),
        status=transaction.status,
        items=[
            LineItemResponse(
                id=str(item.id),
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in transaction.ordered_items
        ],
        customer_id=str(transaction.customer.customer_id) if transaction.customer else None,
        pricing=PricingResponse(
            subtotal=pricing.subtotal,
            discount_amount=pricing.discount_amount,
            discount_info=pricing.discount_details,
            taxable_amount=pricing.taxable_amount,
            tax=pricing.tax,
            tax_rate=pricing.tax_rate,
            tax_exempt=bool(pricing.tax_exempt),
            tip=pricing.tip,
            tip_percent=pricing.tip_percent or 0,
            total=pricing.total,
        ),
        payments=[
            PaymentResponse(
                id=str(payment.id),
                method=payment.method,
                amount=payment.amount,
                status=payment.status,
                details=payment.details_dict,
                error=payment.error,
                refunded_amount=from_cents(payment.refunded_cents or 0),
            )
            for payment in transaction.ordered_payments
        ],
        refunds=[
            RefundResponse(
                id=str(refund.id),
                amount=refund.amount,
                requested_amount=from_cents(refund.requested_cents),
                method=refund.method,
                status=refund.status,
                reason=refund.reason,
                processed_by=refund.processed_by,
                allocations=refund.allocation_list,
                error=refund.error,
            )
            for refund in transaction.ordered_refunds
        ],
        paid=from_cents(transaction.paid_cents),
        remaining=transaction.remaining_balance,
        refunded_total=transaction.refunded_total,
        created_at=transaction.created_at,
        completed_at=transaction.completed_at,
        voided_at=transaction.voided_at,
        void_reason=transaction.void_reason,
    )


# ---------------------------------------------------------------------------
# Transaction Router
# ---------------------------------------------------------------------------
transaction_router = APIRouter(prefix="/transactions", tags=["transactions"])


@transaction_router.get("/reports/summary", response_model=SummaryResponse)
async def sales_summary(
    start: datetime | None = None,
    end: datetime | None = None,
    employee_id: str | None = None,
) -> SummaryResponse:
    """Summarize settled sales in a time window."""
    summary = await get_service().summary(start=start, end=end, employee_id=employee_id)
    return SummaryResponse(**asdict(summary))


@transaction_router.get("/reports/daily/{day}", response_model=DailySalesResponse)
async def daily_sales(day: date) -> DailySalesResponse:
    """Totals for one day. A day with no activity reports zeros."""
    record = get_service().daily_sales(day)
    if record is None:
        return DailySalesResponse(
            date=day.isoformat(),
            completed_count=0,
            voided_count=0,
            refund_count=0,
            gross_sales=from_cents(0),
            tax=from_cents(0),
            tips=from_cents(0),
            refunds=from_cents(0),
            net_sales=from_cents(0),
        )
    return DailySalesResponse(
        date=record.date,
        completed_count=record.completed_count or 0,
        voided_count=record.voided_count or 0,
        refund_count=record.refund_count or 0,
        gross_sales=from_cents(record.gross_sales_cents or 0),
        tax=from_cents(record.tax_cents or 0),
        tips=from_cents(record.tip_cents or 0),
        refunds=from_cents(record.refunds_cents or 0),
        net_sales=from_cents(record.net_sales_cents or 0),
    )


@transaction_router.get("/reports/refunds", response_model=RefundReportResponse)
async def refund_report(transaction_id: str | None = None) -> RefundReportResponse:
    rows = get_service().refund_report(transaction_id=transaction_id)
    return RefundReportResponse(
        refunds=[
            RefundReportEntry(
                refund_id=str(row.refund_id),
                transaction_id=str(row.transaction_id),
                method=row.method,
                amount=from_cents(row.amount_cents),
                refunded_total=from_cents(row.refunded_total_cents),
                transaction_status=row.transaction_status,
                reason=row.reason,
                issued_at=row.issued_at,
            )
            for row in rows
        ]
    )


@transaction_router.post("/terminal/configure", response_model=TerminalConfigResponse)
async def configure_terminal(body: ConfigureTerminalRequest) -> TerminalConfigResponse:
    """Configure the FakeTerminal behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Terminal configuration not available in production")

    terminal = get_service().terminal
    if not isinstance(terminal, FakeTerminal):
        raise HTTPException(status_code=400, detail="Terminal configuration only available for FakeTerminal")

    terminal.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        leave_pending=body.leave_pending,
        cancel_succeeds=body.cancel_succeeds,
        refund_succeeds=body.refund_succeeds,
    )
    return TerminalConfigResponse(
        terminal=type(terminal).__name__,
        should_succeed=terminal.should_succeed,
        failure_reason=terminal.failure_reason,
        leave_pending=terminal.leave_pending,
    )


@transaction_router.post("", status_code=201, response_model=TransactionResponse)
async def create_transaction(body: CreateTransactionRequest) -> TransactionResponse:
    """Price a cart and open a pending transaction."""
    result = await get_service().open(
        [item.model_dump() for item in body.items],
        customer=body.customer.model_dump() if body.customer else None,
        discount=body.discount.model_dump(exclude_none=True) if body.discount else None,
        tip=body.tip,
        tip_percent=body.tip_percent,
        tax_exempt=body.tax_exempt,
        employee_id=body.employee_id,
        employee_name=body.employee_name,
        register_id=body.register_id,
        tab_id=body.tab_id,
        booking_id=body.booking_id,
        notes=body.notes,
    )
    _raise_for(result)
    return _transaction_response(result.value)


@transaction_router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: str) -> TransactionResponse:
    result = await get_service().get_transaction(transaction_id)
    _raise_for(result)
    return _transaction_response(result.value)


@transaction_router.get("/{transaction_id}/balance", response_model=BalanceResponse)
async def get_remaining_balance(transaction_id: str) -> BalanceResponse:
    result = await get_service().get_remaining_balance(transaction_id)
    _raise_for(result)
    return BalanceResponse(transaction_id=transaction_id, remaining=result.value)


@transaction_router.post("/{transaction_id}/payments", response_model=PaymentResultResponse)
async def add_payment(transaction_id: str, body: AddPaymentRequest) -> PaymentResultResponse:
    """Collect one payment. Split tender is several calls."""
    result = await get_service().add_payment(transaction_id, body.model_dump())
    _raise_for(result)
    outcome = result.value
    return PaymentResultResponse(
        payment_id=str(outcome.payment.id),
        completed=outcome.completed,
        remaining=outcome.remaining,
        change=outcome.change,
        persisted=outcome.persisted,
        transaction=_transaction_response(outcome.transaction),
    )


@transaction_router.post("/{transaction_id}/refunds", response_model=RefundResultResponse)
async def create_refund(transaction_id: str, body: CreateRefundRequest) -> RefundResultResponse:
    result = await get_service().create_refund(
        transaction_id,
        body.amount,
        reason=body.reason,
        method=body.method,
        items=body.items,
        employee_id=body.employee_id,
    )
    _raise_for(result)
    outcome = result.value
    return RefundResultResponse(
        refund_id=str(outcome.refund.id),
        refunded_total=outcome.refunded_total,
        status=outcome.status,
        transaction=_transaction_response(outcome.transaction),
    )


@transaction_router.post("/{transaction_id}/void", response_model=TransactionResponse)
async def void_transaction(transaction_id: str, body: VoidTransactionRequest) -> TransactionResponse:
    result = await get_service().void_transaction(
        transaction_id,
        reason=body.reason,
        employee_id=body.employee_id,
    )
    _raise_for(result)
    return _transaction_response(result.value)
