"""Pydantic request/response schemas for the Settlement API.

These are external contracts (anti-corruption layer), separate from the
Transaction aggregate. Money travels as decimal strings in responses.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class LineItemSchema(BaseModel):
    name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = 1


class CustomerSchema(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    membership_tier: str | None = None


class DiscountSchema(BaseModel):
    type: str  # percent, fixed, membership
    value: Decimal | None = None
    tier: str | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CreateTransactionRequest(BaseModel):
    items: list[LineItemSchema]
    customer: CustomerSchema | None = None
    discount: DiscountSchema | None = None
    tip: Decimal | None = None
    tip_percent: int | None = None
    tax_exempt: bool = False
    employee_id: str | None = None
    employee_name: str | None = None
    register_id: str | None = None
    tab_id: str | None = None
    booking_id: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"name": "Range Bucket (L)", "unit_price": "15.99", "quantity": 2}],
                    "customer": {"id": "cust-001", "name": "Pat Doe", "membership_tier": "birdie"},
                    "discount": {"type": "membership"},
                    "employee_id": "emp-7",
                }
            ]
        }
    }


class AddPaymentRequest(BaseModel):
    method: str  # cash, card, gift_card, house_account
    amount: Decimal
    tendered: Decimal | None = None
    gift_card_code: str | None = None
    drawer_id: str | None = None
    employee_id: str | None = None


class CreateRefundRequest(BaseModel):
    amount: Decimal
    reason: str | None = None
    method: str = "original"  # original, cash, store_credit
    items: list[str] | None = None
    employee_id: str | None = None


class VoidTransactionRequest(BaseModel):
    reason: str
    employee_id: str | None = None


class ConfigureTerminalRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    leave_pending: bool = False
    cancel_succeeds: bool = True
    refund_succeeds: bool = True


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class LineItemResponse(BaseModel):
    id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class PricingResponse(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    discount_info: dict | None = None
    taxable_amount: Decimal
    tax: Decimal
    tax_rate: str
    tax_exempt: bool
    tip: Decimal
    tip_percent: int
    total: Decimal


class PaymentResponse(BaseModel):
    id: str
    method: str
    amount: Decimal
    status: str
    details: dict = {}
    error: str | None = None
    refunded_amount: Decimal


class RefundResponse(BaseModel):
    id: str
    amount: Decimal
    requested_amount: Decimal
    method: str
    status: str
    reason: str | None = None
    processed_by: str | None = None
    allocations: list[dict] = []
    error: str | None = None


class TransactionResponse(BaseModel):
    transaction_id: str
    status: str
    items: list[LineItemResponse]
    customer_id: str | None = None
    pricing: PricingResponse
    payments: list[PaymentResponse]
    refunds: list[RefundResponse]
    paid: Decimal
    remaining: Decimal
    refunded_total: Decimal
    created_at: datetime | None = None
    completed_at: datetime | None = None
    voided_at: datetime | None = None
    void_reason: str | None = None


class PaymentResultResponse(BaseModel):
    payment_id: str
    completed: bool
    remaining: Decimal
    change: Decimal | None = None
    persisted: bool = True
    transaction: TransactionResponse


class RefundResultResponse(BaseModel):
    refund_id: str
    refunded_total: Decimal
    status: str
    transaction: TransactionResponse


class BalanceResponse(BaseModel):
    transaction_id: str
    remaining: Decimal


class SummaryResponse(BaseModel):
    transaction_count: int
    voided_count: int
    pending_count: int
    subtotal: Decimal
    discounts: Decimal
    tax: Decimal
    tips: Decimal
    total_sales: Decimal
    refunds: Decimal
    net_sales: Decimal
    average_transaction: Decimal
    by_payment_method: dict[str, Decimal]
    by_employee: dict[str, Decimal]
    by_hour: dict[int, Decimal]
    top_items: list[dict]


class TerminalConfigResponse(BaseModel):
    terminal: str
    should_succeed: bool
    failure_reason: str
    leave_pending: bool


class DailySalesResponse(BaseModel):
    date: str
    completed_count: int
    voided_count: int
    refund_count: int
    gross_sales: Decimal
    tax: Decimal
    tips: Decimal
    refunds: Decimal
    net_sales: Decimal


class RefundReportEntry(BaseModel):
    refund_id: str
    transaction_id: str
    method: str
    amount: Decimal
    refunded_total: Decimal
    transaction_status: str
    reason: str | None = None
    issued_at: datetime | None = None


class RefundReportResponse(BaseModel):
    refunds: list[RefundReportEntry]
