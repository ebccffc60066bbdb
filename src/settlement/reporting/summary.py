"""Sales summaries over settled transactions.

Pure functions over already-loaded transactions. Only transactions that
reached completion count toward sales; voided and pending ones are counted
separately. Refunds are reported on the transaction they belong to.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from settlement.shared.money import from_cents, round_money, to_cents
from settlement.transaction.transaction import TransactionStatus

_SETTLED = {
    TransactionStatus.COMPLETED.value,
    TransactionStatus.PARTIALLY_REFUNDED.value,
    TransactionStatus.FULLY_REFUNDED.value,
}


@dataclass(frozen=True)
class DailySummary:
    transaction_count: int = 0
    voided_count: int = 0
    pending_count: int = 0
    subtotal: Decimal = Decimal("0.00")
    discounts: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    tips: Decimal = Decimal("0.00")
    total_sales: Decimal = Decimal("0.00")
    refunds: Decimal = Decimal("0.00")
    net_sales: Decimal = Decimal("0.00")
    average_transaction: Decimal = Decimal("0.00")
    by_payment_method: dict = field(default_factory=dict)
    by_employee: dict = field(default_factory=dict)
    by_hour: dict = field(default_factory=dict)
    top_items: list = field(default_factory=list)


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def filter_transactions(
    transactions,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    customer_id: str | None = None,
    employee_id: str | None = None,
    min_amount=None,
    max_amount=None,
) -> list:
    """Select transactions by creation time, status, customer, employee and total."""
    start, end = _aware(start), _aware(end)
    min_cents = to_cents(min_amount, "min_amount") if min_amount is not None else None
    max_cents = to_cents(max_amount, "max_amount") if max_amount is not None else None

    selected = []
    for transaction in transactions:
        created_at = _aware(transaction.created_at)
        if start is not None and (created_at is None or created_at < start):
            continue
        if end is not None and (created_at is None or created_at > end):
            continue
        if status is not None and transaction.status != status:
            continue
        if customer_id is not None:
            if transaction.customer is None or str(transaction.customer.customer_id) != str(customer_id):
                continue
        if employee_id is not None:
            if transaction.origin is None or transaction.origin.employee_id != employee_id:
                continue
        if min_cents is not None and transaction.total_cents < min_cents:
            continue
        if max_cents is not None and transaction.total_cents > max_cents:
            continue
        selected.append(transaction)

    return sorted(selected, key=lambda t: _aware(t.created_at) or datetime.min.replace(tzinfo=UTC))


def summarize(transactions, top_n: int = 10) -> DailySummary:
    """Roll up sales, tax, tips, refunds and breakdowns for a set of transactions."""
    settled = [t for t in transactions if t.status in _SETTLED]
    voided = sum(1 for t in transactions if t.status == TransactionStatus.VOIDED.value)
    pending = sum(1 for t in transactions if t.status == TransactionStatus.PENDING.value)

    subtotal = discounts = tax = tips = total = refunds = 0
    by_method: dict[str, int] = defaultdict(int)
    by_employee: dict[str, int] = defaultdict(int)
    by_hour: dict[int, int] = defaultdict(int)
    item_counts: Counter = Counter()

    for transaction in settled:
        pricing = transaction.pricing
        subtotal += pricing.subtotal_cents
        discounts += pricing.discount_cents
        tax += pricing.tax_cents
        tips += pricing.tip_cents
        total += pricing.total_cents
        refunds += transaction.refunded_cents or 0

        for payment in transaction.completed_payments:
            by_method[payment.method] += payment.amount_cents

        employee = (transaction.origin.employee_id if transaction.origin else None) or "unassigned"
        by_employee[employee] += pricing.total_cents

        if transaction.created_at is not None:
            by_hour[transaction.created_at.hour] += pricing.total_cents

        for item in transaction.line_items or []:
            item_counts[item.name] += item.quantity

    count = len(settled)
    return DailySummary(
        transaction_count=count,
        voided_count=voided,
        pending_count=pending,
        subtotal=from_cents(subtotal),
        discounts=from_cents(discounts),
        tax=from_cents(tax),
        tips=from_cents(tips),
        total_sales=from_cents(total),
        refunds=from_cents(refunds),
        net_sales=from_cents(total - refunds),
        average_transaction=round_money(from_cents(total) / count) if count else Decimal("0.00"),
        by_payment_method={method: from_cents(cents) for method, cents in sorted(by_method.items())},
        by_employee={employee: from_cents(cents) for employee, cents in sorted(by_employee.items())},
        by_hour={hour: from_cents(cents) for hour, cents in sorted(by_hour.items())},
        top_items=[{"name": name, "quantity": quantity} for name, quantity in item_counts.most_common(top_n)],
    )
