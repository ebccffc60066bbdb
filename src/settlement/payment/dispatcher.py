"""Payment dispatcher: one strategy per payment method.

The ledger hands the dispatcher a validated request; the matching strategy
talks to its collaborator (or none, for cash) and returns a
``DispatchResult``. Any instrument failure is raised as ``PaymentError`` so
the ledger can record the attempt as failed. Collaborator exceptions are
normalized into ``PaymentError`` as well. Nothing is retried here: a retry
is a new ``add_payment`` call from the register.

Split tender is not a method. The register makes one ``add_payment`` call
per instrument against the same transaction.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

import structlog
from protean.exceptions import ValidationError

from settlement.config import SettlementConfig
from settlement.directory import get_directory
from settlement.directory.port import CustomerDirectory
from settlement.giftcard import get_gift_card_ledger
from settlement.giftcard.port import GiftCardLedger
from settlement.shared.errors import PaymentError, PaymentPendingError
from settlement.shared.money import from_cents, to_cents, to_decimal
from settlement.terminal import get_terminal
from settlement.terminal.port import PaymentTerminal
from settlement.transaction.transaction import PaymentMethod

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentRequest:
    """A register's request to collect ``amount`` with one instrument."""

    method: str
    amount: Decimal
    tendered: Decimal | None = None
    gift_card_code: str | None = None
    drawer_id: str | None = None
    employee_id: str | None = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentRequest":
        if data.get("amount") is None:
            raise ValidationError({"amount": ["Payment amount is required"]})
        tendered = data.get("tendered")
        return cls(
            method=str(data.get("method") or ""),
            amount=to_decimal(data["amount"], "amount"),
            tendered=to_decimal(tendered, "tendered") if tendered is not None else None,
            gift_card_code=data.get("gift_card_code") or data.get("code"),
            drawer_id=data.get("drawer_id"),
            employee_id=data.get("employee_id"),
            metadata=dict(data.get("metadata") or {}),
        )

    def validate(self) -> None:
        """Check the request shape before any money moves."""
        if self.method == "split":
            raise ValidationError({"method": ["Split tender is made as one payment per instrument"]})
        try:
            method = PaymentMethod(self.method)
        except ValueError:
            raise ValidationError({"method": [f"Unknown payment method: {self.method!r}"]}) from None

        if method == PaymentMethod.CASH and self.tendered is not None:
            if to_cents(self.tendered, "tendered") < to_cents(self.amount):
                raise ValidationError({"tendered": ["Tendered amount is less than the payment amount"]})
        if method == PaymentMethod.GIFT_CARD and not (self.gift_card_code or "").strip():
            raise ValidationError({"gift_card_code": ["Gift card code is required"]})


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    details: dict = field(default_factory=dict)
    intent_id: str | None = None

    @property
    def change(self) -> Decimal | None:
        value = self.details.get("change")
        return Decimal(value) if value is not None else None


class PaymentDispatcher:
    """Routes a payment request to the strategy for its method."""

    def __init__(
        self,
        terminal: PaymentTerminal | None = None,
        gift_cards: GiftCardLedger | None = None,
        directory: CustomerDirectory | None = None,
        config: SettlementConfig | None = None,
    ) -> None:
        self.terminal = terminal if terminal is not None else get_terminal()
        self.gift_cards = gift_cards if gift_cards is not None else get_gift_card_ledger()
        self.directory = directory if directory is not None else get_directory()
        self.config = config if config is not None else SettlementConfig()
        self._strategies = {
            PaymentMethod.CASH: self._collect_cash,
            PaymentMethod.CARD: self._collect_card,
            PaymentMethod.GIFT_CARD: self._redeem_gift_card,
            PaymentMethod.HOUSE_ACCOUNT: self._charge_house_account,
        }

    async def dispatch(self, transaction, request: PaymentRequest, amount_cents: int) -> DispatchResult:
        try:
            method = PaymentMethod(request.method)
        except ValueError:
            raise PaymentError(f"Unsupported payment method: {request.method}") from None

        strategy = self._strategies[method]
        try:
            return await strategy(transaction, request, amount_cents)
        except PaymentError:
            raise
        except Exception as exc:
            logger.warning(
                "payment_collaborator_error",
                transaction_id=str(transaction.id),
                method=method.value,
                error=str(exc),
            )
            raise PaymentError(str(exc) or type(exc).__name__) from exc

    # -------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------
    async def _collect_cash(self, transaction, request: PaymentRequest, amount_cents: int) -> DispatchResult:
        tendered_cents = to_cents(request.tendered, "tendered") if request.tendered is not None else amount_cents
        if tendered_cents < amount_cents:
            raise PaymentError(
                "Tendered amount is less than the payment amount",
                tendered=str(from_cents(tendered_cents)),
            )
        limit_cents = amount_cents * self.config.max_cash_tender_multiple
        if tendered_cents > limit_cents:
            raise PaymentError(
                f"Tendered amount exceeds {self.config.max_cash_tender_multiple}x the payment amount",
                tendered=str(from_cents(tendered_cents)),
            )

        return DispatchResult(
            success=True,
            details={
                "tendered": str(from_cents(tendered_cents)),
                "change": str(from_cents(tendered_cents - amount_cents)),
                "drawer_id": request.drawer_id or self.config.register,
            },
        )

    async def _collect_card(self, transaction, request: PaymentRequest, amount_cents: int) -> DispatchResult:
        metadata = {
            "transaction_id": str(transaction.id),
            "register_id": transaction.origin.register_id if transaction.origin else self.config.register,
            "currency": self.config.currency,
            **request.metadata,
        }
        result = await self.terminal.collect_payment(amount_cents, metadata)

        if result.status == "pending":
            raise PaymentPendingError("Card payment is still in progress", intent_id=result.intent_id)
        if not result.success:
            raise PaymentError(result.failure_reason or "Card payment failed", intent_id=result.intent_id)

        signature_required = (
            self.config.require_signature and from_cents(amount_cents) >= self.config.signature_threshold
        )
        return DispatchResult(
            success=True,
            intent_id=result.intent_id,
            details={
                "intent_id": result.intent_id,
                "instrument_summary": result.instrument_summary,
                "signature_required": signature_required,
            },
        )

    async def _redeem_gift_card(self, transaction, request: PaymentRequest, amount_cents: int) -> DispatchResult:
        code = (request.gift_card_code or "").strip()
        if not code:
            raise PaymentError("Gift card code is required")

        result = await self.gift_cards.redeem(code, amount_cents)
        if not result.success:
            details = {"code": code}
            if result.remaining_balance is not None:
                details["balance"] = str(from_cents(result.remaining_balance))
            raise PaymentError(result.failure_reason or "Gift card redemption failed", **details)

        return DispatchResult(
            success=True,
            details={
                "code": code,
                "remaining_balance": str(from_cents(result.remaining_balance or 0)),
            },
        )

    async def _charge_house_account(self, transaction, request: PaymentRequest, amount_cents: int) -> DispatchResult:
        if transaction.customer is None:
            raise PaymentError("House account payments require a customer")

        customer_id = str(transaction.customer.customer_id)
        account = await self.directory.get_account(customer_id)
        if account is None:
            raise PaymentError("Customer account not found", customer_id=customer_id)
        if not account.house_account_enabled:
            raise PaymentError("House account is not enabled for this customer", customer_id=customer_id)

        amount = from_cents(amount_cents)
        new_balance = account.balance + amount
        if new_balance > account.credit_limit:
            raise PaymentError(
                "House account credit limit exceeded",
                balance=str(account.balance),
                credit_limit=str(account.credit_limit),
                available=str(max(account.credit_limit - account.balance, Decimal("0.00"))),
            )

        await self.directory.update_house_account_balance(customer_id, new_balance)
        return DispatchResult(
            success=True,
            details={
                "customer_id": customer_id,
                "previous_balance": str(account.balance),
                "new_balance": str(new_balance),
                "credit_limit": str(account.credit_limit),
            },
        )
