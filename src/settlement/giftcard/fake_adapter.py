"""In-memory gift card ledger for development and testing."""

from dataclasses import dataclass
from datetime import UTC, datetime

from settlement.giftcard.port import GiftCardLedger, GiftCardResult


@dataclass
class _Card:
    code: str
    balance: int
    is_active: bool = True
    expires_at: datetime | None = None


class FakeGiftCardLedger(GiftCardLedger):
    """Gift card balances held in a dict, keyed by upper-cased code."""

    def __init__(self) -> None:
        self.cards: dict[str, _Card] = {}
        self.calls: list[dict] = []

    def issue(self, code: str, balance_minor_units: int, is_active: bool = True, expires_at=None) -> None:
        """Seed a card."""
        self.cards[code.upper()] = _Card(
            code=code.upper(),
            balance=balance_minor_units,
            is_active=is_active,
            expires_at=expires_at,
        )

    def balance_of(self, code: str) -> int | None:
        card = self.cards.get(code.upper())
        return card.balance if card else None

    def _usable_card(self, code: str) -> tuple[_Card | None, str | None]:
        card = self.cards.get(code.upper())
        if card is None:
            return None, "Gift card not found"
        if not card.is_active:
            return None, "Gift card is inactive"
        if card.expires_at is not None and card.expires_at < datetime.now(UTC):
            return None, "Gift card has expired"
        return card, None

    async def redeem(self, code: str, amount_minor_units: int) -> GiftCardResult:
        self.calls.append({"method": "redeem", "code": code, "amount_minor_units": amount_minor_units})

        card, failure = self._usable_card(code)
        if card is None:
            return GiftCardResult(success=False, failure_reason=failure)
        if amount_minor_units > card.balance:
            return GiftCardResult(
                success=False,
                remaining_balance=card.balance,
                failure_reason="Insufficient balance",
            )

        card.balance -= amount_minor_units
        return GiftCardResult(success=True, remaining_balance=card.balance)

    async def credit(self, code: str, amount_minor_units: int) -> GiftCardResult:
        self.calls.append({"method": "credit", "code": code, "amount_minor_units": amount_minor_units})

        card = self.cards.get(code.upper())
        if card is None:
            return GiftCardResult(success=False, failure_reason="Gift card not found")

        card.balance += amount_minor_units
        return GiftCardResult(success=True, remaining_balance=card.balance)
