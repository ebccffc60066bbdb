"""Gift card ledger port (abstract interface).

Redemption is all-or-nothing: an unknown, inactive or expired code, or a
balance below the requested amount, fails without touching the card.
Amounts are integer minor units.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GiftCardResult:
    """Outcome of a redeem or credit request."""

    success: bool
    remaining_balance: int | None = None
    failure_reason: str | None = None


class GiftCardLedger(ABC):
    """Abstract gift card ledger interface."""

    @abstractmethod
    async def redeem(self, code: str, amount_minor_units: int) -> GiftCardResult:
        """Deduct ``amount_minor_units`` from the card identified by ``code``."""
        ...

    @abstractmethod
    async def credit(self, code: str, amount_minor_units: int) -> GiftCardResult:
        """Add ``amount_minor_units`` back to the card identified by ``code``."""
        ...
