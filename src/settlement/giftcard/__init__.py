"""Gift card ledger factory.

Provides get_gift_card_ledger() / set_gift_card_ledger() to swap
implementations. Defaults to the in-memory FakeGiftCardLedger.
"""

from settlement.giftcard.fake_adapter import FakeGiftCardLedger
from settlement.giftcard.port import GiftCardLedger

_current_ledger: GiftCardLedger | None = None


def get_gift_card_ledger() -> GiftCardLedger:
    """Return the current gift card ledger. Defaults to FakeGiftCardLedger."""
    global _current_ledger
    if _current_ledger is None:
        _current_ledger = FakeGiftCardLedger()
    return _current_ledger


def set_gift_card_ledger(ledger: GiftCardLedger) -> None:
    """Override the active gift card ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_gift_card_ledger() -> None:
    """Reset to default ledger."""
    global _current_ledger
    _current_ledger = None
