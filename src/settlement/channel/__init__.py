"""Event bus and receipt sender factories.

Provides get_/set_/reset_ helpers for both outbound channels. Defaults to
the in-process implementations.
"""

from settlement.channel.memory_adapter import FakeReceiptSender, InMemoryEventBus
from settlement.channel.port import EventBus, ReceiptSender

_current_event_bus: EventBus | None = None
_current_receipt_sender: ReceiptSender | None = None


def get_event_bus() -> EventBus:
    """Return the current event bus. Defaults to InMemoryEventBus."""
    global _current_event_bus
    if _current_event_bus is None:
        _current_event_bus = InMemoryEventBus()
    return _current_event_bus


def set_event_bus(event_bus: EventBus) -> None:
    global _current_event_bus
    _current_event_bus = event_bus


def reset_event_bus() -> None:
    global _current_event_bus
    _current_event_bus = None


def get_receipt_sender() -> ReceiptSender:
    """Return the current receipt sender. Defaults to FakeReceiptSender."""
    global _current_receipt_sender
    if _current_receipt_sender is None:
        _current_receipt_sender = FakeReceiptSender()
    return _current_receipt_sender


def set_receipt_sender(sender: ReceiptSender) -> None:
    global _current_receipt_sender
    _current_receipt_sender = sender


def reset_receipt_sender() -> None:
    global _current_receipt_sender
    _current_receipt_sender = None
