"""Outbound notification ports: event bus and receipt delivery.

The event bus is fire-and-forget: ``emit`` returns as soon as the event is
handed off and the engine never waits for subscribers. Receipt delivery is
asynchronous and best-effort; the ledger schedules it in the background.
"""

from abc import ABC, abstractmethod


class EventBus(ABC):
    """Abstract event bus interface."""

    @abstractmethod
    def emit(self, event_name: str, payload: dict) -> None:
        """Publish ``payload`` under ``event_name``."""
        ...


class ReceiptSender(ABC):
    """Abstract receipt delivery interface."""

    @abstractmethod
    async def send_receipt(self, transaction, email: str) -> None:
        """Deliver a receipt for ``transaction`` to ``email``."""
        ...
