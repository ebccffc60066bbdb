"""In-process event bus and receipt sender.

``InMemoryEventBus`` keeps every emitted event and fans out to local
subscribers. A subscriber that raises is logged and skipped so one bad
consumer cannot affect the emitter or the other subscribers.
"""

import asyncio
from collections import defaultdict
from typing import Callable

import structlog

from settlement.channel.port import EventBus, ReceiptSender

logger = structlog.get_logger(__name__)


class InMemoryEventBus(EventBus):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []
        self._subscribers: dict[str, list[Callable[[dict], None]]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Callable[[dict], None]) -> None:
        self._subscribers[event_name].append(handler)

    def emit(self, event_name: str, payload: dict) -> None:
        self.events.append((event_name, payload))
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("event_subscriber_failed", event_name=event_name)

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event_name: str) -> list[dict]:
        return [payload for name, payload in self.events if name == event_name]


class FakeReceiptSender(ReceiptSender):
    """Records receipts instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.should_fail: bool = False
        self.delay: float = 0.0

    def configure(self, should_fail: bool = False, delay: float = 0.0) -> None:
        self.should_fail = should_fail
        self.delay = delay

    async def send_receipt(self, transaction, email: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.should_fail:
            raise ConnectionError("Receipt service unavailable")
        self.sent.append(
            {
                "transaction_id": str(transaction.id),
                "email": email,
                "total": str(transaction.total),
            }
        )
