"""Shared plumbing for the services that mutate a Transaction.

The ledger, the refund engine and the void handler all resolve a transaction
the same way (the stored copy, unless the caller holds one at least as
recent), persist without letting a storage failure undo a settled payment,
and serialize work on one transaction id through a shared
``TransactionLocks``.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog

from settlement.channel import get_event_bus
from settlement.channel.port import EventBus
from settlement.store import get_store
from settlement.store.port import TransactionStore

logger = structlog.get_logger(__name__)


class TransactionLocks:
    """One ``asyncio.Lock`` per transaction id, held only while in use.

    Calls against different transactions never wait on each other. A lock
    is dropped from the registry when its last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, transaction_id):
        key = str(transaction_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def _version(transaction) -> int:
    return getattr(transaction, "_version", -1)


class TransactionAccess:
    """Base for services that load, mutate and save transactions."""

    def __init__(
        self,
        store: TransactionStore | None = None,
        event_bus: EventBus | None = None,
        locks: TransactionLocks | None = None,
    ) -> None:
        self.store = store if store is not None else get_store()
        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self.locks = locks if locks is not None else TransactionLocks()

    async def _resolve(self, transaction_id, current=None):
        stored = await self.store.load(str(transaction_id))
        if current is None or str(current.id) != str(transaction_id):
            return stored
        if stored is None or stored is current:
            return current

        # A handle older than the stored copy would validate against a stale balance
        if _version(current) < _version(stored):
            logger.warning(
                "stale_transaction_handle",
                transaction_id=str(transaction_id),
                held_version=_version(current),
                stored_version=_version(stored),
            )
            return stored
        return current

    async def _persist(self, transaction) -> bool:
        try:
            await self.store.save(transaction)
        except Exception:
            logger.exception("transaction_persist_failed", transaction_id=str(transaction.id))
            return False
        return True

    def _emit(self, event_name: str, payload: dict) -> None:
        try:
            self.event_bus.emit(event_name, payload)
        except Exception:
            logger.exception("event_emit_failed", event_name=event_name)
