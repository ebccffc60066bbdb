"""Transaction persistence port (abstract interface)."""

from abc import ABC, abstractmethod


class TransactionStore(ABC):
    """Durable home of Transaction aggregates."""

    @abstractmethod
    async def load(self, transaction_id: str):
        """Return the transaction, or None when it does not exist."""
        ...

    @abstractmethod
    async def save(self, transaction) -> None:
        """Persist the transaction, replacing any earlier version."""
        ...

    @abstractmethod
    async def list_all(self) -> list:
        """Return every stored transaction."""
        ...
