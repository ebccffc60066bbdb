"""Dict-backed transaction store for tests.

Stores the aggregate object itself. ``fail_saves`` makes every save raise so
tests can check that persistence failures are tolerated.
"""

from settlement.store.port import TransactionStore


class InMemoryTransactionStore(TransactionStore):
    def __init__(self) -> None:
        self.transactions: dict[str, object] = {}
        self.fail_saves: bool = False
        self.save_count: int = 0

    async def load(self, transaction_id: str):
        return self.transactions.get(str(transaction_id))

    async def save(self, transaction) -> None:
        if self.fail_saves:
            raise ConnectionError("Transaction store unavailable")
        self.save_count += 1
        self.transactions[str(transaction.id)] = transaction

    async def list_all(self) -> list:
        return list(self.transactions.values())
