"""Transaction store backed by the Protean repository.

Uses whichever database provider the domain is configured with (the memory
provider by default). Must run inside an active domain context.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.store.port import TransactionStore
from settlement.transaction.transaction import Transaction


class RepositoryTransactionStore(TransactionStore):
    async def load(self, transaction_id: str):
        try:
            return current_domain.repository_for(Transaction).get(str(transaction_id))
        except ObjectNotFoundError:
            return None

    async def save(self, transaction) -> None:
        current_domain.repository_for(Transaction).add(transaction)

    async def list_all(self) -> list:
        return current_domain.repository_for(Transaction)._dao.query.all().items
