"""Transaction store factory.

Provides get_store() / set_store() to swap implementations. Defaults to
the Protean repository-backed store.
"""

from settlement.store.port import TransactionStore
from settlement.store.repository_adapter import RepositoryTransactionStore

_current_store: TransactionStore | None = None


def get_store() -> TransactionStore:
    """Return the current transaction store. Defaults to RepositoryTransactionStore."""
    global _current_store
    if _current_store is None:
        _current_store = RepositoryTransactionStore()
    return _current_store


def set_store(store: TransactionStore) -> None:
    """Override the active transaction store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_store() -> None:
    """Reset to default store."""
    global _current_store
    _current_store = None
