"""Customer directory port (abstract interface).

The directory owns customer records, house account balances and store
credit. The settlement engine treats every call as a single opaque
read-modify-write and never retries. Amounts are Decimal values.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class CustomerAccount:
    """Balances the directory holds for one customer."""

    customer_id: str
    balance: Decimal = Decimal("0.00")
    credit_limit: Decimal = Decimal("0.00")
    store_credit: Decimal = Decimal("0.00")
    house_account_enabled: bool = False


@dataclass(frozen=True)
class PurchaseRecord:
    transaction_id: str
    amount: Decimal
    item_count: int
    purchased_at: datetime


@dataclass(frozen=True)
class RefundRecord:
    transaction_id: str
    refund_id: str
    amount: Decimal
    method: str
    refunded_at: datetime


class CustomerDirectory(ABC):
    """Abstract customer directory interface."""

    @abstractmethod
    async def get_account(self, customer_id: str) -> CustomerAccount | None:
        """Return the customer's balances, or None when unknown."""
        ...

    @abstractmethod
    async def update_house_account_balance(self, customer_id: str, new_balance: Decimal) -> None:
        """Overwrite the house account balance."""
        ...

    @abstractmethod
    async def add_store_credit(self, customer_id: str, amount: Decimal) -> None:
        """Add ``amount`` to the customer's store credit."""
        ...

    @abstractmethod
    async def record_purchase(self, customer_id: str, purchase: PurchaseRecord) -> None:
        """Append a purchase to the customer's history."""
        ...

    @abstractmethod
    async def record_refund(self, customer_id: str, refund: RefundRecord) -> None:
        """Append a refund to the customer's history."""
        ...
