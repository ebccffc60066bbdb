"""In-memory customer directory for development and testing.

``fail_on`` names directory calls that should raise, so tests can check
that side effects are tolerated.
"""

from dataclasses import replace
from decimal import Decimal

from settlement.directory.port import CustomerAccount, CustomerDirectory, PurchaseRecord, RefundRecord


class FakeCustomerDirectory(CustomerDirectory):
    """Customer accounts held in a dict keyed by customer id."""

    def __init__(self) -> None:
        self.accounts: dict[str, CustomerAccount] = {}
        self.purchases: dict[str, list[PurchaseRecord]] = {}
        self.refunds: dict[str, list[RefundRecord]] = {}
        self.fail_on: set[str] = set()
        self.calls: list[dict] = []

    def register(
        self,
        customer_id: str,
        balance: Decimal = Decimal("0.00"),
        credit_limit: Decimal = Decimal("0.00"),
        store_credit: Decimal = Decimal("0.00"),
        house_account_enabled: bool = False,
    ) -> CustomerAccount:
        account = CustomerAccount(
            customer_id=customer_id,
            balance=Decimal(balance),
            credit_limit=Decimal(credit_limit),
            store_credit=Decimal(store_credit),
            house_account_enabled=house_account_enabled,
        )
        self.accounts[customer_id] = account
        return account

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if method in self.fail_on:
            raise ConnectionError(f"Customer directory unavailable ({method})")

    def _require(self, customer_id: str) -> CustomerAccount:
        account = self.accounts.get(customer_id)
        if account is None:
            raise LookupError(f"Customer {customer_id} not found")
        return account

    async def get_account(self, customer_id: str) -> CustomerAccount | None:
        self._record("get_account", customer_id=customer_id)
        return self.accounts.get(customer_id)

    async def update_house_account_balance(self, customer_id: str, new_balance: Decimal) -> None:
        self._record("update_house_account_balance", customer_id=customer_id, new_balance=new_balance)
        account = self._require(customer_id)
        self.accounts[customer_id] = replace(account, balance=new_balance)

    async def add_store_credit(self, customer_id: str, amount: Decimal) -> None:
        self._record("add_store_credit", customer_id=customer_id, amount=amount)
        account = self._require(customer_id)
        self.accounts[customer_id] = replace(account, store_credit=account.store_credit + amount)

    async def record_purchase(self, customer_id: str, purchase: PurchaseRecord) -> None:
        self._record("record_purchase", customer_id=customer_id, purchase=purchase)
        self.purchases.setdefault(customer_id, []).append(purchase)

    async def record_refund(self, customer_id: str, refund: RefundRecord) -> None:
        self._record("record_refund", customer_id=customer_id, refund=refund)
        self.refunds.setdefault(customer_id, []).append(refund)
