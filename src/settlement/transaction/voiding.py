"""Voiding: cancel a transaction that has not completed."""

import structlog

from settlement.channel.port import EventBus
from settlement.shared.errors import ErrorKind, Result
from settlement.store.port import TransactionStore
from settlement.terminal import get_terminal
from settlement.terminal.port import PaymentTerminal
from settlement.transaction.access import TransactionAccess, TransactionLocks
from settlement.transaction.transaction import TransactionStatus

logger = structlog.get_logger(__name__)


class VoidHandler(TransactionAccess):
    def __init__(
        self,
        store: TransactionStore | None = None,
        terminal: PaymentTerminal | None = None,
        event_bus: EventBus | None = None,
        locks: TransactionLocks | None = None,
    ) -> None:
        super().__init__(store=store, event_bus=event_bus, locks=locks)
        self.terminal = terminal if terminal is not None else get_terminal()

    async def void_transaction(
        self, transaction_id, reason: str | None, employee_id: str | None, current=None
    ) -> Result:
        """Void a pending transaction.

        In-flight card intents are cancelled best-effort. A cancellation that
        fails is logged for follow-up and does not stop the void.
        """
        async with self.locks.hold(transaction_id):
            transaction = await self._resolve(transaction_id, current)
            if transaction is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Transaction not found", transaction_id=str(transaction_id))
            if transaction.status != TransactionStatus.PENDING.value:
                return Result.fail(
                    ErrorKind.INVALID_STATE,
                    f"Only pending transactions can be voided (status is {transaction.status})",
                    status=transaction.status,
                )

            for payment in transaction.pending_payments:
                if not payment.intent_id:
                    continue
                try:
                    cancelled = await self.terminal.cancel(payment.intent_id)
                except Exception:
                    logger.exception(
                        "intent_cancel_failed",
                        transaction_id=str(transaction.id),
                        intent_id=payment.intent_id,
                    )
                    continue
                if not cancelled:
                    logger.warning(
                        "intent_cancel_rejected",
                        transaction_id=str(transaction.id),
                        intent_id=payment.intent_id,
                    )

            transaction.void(reason=reason, voided_by=employee_id)
            logger.info("transaction_voided", transaction_id=str(transaction.id), reason=reason, voided_by=employee_id)

            await self._persist(transaction)
            self._emit(
                "transaction.voided",
                {
                    "transaction_id": str(transaction.id),
                    "reason": reason,
                    "voided_by": employee_id,
                    "voided_at": transaction.voided_at.isoformat(),
                },
            )
            return Result.ok(transaction)
