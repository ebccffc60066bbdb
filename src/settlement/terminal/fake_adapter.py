"""Configurable fake card terminal for development and testing.

Simulates a card reader without any network calls. It can be configured at
runtime to approve, decline, or leave the intent in flight, and to make
cancellations or refunds fail. Every call is recorded in ``calls``.
"""

import asyncio
from uuid import uuid4

from settlement.terminal.port import PaymentTerminal, TerminalResult


class FakeTerminal(PaymentTerminal):
    """Configurable fake card terminal."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.leave_pending: bool = False
        self.cancel_succeeds: bool = True
        self.refund_succeeds: bool = True
        self.delay: float = 0.0
        self.card_summary: str = "VISA ****4242"
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        leave_pending: bool = False,
        cancel_succeeds: bool = True,
        refund_succeeds: bool = True,
        delay: float = 0.0,
    ) -> None:
        """Configure terminal behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.leave_pending = leave_pending
        self.cancel_succeeds = cancel_succeeds
        self.refund_succeeds = refund_succeeds
        self.delay = delay

    async def collect_payment(self, amount_minor_units: int, metadata: dict) -> TerminalResult:
        self.calls.append(
            {
                "method": "collect_payment",
                "amount_minor_units": amount_minor_units,
                "metadata": dict(metadata),
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)

        intent_id = f"pi_fake_{uuid4().hex[:12]}"
        if self.leave_pending:
            return TerminalResult(success=False, status="pending", intent_id=intent_id)
        if self.should_succeed:
            return TerminalResult(
                success=True,
                status="succeeded",
                intent_id=intent_id,
                instrument_summary=self.card_summary,
            )
        return TerminalResult(
            success=False,
            status="failed",
            intent_id=intent_id,
            failure_reason=self.failure_reason,
        )

    async def cancel(self, intent_id: str) -> bool:
        self.calls.append({"method": "cancel", "intent_id": intent_id})
        if not self.cancel_succeeds:
            raise ConnectionError("Terminal unreachable")
        return True

    async def refund(self, intent_id: str, amount_minor_units: int, reason: str | None = None) -> TerminalResult:
        self.calls.append(
            {
                "method": "refund",
                "intent_id": intent_id,
                "amount_minor_units": amount_minor_units,
                "reason": reason,
            }
        )
        if self.refund_succeeds:
            return TerminalResult(success=True, status="succeeded", intent_id=intent_id)
        return TerminalResult(
            success=False,
            status="failed",
            intent_id=intent_id,
            failure_reason=self.failure_reason,
        )
