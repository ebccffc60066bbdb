"""Card terminal port (abstract interface).

Defines the contract every card terminal adapter implements. Amounts cross
this boundary in integer minor units. Adapters report declines through the
result object; they raise only for transport failures, which the dispatcher
treats the same way as a decline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class TerminalResult:
    """Outcome of a terminal collection or refund request.

    ``status`` is ``succeeded``, ``failed`` or ``pending``. A pending result
    means the intent was created but not captured yet; ``intent_id`` can be
    passed to ``cancel`` later.
    """

    success: bool
    status: str = "succeeded"
    intent_id: str | None = None
    instrument_summary: str | None = None
    failure_reason: str | None = None


class PaymentTerminal(ABC):
    """Abstract card terminal interface."""

    @abstractmethod
    async def collect_payment(self, amount_minor_units: int, metadata: dict) -> TerminalResult:
        """Capture ``amount_minor_units`` from the presented card."""
        ...

    @abstractmethod
    async def cancel(self, intent_id: str) -> bool:
        """Cancel an uncaptured intent. Best-effort."""
        ...

    @abstractmethod
    async def refund(self, intent_id: str, amount_minor_units: int, reason: str | None = None) -> TerminalResult:
        """Refund part or all of a captured intent."""
        ...
