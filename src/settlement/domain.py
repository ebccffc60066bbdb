"""Settlement bounded context: Point-of-Sale Transactions and Payments.

Handles the transaction ledger (CQRS aggregate), payment collection across
cash, card, gift card and house account instruments, refunds and voids.
External services (card terminal, gift card ledger, customer directory,
event bus, receipts) are reached through ports with swappable adapters.
"""

import structlog
from protean.domain import Domain

from settlement.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
settlement = Domain(name="settlement")
