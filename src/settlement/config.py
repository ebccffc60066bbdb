"""Settlement engine settings.

Protean's own configuration (databases, brokers, event processing) lives in
``domain.toml`` beside the domain module. The values here are the venue's
point-of-sale policy knobs, read from ``SETTLEMENT_*`` environment variables
so each register can be configured without code changes.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal

from settlement.pricing.tiers import DEFAULT_TIER_RATES

DEFAULT_TAX_RATE = Decimal("0.0635")
DEFAULT_TIP_PRESETS = (15, 18, 20, 25)
MAX_TRANSACTION = Decimal("50000.00")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.environ.get(name)
    return Decimal(value) if value else default


@dataclass(frozen=True)
class SettlementConfig:
    """Point-of-sale policy applied by the settlement services."""

    tax_rate: Decimal = DEFAULT_TAX_RATE
    tip_presets: tuple[int, ...] = DEFAULT_TIP_PRESETS
    receipt_email: bool = True
    require_signature: bool = False
    signature_threshold: Decimal = Decimal("25.00")
    max_transaction: Decimal = MAX_TRANSACTION
    max_cash_tender_multiple: int = 10
    register: str = "main"
    currency: str = "USD"
    tier_rates: dict = field(default_factory=lambda: dict(DEFAULT_TIER_RATES))

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """Build the configuration from ``SETTLEMENT_*`` environment variables."""
        presets = os.environ.get("SETTLEMENT_TIP_PRESETS")
        return cls(
            tax_rate=_env_decimal("SETTLEMENT_TAX_RATE", DEFAULT_TAX_RATE),
            tip_presets=tuple(int(p) for p in presets.split(",")) if presets else DEFAULT_TIP_PRESETS,
            receipt_email=_env_bool("SETTLEMENT_RECEIPT_EMAIL", True),
            require_signature=_env_bool("SETTLEMENT_REQUIRE_SIGNATURE", False),
            signature_threshold=_env_decimal("SETTLEMENT_SIGNATURE_THRESHOLD", Decimal("25.00")),
            max_transaction=_env_decimal("SETTLEMENT_MAX_TRANSACTION", MAX_TRANSACTION),
            max_cash_tender_multiple=int(os.environ.get("SETTLEMENT_MAX_CASH_TENDER_MULTIPLE", "10")),
            register=os.environ.get("SETTLEMENT_REGISTER", "main"),
            currency=os.environ.get("SETTLEMENT_CURRENCY", "USD"),
        )
