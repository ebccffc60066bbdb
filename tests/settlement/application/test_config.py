"""Tests for loading engine settings from the environment."""

from decimal import Decimal

from settlement.config import DEFAULT_TAX_RATE, SettlementConfig
from settlement.utils.logging import log_level


class TestSettlementConfig:
    def test_defaults(self):
        config = SettlementConfig()
        assert config.tax_rate == DEFAULT_TAX_RATE
        assert config.tip_presets == (15, 18, 20, 25)
        assert config.max_transaction == Decimal("50000.00")
        assert config.max_cash_tender_multiple == 10
        assert config.tier_rates["eagle"] == Decimal("0.20")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_TAX_RATE", "0.07")
        monkeypatch.setenv("SETTLEMENT_TIP_PRESETS", "10,20")
        monkeypatch.setenv("SETTLEMENT_RECEIPT_EMAIL", "off")
        monkeypatch.setenv("SETTLEMENT_REQUIRE_SIGNATURE", "yes")
        monkeypatch.setenv("SETTLEMENT_REGISTER", "pro-shop")

        config = SettlementConfig.from_env()

        assert config.tax_rate == Decimal("0.07")
        assert config.tip_presets == (10, 20)
        assert config.receipt_email is False
        assert config.require_signature is True
        assert config.register == "pro-shop"

    def test_register_default_flows_into_origin(self, service, config):
        txn = service.create([{"name": "Tee", "unit_price": "1.00"}]).value
        assert txn.origin.register_id == config.register


class TestLogLevel:
    def test_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert log_level("production") == "INFO"
        assert log_level("test") == "WARNING"
        assert log_level("development") == "DEBUG"

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert log_level("production") == "ERROR"
