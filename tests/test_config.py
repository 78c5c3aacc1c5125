import json
from decimal import Decimal

import pytest

from config import ServiceConfig
from ordering.config import (
    PricingConfig,
    load_env,
    refresh_non_sensitive,
    requires_restart,
    validate_amount,
    validate_currency,
)
from ordering.services.pricing import PricingPolicy


def test_validate_currency():
    assert validate_currency(" eur ") == "EUR"
    assert validate_currency(None) == "USD"
    with pytest.raises(ValueError):
        validate_currency("EURO")


@pytest.mark.parametrize("raw", ["-0.01", "abc", "NaN", "Infinity"])
def test_validate_amount_rejects_bad_values(raw):
    with pytest.raises(ValueError):
        validate_amount(raw, "TAX_RATE", "0")


def test_load_env_reads_environment(monkeypatch):
    monkeypatch.setenv("TAX_RATE", "0.08")
    monkeypatch.setenv("DELIVERY_FEE", "3.50")
    monkeypatch.setenv("CURRENCY", "gbp")
    monkeypatch.setattr("ordering.config._load_settings_file", lambda: {})
    cfg = load_env()
    assert cfg.tax_rate == Decimal("0.08")
    assert cfg.delivery_fee == Decimal("3.50")
    assert cfg.currency == "GBP"
    assert cfg.policy() == PricingPolicy(tax_rate=Decimal("0.08"), delivery_fee=Decimal("3.50"))


def test_settings_file_wins_over_environment(monkeypatch):
    monkeypatch.setenv("TAX_RATE", "0.08")
    monkeypatch.setattr("ordering.config._load_settings_file", lambda: {"TAX_RATE": "0.2"})
    assert load_env().tax_rate == Decimal("0.2")


def test_refresh_only_applies_hot_keys():
    current = PricingConfig(tax_rate=Decimal("0"), delivery_fee=Decimal("5.00"), currency="USD")
    updated = refresh_non_sensitive({"TAX_RATE": "0.1", "SECRET_KEY": "x"}, current)
    assert updated.tax_rate == Decimal("0.1")
    assert updated.delivery_fee == Decimal("5.00")
    assert requires_restart(["SECRET_KEY"])
    assert not requires_restart(["TAX_RATE"])
    assert not requires_restart([])


def test_service_config_prefers_settings_file(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.db")
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "settings.json").write_text(json.dumps({"DATABASE_URL": "sqlite://"}), encoding="utf-8")
    cfg = ServiceConfig.load(root=tmp_path)
    assert cfg.database_url == "sqlite://"
    assert cfg.settings_file == tmp_path / "data" / "settings.json"
