import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
import json
from typing import Dict, List, Optional

from .services.pricing import PricingPolicy


@dataclass
class PricingConfig:
    tax_rate: Decimal
    delivery_fee: Decimal
    currency: str

    def policy(self) -> PricingPolicy:
        return PricingPolicy(tax_rate=self.tax_rate, delivery_fee=self.delivery_fee)


ALLOWED_HOT_KEYS = {"CURRENCY", "TAX_RATE", "DELIVERY_FEE"}
SENSITIVE_KEYS = {"SECRET_KEY", "ORDERING_SECRET_KEY", "DATABASE_URL"}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "USD").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def validate_amount(value, field: str, default: str) -> Decimal:
    raw = default if value is None or str(value).strip() == "" else str(value).strip()
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{field} must be a decimal number") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{field} must be >= 0")
    return amount


def _load_settings_file() -> dict:
    try:
        path = Path(__file__).resolve().parents[1] / "data" / "settings.json"
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        pass
    return {}


def load_env() -> PricingConfig:
    # data/settings.json wins, environment is the fallback
    s = _load_settings_file()
    return PricingConfig(
        tax_rate=validate_amount(s.get("TAX_RATE") or os.getenv("TAX_RATE"), "TAX_RATE", "0"),
        delivery_fee=validate_amount(
            s.get("DELIVERY_FEE") or os.getenv("DELIVERY_FEE"), "DELIVERY_FEE", "5.00"
        ),
        currency=validate_currency(s.get("CURRENCY") or os.getenv("CURRENCY")),
    )


def refresh_non_sensitive(overrides: Dict[str, str], current: PricingConfig) -> PricingConfig:
    updates = {k: v for k, v in (overrides or {}).items() if k in ALLOWED_HOT_KEYS}
    return PricingConfig(
        tax_rate=validate_amount(updates.get("TAX_RATE", current.tax_rate), "TAX_RATE", "0"),
        delivery_fee=validate_amount(
            updates.get("DELIVERY_FEE", current.delivery_fee), "DELIVERY_FEE", "5.00"
        ),
        currency=validate_currency(updates.get("CURRENCY", current.currency)),
    )


def requires_restart(changed_keys: List[str]) -> bool:
    if not changed_keys:
        return False
    return any(k in SENSITIVE_KEYS for k in changed_keys)
