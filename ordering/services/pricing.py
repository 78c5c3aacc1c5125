from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple

from .status import OrderType


CENT = Decimal("0.01")
# largest value the Numeric(10,2) money columns hold
MAX_AMOUNT = Decimal("99999999.99")


def to_money(value) -> Decimal:
    """Quantise to cents. Floats go through ``str`` so 0.1 stays 0.10."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class PricingPolicy:
    """Tax and delivery fee rules; rates come from configuration."""

    tax_rate: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("5.00")

    def line_total(self, unit_price: Decimal, quantity: int) -> Decimal:
        return to_money(unit_price * quantity)

    def quote(self, lines: Iterable[Tuple[Decimal, int]], order_type: OrderType) -> PriceQuote:
        subtotal = to_money(sum((self.line_total(price, qty) for price, qty in lines), Decimal("0")))
        tax = to_money(subtotal * self.tax_rate)
        fee = to_money(self.delivery_fee) if order_type is OrderType.DELIVERY else to_money(0)
        # summed from the rounded parts so total == subtotal + tax + fee exactly
        return PriceQuote(subtotal=subtotal, tax_amount=tax, delivery_fee=fee, total_amount=subtotal + tax + fee)
