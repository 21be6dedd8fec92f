# app/services/pricing.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from app.core.money import ZERO, to_money


@dataclass(frozen=True, slots=True)
class PricingBreakdown:
    subtotal: Decimal
    delivery_fee: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    total_price: Decimal


def line_total(unit_price: Decimal, options_price: Decimal, quantity: int) -> Decimal:
    """(unit price + options) x quantity, in cents."""
    return to_money((Decimal(unit_price) + Decimal(options_price)) * quantity)


def compute_pricing(
    item_totals: Iterable[Decimal],
    delivery_fee: Decimal,
    service_fee_rate: Decimal,
    discount_amount: Decimal = ZERO,
) -> PricingBreakdown:
    """
    subtotal     = sum of line totals
    service_fee  = subtotal x rate (half-up to cents)
    total_price  = subtotal + delivery_fee + service_fee - discount_amount

    Every component is rounded to cents before the total is summed, so the
    total reconciles exactly with its parts.
    """
    subtotal = to_money(sum((Decimal(t) for t in item_totals), ZERO))
    delivery_fee = to_money(delivery_fee)
    service_fee = to_money(subtotal * Decimal(service_fee_rate))
    discount_amount = to_money(discount_amount)

    return PricingBreakdown(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        service_fee=service_fee,
        discount_amount=discount_amount,
        total_price=subtotal + delivery_fee + service_fee - discount_amount,
    )


def empty_pricing() -> PricingBreakdown:
    return PricingBreakdown(ZERO, ZERO, ZERO, ZERO, ZERO)
