"""Pricing Calculator.

The only implementation of the purchase-price formula::

    total = (base + sum(option.price * quantity) + delivery + title + setup)
            * (1 + tax_rate_percent / 100)

It is used by the order summary, the payment services and the contract
prefill.  All arithmetic is ``Decimal``; nothing is rounded until an
amount has to be charged (``to_chargeable_cents``).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from modules.pricing.dtos import PriceBreakdown
from modules.storefront_settings.dtos import PricingSettings

HUNDRED = Decimal("100")
ONE_CENT = Decimal("1")


def calculate_total(build: Any, settings: PricingSettings) -> Decimal:
    """Total purchase price in (possibly fractional) cents."""
    return _subtotal_before_tax(build, settings) * (
        1 + settings.tax_rate_percent / HUNDRED
    )


def price_breakdown(build: Any, settings: PricingSettings) -> PriceBreakdown:
    base = _money(_field(build, "base_price_cents"))
    options = options_subtotal(_field(build, "options") or [])
    delivery = _money(_field(build, "delivery_fee_cents"))
    fees = delivery + settings.title_fee_default + settings.setup_fee_default
    subtotal = base + options + fees
    total = calculate_total(build, settings)
    total_chargeable = to_chargeable_cents(total)
    deposit = deposit_cents(total, settings.deposit_percent)
    return PriceBreakdown(
        base_price=base,
        options_subtotal=options,
        delivery_fee=delivery,
        title_fee=settings.title_fee_default,
        setup_fee=settings.setup_fee_default,
        fees_subtotal=fees,
        subtotal_before_tax=subtotal,
        tax_rate_percent=settings.tax_rate_percent,
        sales_tax=total - subtotal,
        total=total,
        deposit_percent=settings.deposit_percent,
        deposit_due=deposit,
        final_payment=total_chargeable - deposit,
        total_chargeable=total_chargeable,
    )


def options_subtotal(options: Iterable[Any]) -> Decimal:
    subtotal = Decimal("0")
    for option in options:
        price = _money(_field(option, "price"))
        quantity = _field(option, "quantity") or 1
        subtotal += price * Decimal(int(quantity))
    return subtotal


def to_chargeable_cents(amount: Decimal) -> int:
    """Round half-up to whole cents for the payment processor."""
    return int(amount.quantize(ONE_CENT, rounding=ROUND_HALF_UP))


def deposit_cents(total: Decimal, percent: Decimal) -> int:
    return to_chargeable_cents(total * percent / HUNDRED)


def _subtotal_before_tax(build: Any, settings: PricingSettings) -> Decimal:
    return (
        _money(_field(build, "base_price_cents"))
        + options_subtotal(_field(build, "options") or [])
        + _money(_field(build, "delivery_fee_cents"))
        + settings.title_fee_default
        + settings.setup_fee_default
    )


def _field(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _money(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
