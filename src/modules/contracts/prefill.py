"""Contract prefill data.

Amounts come from the pricing calculator so the signed documents always
agree with the order summary and the payment step.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

from modules.contracts.constants import ContractPackId
from modules.pricing.calculator import price_breakdown
from modules.storefront_settings.dtos import PricingSettings


def format_dollars(cents: Any) -> str:
    """Calculator cents to a contract amount: ``Decimal("96156.25") -> "$961.56"``."""
    dollars = (Decimal(cents) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"${dollars:,.2f}"


def build_prefill(build: Any, settings: PricingSettings, pack: str) -> Dict[str, str]:
    info = build.buyer_info or {}
    breakdown = price_breakdown(build, settings)
    address = ", ".join(
        part
        for part in (info.get("address"), info.get("city"), info.get("state"), info.get("zip"))
        if part
    )
    data = {
        "buyer_full_name": build.buyer_full_name(),
        "buyer_email": info.get("email", ""),
        "buyer_phone": info.get("phone", ""),
        "buyer_address": address,
        "model_brand": settings.factory_name,
        "model_code": build.model_slug,
        "model_name": build.model_name or build.model_slug,
        "price_base": format_dollars(breakdown.base_price),
        "price_options": format_dollars(breakdown.options_subtotal),
        "price_freight_est": format_dollars(breakdown.delivery_fee),
        "price_setup": format_dollars(breakdown.setup_fee),
        "price_other": format_dollars(breakdown.title_fee),
        "price_tax": format_dollars(breakdown.sales_tax),
        "price_total": format_dollars(breakdown.total),
        "deposit_due": format_dollars(breakdown.deposit_due),
        "final_payment": format_dollars(breakdown.final_payment),
    }
    if pack == ContractPackId.DELIVERY:
        data["delivery_address"] = info.get("delivery_address") or address
        data["factory_address"] = settings.factory_address
    return data
