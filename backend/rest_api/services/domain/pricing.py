"""
Order pricing rules.

Standard: line total = unit price x quantity, order total = sum of lines.
All-you-can-eat: every unit price, line total and order total is zero; the
guest is billed the restaurant's fixed per-person price outside the order.
"""

from __future__ import annotations

from typing import Any

from shared.config.constants import PricingMode


def is_ayce_active(restaurant: Any) -> bool:
    """AYCE applies when enabled and at least one fixed price is configured."""
    return bool(restaurant.all_you_can_eat_enabled) and (
        restaurant.all_you_can_eat_lunch_price_cents is not None
        or restaurant.all_you_can_eat_dinner_price_cents is not None
    )


def pricing_mode_for(restaurant: Any) -> PricingMode:
    return PricingMode.AYCE if is_ayce_active(restaurant) else PricingMode.STANDARD


def unit_price_for(list_price_cents: int, mode: PricingMode) -> int:
    """Unit price recorded on a line under ``mode``."""
    return 0 if mode == PricingMode.AYCE else list_price_cents


def line_total(unit_price_cents: int, quantity: int, mode: PricingMode) -> int:
    if mode == PricingMode.AYCE or quantity <= 0:
        return 0
    return unit_price_cents * quantity


def order_total(lines: list[tuple[int, int]], mode: PricingMode) -> int:
    """Total of (unit_price_cents, quantity) pairs; lines with quantity <= 0 are ignored."""
    return sum(line_total(unit, quantity, mode) for unit, quantity in lines)


def ayce_limit_for(product: Any) -> int | None:
    """Per-order cap of ``product`` under AYCE, or None when uncapped."""
    if product.ayce_limit_enabled and product.ayce_limit_quantity and product.ayce_limit_quantity > 0:
        return product.ayce_limit_quantity
    return None
