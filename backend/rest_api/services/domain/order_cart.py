"""
Order cart: the in-progress order a customer builds before submitting.

The cart is pure, holding no Session. Prices come from the product
objects it is given, never from client input, and AYCE per-product limits
apply per cart: every new order starts a fresh count.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shared.config.constants import ErrorMessages, Limits, PricingMode
from shared.utils.exceptions import ValidationError
from rest_api.services.domain.pricing import (
    ayce_limit_for,
    line_total,
    order_total,
    unit_price_for,
)


def coerce_quantity(raw: Any) -> int:
    """
    Accept whole numbers only.

    Raises:
        ValidationError: INVALID_QUANTITY for booleans, fractions and non-numbers.
    """
    if isinstance(raw, bool):
        raise ValidationError(ErrorMessages.INVALID_QUANTITY, code="INVALID_QUANTITY")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    raise ValidationError(ErrorMessages.INVALID_QUANTITY, code="INVALID_QUANTITY")


@dataclass
class CartLine:
    """One product in the cart."""

    product_id: int
    name: str
    list_price_cents: int
    quantity: int
    ayce_limit: int | None = None
    notes: str | None = None


@dataclass
class OrderCart:
    """
    Lines keyed by product id, in insertion order.

    Under AYCE, ``add_unit`` refuses once a capped product reaches its limit
    and ``set_quantity`` refuses a quantity above it, leaving the line as it
    was in both cases.
    """

    mode: PricingMode = PricingMode.STANDARD
    lines: dict[int, CartLine] = field(default_factory=dict)

    @property
    def limits_apply(self) -> bool:
        return self.mode == PricingMode.AYCE

    def quantity_of(self, product_id: int) -> int:
        line = self.lines.get(product_id)
        return line.quantity if line else 0

    def add_unit(self, product: Any, notes: str | None = None) -> CartLine:
        """Add one unit of ``product``."""
        limit = ayce_limit_for(product) if self.limits_apply else None
        current = self.quantity_of(product.id)
        if limit is not None and current >= limit:
            raise ValidationError(
                ErrorMessages.AYCE_LIMIT_REACHED.format(limit=limit, product=product.name),
                code="AYCE_LIMIT_REACHED",
                product_id=product.id,
                limit=limit,
            )

        line = self.lines.get(product.id)
        if line is None:
            line = CartLine(
                product_id=product.id,
                name=product.name,
                list_price_cents=product.price_cents,
                quantity=0,
                ayce_limit=limit,
                notes=notes,
            )
            self.lines[product.id] = line
        elif notes is not None:
            line.notes = notes
        line.quantity += 1
        return line

    def set_quantity(self, product: Any, quantity: Any) -> CartLine | None:
        """
        Set the quantity of ``product``. Zero or below removes the line.

        Returns:
            The updated line, or None when the line was removed.
        """
        quantity = coerce_quantity(quantity)
        if quantity <= 0:
            self.lines.pop(product.id, None)
            return None

        limit = ayce_limit_for(product) if self.limits_apply else None
        if limit is not None and quantity > limit:
            raise ValidationError(
                ErrorMessages.AYCE_LIMIT_EXCEEDED.format(product=product.name, limit=limit),
                code="AYCE_LIMIT_EXCEEDED",
                product_id=product.id,
                limit=limit,
                requested=quantity,
            )
        if quantity > Limits.MAX_QUANTITY:
            raise ValidationError(
                ErrorMessages.INVALID_QUANTITY,
                code="INVALID_QUANTITY",
                product_id=product.id,
                requested=quantity,
            )

        line = self.lines.get(product.id)
        if line is None:
            line = CartLine(
                product_id=product.id,
                name=product.name,
                list_price_cents=product.price_cents,
                quantity=quantity,
                ayce_limit=limit,
            )
            self.lines[product.id] = line
        else:
            line.quantity = quantity
        return line

    def remove(self, product_id: int) -> None:
        self.lines.pop(product_id, None)

    def unit_price(self, line: CartLine) -> int:
        return unit_price_for(line.list_price_cents, self.mode)

    def line_total(self, line: CartLine) -> int:
        return line_total(self.unit_price(line), line.quantity, self.mode)

    @property
    def total_cents(self) -> int:
        return order_total(
            [(self.unit_price(line), line.quantity) for line in self.lines.values()],
            self.mode,
        )

    def ensure_not_empty(self) -> None:
        """
        Raises:
            ValidationError: EMPTY_ORDER when no line has a positive quantity.
        """
        if not any(line.quantity > 0 for line in self.lines.values()):
            raise ValidationError(ErrorMessages.EMPTY_ORDER, code="EMPTY_ORDER")
