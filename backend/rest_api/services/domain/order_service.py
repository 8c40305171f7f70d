"""
Order Domain Service.

Places customer orders and applies staff corrections. Prices always come
from the product rows; the client only names products and quantities.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import (
    ErrorMessages,
    KITCHEN_VISIBLE_STATUSES,
    OrderStatus,
    PricingMode,
    ProductStatus,
    UserRole,
    get_allowed_order_transitions,
)
from shared.config.logging import customer_logger, floor_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    AlreadyPaidError,
    DatabaseError,
    NotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.schemas import (
    OrderEditLine,
    OrderItemOutput,
    OrderLineInput,
    OrderOutput,
)
from rest_api.models import Order, OrderItem, Product, as_utc, utc_now
from rest_api.services.domain.order_cart import OrderCart
from rest_api.services.domain.pricing import line_total, order_total, pricing_mode_for, unit_price_for
from rest_api.services.domain.session_gate import CustomerSession, SessionGateService


def order_to_output(order: Order, role: UserRole | None = None) -> OrderOutput:
    """
    Build the API view of an order with its lines.

    With a staff ``role``, ``allowed_transitions`` lists the statuses that
    role may move the order to next, which is what the floor and kitchen
    screens render as buttons.
    """
    allowed = get_allowed_order_transitions(OrderStatus(order.status), role) if role else []
    return OrderOutput(
        id=order.id,
        restaurant_id=order.restaurant_id,
        table_id=order.table_id,
        table_name=order.table.name if order.table else None,
        status=order.status,
        pricing_mode=order.pricing_mode,
        total_cents=order.total_cents,
        notes=order.notes,
        party_size=order.party_size,
        payment_method=order.payment_method,
        created_at=as_utc(order.created_at),
        paid_at=as_utc(order.paid_at),
        allowed_transitions=[status.value for status in allowed],
        items=[
            OrderItemOutput(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_price_cents=item.total_price_cents,
                notes=item.notes,
                status=item.status,
            )
            for item in order.items
        ],
    )


@dataclass
class EditResult:
    """Outcome of a staff edit, used to build change events."""

    order: Order
    deleted_item_ids: list[int] = field(default_factory=list)


class OrderService:
    """
    Domain service for placing, editing and listing orders.

    ``now`` is injectable so the order cooldown can be exercised without sleeping.
    """

    def __init__(self, db: Session, now: Callable[[], datetime] = utc_now):
        self._db = db
        self._now = now

    # =========================================================================
    # Queries
    # =========================================================================

    def order_query(self):
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.table),
        )

    def get_order(self, order_id: int, restaurant_id: int, for_update: bool = False) -> Order:
        """
        Load an order of the restaurant with its lines.

        Raises:
            OrderNotFoundError: Unknown id or another restaurant's order.
        """
        query = self.order_query().where(
            Order.id == order_id,
            Order.restaurant_id == restaurant_id,
        )
        if for_update:
            query = query.with_for_update()
        order = self._db.scalar(query)
        if order is None:
            raise OrderNotFoundError(order_id, restaurant_id=restaurant_id)
        return order

    def list_floor_orders(self, restaurant_id: int) -> list[Order]:
        """Every unpaid order of the restaurant, newest first."""
        return list(
            self._db.scalars(
                self.order_query()
                .where(
                    Order.restaurant_id == restaurant_id,
                    Order.status != OrderStatus.PAID.value,
                )
                .order_by(Order.created_at.desc(), Order.id.desc())
            ).all()
        )

    def list_kitchen_orders(self, restaurant_id: int) -> list[Order]:
        """Pending and preparing orders, oldest first."""
        return list(
            self._db.scalars(
                self.order_query()
                .where(
                    Order.restaurant_id == restaurant_id,
                    Order.status.in_([s.value for s in KITCHEN_VISIBLE_STATUSES]),
                )
                .order_by(Order.created_at.asc(), Order.id.asc())
            ).all()
        )

    def list_session_orders(self, session: CustomerSession) -> list[Order]:
        """Orders placed with the session's current token."""
        return list(
            self._db.scalars(
                self.order_query()
                .where(Order.table_token_id == session.token.id)
                .order_by(Order.created_at.asc(), Order.id.asc())
            ).all()
        )

    def _load_products(self, restaurant_id: int, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self._db.scalars(
            select(Product).where(
                Product.id.in_(ids),
                Product.restaurant_id == restaurant_id,
                Product.is_active.is_(True),
            )
        ).all()
        return {product.id: product for product in rows}

    @staticmethod
    def _require_orderable(products: dict[int, Product], product_id: int) -> Product:
        product = products.get(product_id)
        if product is None or product.status != ProductStatus.AVAILABLE.value:
            name = product.name if product is not None else f"Product {product_id}"
            raise ValidationError(
                ErrorMessages.PRODUCT_UNAVAILABLE.format(product=name),
                code="PRODUCT_UNAVAILABLE",
                product_id=product_id,
            )
        return product

    # =========================================================================
    # Place
    # =========================================================================

    def check_cooldown(self, session: CustomerSession) -> None:
        """
        Reject a new order while the table's previous one is too recent.

        Raises:
            ValidationError: ORDER_COOLDOWN with the remaining whole minutes.
        """
        restaurant = session.restaurant
        if not restaurant.order_cooldown_enabled or not restaurant.order_cooldown_minutes:
            return

        last_created = self._db.scalar(
            select(Order.created_at)
            .where(
                Order.restaurant_id == restaurant.id,
                Order.table_id == session.table.id,
            )
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        if last_created is None:
            return

        ready_at = as_utc(last_created) + timedelta(minutes=restaurant.order_cooldown_minutes)
        remaining = ready_at - self._now()
        if remaining.total_seconds() > 0:
            minutes = max(1, math.ceil(remaining.total_seconds() / 60))
            raise ValidationError(
                ErrorMessages.ORDER_COOLDOWN.format(minutes=minutes),
                code="ORDER_COOLDOWN",
                table_id=session.table.id,
                remaining_minutes=minutes,
            )

    def build_cart(self, session: CustomerSession, lines: list[OrderLineInput]) -> OrderCart:
        """
        Price the requested lines under the restaurant's current mode.

        Repeated product ids are merged before the AYCE limit is checked.
        """
        cart = OrderCart(mode=pricing_mode_for(session.restaurant))
        products = self._load_products(session.restaurant.id, (line.product_id for line in lines))

        requested: dict[int, int] = {}
        notes: dict[int, str] = {}
        for line in lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
            if line.notes:
                notes[line.product_id] = line.notes

        for product_id, quantity in requested.items():
            if quantity <= 0:
                continue
            product = self._require_orderable(products, product_id)
            cart_line = cart.set_quantity(product, quantity)
            if cart_line is not None:
                cart_line.notes = notes.get(product_id)
        return cart

    def place_order(
        self,
        session: CustomerSession,
        lines: list[OrderLineInput],
        notes: str | None = None,
    ) -> Order:
        """
        Submit the customer's cart as a new ``pending`` order.

        Checks run before any write: party size, cart contents, cooldown.

        Raises:
            PartySizeRequiredError: No party size on the session yet.
            ValidationError: Empty cart, AYCE limit, unavailable product or cooldown.
            DatabaseError: The order could not be committed.
        """
        party_size = SessionGateService.require_party_size(session)
        cart = self.build_cart(session, lines)
        cart.ensure_not_empty()
        self.check_cooldown(session)

        status = OrderStatus.PENDING.value
        order = Order(
            restaurant_id=session.restaurant.id,
            table_id=session.table.id,
            table_token_id=session.token.id,
            status=status,
            pricing_mode=cart.mode.value,
            total_cents=cart.total_cents,
            notes=notes,
            party_size=party_size,
            created_at=self._now(),
        )
        for cart_line in cart.lines.values():
            order.items.append(
                OrderItem(
                    product_id=cart_line.product_id,
                    quantity=cart_line.quantity,
                    unit_price_cents=cart.unit_price(cart_line),
                    total_price_cents=cart.line_total(cart_line),
                    notes=cart_line.notes,
                    status=status,
                )
            )
        self._db.add(order)

        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError(
                "place order",
                restaurant_id=session.restaurant.id,
                table_id=session.table.id,
                error=str(e),
            )

        order = self.get_order(order.id, session.restaurant.id)
        customer_logger.info(
            "Order placed",
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            table_id=order.table_id,
            pricing_mode=order.pricing_mode,
            total_cents=order.total_cents,
            lines=len(order.items),
        )
        return order

    # =========================================================================
    # Staff edit
    # =========================================================================

    def edit_order(
        self,
        order_id: int,
        restaurant_id: int,
        lines: list[OrderEditLine],
        removed_item_ids: Iterable[int] = (),
        notes: str | None = None,
        update_notes: bool = False,
        user_id: int | None = None,
        user_email: str | None = None,
    ) -> EditResult:
        """
        Apply a staff correction to a submitted order.

        The order keeps the pricing mode it was placed under and no AYCE limit
        applies. Existing lines keep their recorded unit price; new lines take
        the product's current price. Every touched or new line takes the
        order's status. Removal wins over any update of the same line.

        Raises:
            OrderNotFoundError: Unknown order.
            AlreadyPaidError: Paid orders are closed for edits.
            NotFoundError: A line id that is not part of the order.
            ValidationError: EMPTY_ORDER when no line would survive.
        """
        order = self.get_order(order_id, restaurant_id, for_update=True)
        if order.status == OrderStatus.PAID.value:
            raise AlreadyPaidError(order.id)

        mode = PricingMode(order.pricing_mode)
        existing = {item.id: item for item in order.items}

        removed: set[int] = set()
        for item_id in removed_item_ids:
            if item_id not in existing:
                raise NotFoundError("Order item", item_id, order_id=order.id)
            removed.add(item_id)

        updates: dict[int, OrderEditLine] = {}
        additions: list[OrderEditLine] = []
        for line in lines:
            if line.item_id is not None:
                if line.item_id not in existing:
                    raise NotFoundError("Order item", line.item_id, order_id=order.id)
                if line.item_id in removed:
                    continue
                if line.quantity <= 0:
                    removed.add(line.item_id)
                else:
                    updates[line.item_id] = line
            elif line.product_id is not None:
                if line.quantity > 0:
                    additions.append(line)
            else:
                raise ValidationError(
                    "Each new line needs a product",
                    code="VALIDATION_ERROR",
                    order_id=order.id,
                )

        products = self._load_products(restaurant_id, (line.product_id for line in additions))
        added_products = [self._require_orderable(products, line.product_id) for line in additions]

        survivors = [item_id for item_id in existing if item_id not in removed]
        if not survivors and not additions:
            raise ValidationError(ErrorMessages.EMPTY_ORDER, code="EMPTY_ORDER", order_id=order.id)

        for item_id in removed:
            order.items.remove(existing[item_id])

        for item_id, line in updates.items():
            item = existing[item_id]
            item.quantity = line.quantity
            item.notes = line.notes
            item.status = order.status

        for line, product in zip(additions, added_products):
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price_cents=unit_price_for(product.price_cents, mode),
                    total_price_cents=0,
                    notes=line.notes,
                    status=order.status,
                )
            )

        for item in order.items:
            item.total_price_cents = line_total(item.unit_price_cents, item.quantity, mode)
        order.total_cents = order_total(
            [(item.unit_price_cents, item.quantity) for item in order.items], mode
        )
        if update_notes:
            order.notes = notes
        order.set_updated_by(user_id, user_email)

        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("edit order", order_id=order.id, error=str(e))

        self._db.expire(order)
        order = self.get_order(order_id, restaurant_id)
        floor_logger.info(
            "Order edited",
            order_id=order.id,
            user_id=user_id,
            removed=len(removed),
            updated=len(updates),
            added=len(additions),
            total_cents=order.total_cents,
        )
        return EditResult(order=order, deleted_item_ids=sorted(removed))
