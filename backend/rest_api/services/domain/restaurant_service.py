"""
Restaurant Service: customer menu and the manager-edited ordering settings.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import Limits, ProductStatus
from shared.config.logging import rest_api_logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import DatabaseError, NotFoundError, ValidationError
from shared.utils.schemas import (
    MenuCategoryOutput,
    MenuOutput,
    MenuProductOutput,
    RestaurantSettingsOutput,
)
from rest_api.models import Category, Product, Restaurant
from rest_api.services.domain.pricing import ayce_limit_for, is_ayce_active
from rest_api.services.domain.session_gate import CustomerSession

_PRICE_FIELDS = ("all_you_can_eat_lunch_price_cents", "all_you_can_eat_dinner_price_cents")
_FLAG_FIELDS = ("order_cooldown_enabled", "prepayment_required", "all_you_can_eat_enabled")


def settings_to_output(restaurant: Restaurant) -> RestaurantSettingsOutput:
    return RestaurantSettingsOutput(
        restaurant_id=restaurant.id,
        order_cooldown_enabled=restaurant.order_cooldown_enabled,
        order_cooldown_minutes=restaurant.order_cooldown_minutes,
        prepayment_required=restaurant.prepayment_required,
        all_you_can_eat_enabled=restaurant.all_you_can_eat_enabled,
        all_you_can_eat_lunch_price_cents=restaurant.all_you_can_eat_lunch_price_cents,
        all_you_can_eat_dinner_price_cents=restaurant.all_you_can_eat_dinner_price_cents,
        ayce_active=is_ayce_active(restaurant),
    )


def parse_cooldown_minutes(raw: Any) -> int:
    """
    Blank falls back to the default; anything else must be a whole number
    of minutes within the allowed range.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return settings.order_cooldown_default_minutes

    value: int | None = None
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        value = int(raw.strip())

    if value is None or not (
        Limits.MIN_ORDER_COOLDOWN_MINUTES <= value <= settings.order_cooldown_max_minutes
    ):
        raise ValidationError(
            f"The order cooldown must be between {Limits.MIN_ORDER_COOLDOWN_MINUTES} "
            f"and {settings.order_cooldown_max_minutes} minutes",
            code="INVALID_SETTING",
            field="order_cooldown_minutes",
        )
    return value


class RestaurantService:
    def __init__(self, db: Session):
        self._db = db

    def get(self, restaurant_id: int) -> Restaurant:
        restaurant = self._db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return restaurant

    def menu(self, session: CustomerSession) -> MenuOutput:
        """Active categories with their available products, in display order."""
        restaurant = session.restaurant
        categories = self._db.scalars(
            select(Category)
            .where(Category.restaurant_id == restaurant.id, Category.is_active.is_(True))
            .order_by(Category.display_order, Category.id)
        ).all()
        products = self._db.scalars(
            select(Product)
            .where(
                Product.restaurant_id == restaurant.id,
                Product.is_active.is_(True),
                Product.status == ProductStatus.AVAILABLE.value,
            )
            .order_by(Product.display_order, Product.id)
        ).all()

        by_category: dict[int, list[MenuProductOutput]] = {}
        for product in products:
            by_category.setdefault(product.category_id, []).append(
                MenuProductOutput(
                    id=product.id,
                    category_id=product.category_id,
                    name=product.name,
                    description=product.description,
                    price_cents=product.price_cents,
                    ayce_limit=ayce_limit_for(product),
                )
            )

        return MenuOutput(
            restaurant_id=restaurant.id,
            restaurant_name=restaurant.name,
            table_id=session.table.id,
            table_name=session.table.name,
            ayce_active=is_ayce_active(restaurant),
            ayce_lunch_price_cents=restaurant.all_you_can_eat_lunch_price_cents,
            ayce_dinner_price_cents=restaurant.all_you_can_eat_dinner_price_cents,
            prepayment_required=restaurant.prepayment_required,
            categories=[
                MenuCategoryOutput(
                    id=category.id,
                    name=category.name,
                    products=by_category.get(category.id, []),
                )
                for category in categories
            ],
        )

    def update_settings(
        self,
        restaurant_id: int,
        changes: dict[str, Any],
        user_id: int | None = None,
        user_email: str | None = None,
    ) -> Restaurant:
        """
        Apply the fields present in ``changes``. Nothing is written when any
        field is invalid.

        Raises:
            ValidationError: INVALID_SETTING.
        """
        restaurant = self.get(restaurant_id)
        updates: dict[str, Any] = {}

        if "order_cooldown_minutes" in changes:
            updates["order_cooldown_minutes"] = parse_cooldown_minutes(
                changes["order_cooldown_minutes"]
            )
        for name in _FLAG_FIELDS:
            if name in changes:
                if changes[name] is None:
                    raise ValidationError(
                        f"{name} must be true or false", code="INVALID_SETTING", field=name
                    )
                updates[name] = bool(changes[name])
        for name in _PRICE_FIELDS:
            if name in changes:
                price = changes[name]
                if price is not None and price < 0:
                    raise ValidationError(
                        "All-you-can-eat prices must not be negative",
                        code="INVALID_SETTING",
                        field=name,
                    )
                updates[name] = price

        for name, value in updates.items():
            setattr(restaurant, name, value)
        restaurant.set_updated_by(user_id, user_email)
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("update restaurant settings", restaurant_id=restaurant_id, error=str(e))
        self._db.refresh(restaurant)

        rest_api_logger.info(
            "Restaurant settings updated",
            restaurant_id=restaurant_id,
            user_id=user_id,
            fields=sorted(updates),
        )
        return restaurant
