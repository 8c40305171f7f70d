"""
Multi-Tenancy Model: Restaurant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, IdType

if TYPE_CHECKING:
    from .table import Table
    from .user import User


class Restaurant(AuditMixin, Base):
    """
    Tenant root. Every other row belongs to exactly one restaurant.

    The ordering flags are edited by managers and read by the order
    services: AYCE pricing, prepayment and the per-table order cooldown.
    """

    __tablename__ = "restaurant"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subscription_status: Mapped[str] = mapped_column(Text, default="active")

    # All-you-can-eat: active only when enabled and at least one fixed price is set
    all_you_can_eat_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    all_you_can_eat_lunch_price_cents: Mapped[Optional[int]] = mapped_column(Integer)
    all_you_can_eat_dinner_price_cents: Mapped[Optional[int]] = mapped_column(Integer)

    prepayment_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_cooldown_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_cooldown_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "all_you_can_eat_lunch_price_cents IS NULL OR all_you_can_eat_lunch_price_cents >= 0",
            name="chk_restaurant_ayce_lunch_non_negative",
        ),
        CheckConstraint(
            "all_you_can_eat_dinner_price_cents IS NULL OR all_you_can_eat_dinner_price_cents >= 0",
            name="chk_restaurant_ayce_dinner_non_negative",
        ),
    )

    tables: Mapped[list["Table"]] = relationship(back_populates="restaurant")
    users: Mapped[list["User"]] = relationship(back_populates="restaurant")

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, name='{self.name}')>"
