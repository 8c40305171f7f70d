"""
Menu Models: Category, Product.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, IdType


class Category(AuditMixin, Base):
    """Menu section of a restaurant."""

    __tablename__ = "category"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    products: Mapped[list["Product"]] = relationship(back_populates="category")


class Product(AuditMixin, Base):
    """
    Menu item. ``price_cents`` is the authoritative price every order line
    is computed from.

    With the AYCE plan active, ``ayce_limit_quantity`` caps how many units
    of the product one order may carry.
    """

    __tablename__ = "product"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("category.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="available", nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ayce_limit_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ayce_limit_quantity: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="chk_product_price_non_negative"),
        CheckConstraint(
            "NOT ayce_limit_enabled OR (ayce_limit_quantity IS NOT NULL AND ayce_limit_quantity > 0)",
            name="chk_product_ayce_limit_positive",
        ),
    )

    category: Mapped["Category"] = relationship(back_populates="products")

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name}', price_cents={self.price_cents})>"
