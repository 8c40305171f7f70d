"""
Waiter call model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, IdType, utc_now
from .table import Table


class WaiterCall(Base):
    """
    A call for service raised from a table. active -> resolved, never deleted.
    """

    __tablename__ = "waiter_call"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(Text, default="active", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_by_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("app_user.id")
    )

    __table_args__ = (
        Index("ix_waiter_call_restaurant_status", "restaurant_id", "status"),
    )

    table: Mapped["Table"] = relationship()

    def __repr__(self) -> str:
        return f"<WaiterCall(id={self.id}, table_id={self.table_id}, status='{self.status}')>"
