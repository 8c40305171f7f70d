"""
Table and Token Models: Table, TableToken.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, IdType, utc_now

if TYPE_CHECKING:
    from .tenant import Restaurant


class Table(AuditMixin, Base):
    """
    Physical table in a restaurant. Identity is immutable; name and the
    active flag are edited by staff.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    area: Mapped[Optional[str]] = mapped_column(Text)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="tables")
    tokens: Mapped[list["TableToken"]] = relationship(back_populates="table")

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, name='{self.name}', restaurant_id={self.restaurant_id})>"


class TableToken(Base):
    """
    Bearer credential for one (restaurant, table) pair, minted by a QR scan.

    Rows are never deleted, only flagged revoked, so the table's session
    history stays auditable. The party size of the seating lives here.
    """

    __tablename__ = "table_token"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    revoked_reason: Mapped[Optional[str]] = mapped_column(Text)  # superseded, table_closed, manual
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    party_size: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        # Bulk revoke and "live token of this table" lookups
        Index("ix_table_token_table_revoked", "restaurant_id", "table_id", "revoked"),
    )

    table: Mapped["Table"] = relationship(back_populates="tokens")

    def __repr__(self) -> str:
        state = "revoked" if self.revoked else "live"
        return f"<TableToken(id={self.id}, table_id={self.table_id}, {state})>"
