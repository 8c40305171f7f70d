"""
Session Gate.

Decides whether a customer browsing session may proceed and owns the
party-size gate that every order submission passes through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import ErrorMessages, Limits
from shared.config.logging import customer_logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    DatabaseError,
    PartySizeRequiredError,
    TableNotFoundError,
    ValidationError,
)
from rest_api.models import Restaurant, Table, TableToken, as_utc, utc_now
from rest_api.services.domain.pricing import is_ayce_active
from rest_api.services.domain.table_token_service import TableTokenService

_INTEGER_RE = re.compile(r"^[+-]?\d+$", re.ASCII)


@dataclass(frozen=True)
class CustomerSession:
    """A validated customer session at one table."""

    token: TableToken
    table: Table
    restaurant: Restaurant

    @property
    def party_size(self) -> int | None:
        return self.token.party_size

    @property
    def needs_party_size(self) -> bool:
        return self.token.party_size is None


def parse_party_size(candidate: Any) -> int:
    """
    Parse a guest count. Accepts ints and integer strings in [1, party_size_max].

    Raises:
        ValidationError: PARTY_SIZE_INVALID for missing, non-numeric or < 1
            values, PARTY_SIZE_TOO_LARGE above the maximum.
    """
    value: int | None = None
    if isinstance(candidate, bool):
        value = None
    elif isinstance(candidate, int):
        value = candidate
    elif isinstance(candidate, float) and candidate.is_integer():
        value = int(candidate)
    elif isinstance(candidate, str) and _INTEGER_RE.match(candidate.strip()):
        value = int(candidate.strip())

    if value is None or value < Limits.MIN_PARTY_SIZE:
        raise ValidationError(
            ErrorMessages.PARTY_SIZE_INVALID,
            code="PARTY_SIZE_INVALID",
            candidate=repr(candidate)[:32],
        )
    if value > settings.party_size_max:
        raise ValidationError(
            ErrorMessages.PARTY_SIZE_TOO_LARGE.format(max=settings.party_size_max),
            code="PARTY_SIZE_TOO_LARGE",
            candidate=value,
        )
    return value


class SessionGateService:
    """Gate customer access per table and track the party size."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utc_now):
        self._db = db
        self._tokens = TableTokenService(db, now=now)

    def open(self, restaurant_id: int, table_id: int, token: str | None) -> CustomerSession:
        """
        Validate the token before any other data access.

        Raises:
            TableTokenInvalidError: The token does not grant access to this table.
            TableNotFoundError: The table was deactivated after the token was issued.
        """
        token_row = self._tokens.require_valid(token, restaurant_id, table_id)

        table = self._db.scalar(
            select(Table).where(
                Table.id == table_id,
                Table.restaurant_id == restaurant_id,
                Table.is_active.is_(True),
            )
        )
        if table is None:
            raise TableNotFoundError(table_id, restaurant_id=restaurant_id)

        restaurant = self._db.get(Restaurant, restaurant_id)
        return CustomerSession(token=token_row, table=table, restaurant=restaurant)

    def ensure_party_size(self, session: CustomerSession, candidate: Any) -> int:
        """
        Validate and store the guest count on the session's token.

        Returns:
            The stored party size.

        Raises:
            ValidationError: The candidate is not an integer in [1, max].
        """
        party_size = parse_party_size(candidate)
        session.token.party_size = party_size
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("store party size", token_id=session.token.id, error=str(e))

        customer_logger.info(
            "Party size set",
            restaurant_id=session.restaurant.id,
            table_id=session.table.id,
            party_size=party_size,
        )
        return party_size

    @staticmethod
    def require_party_size(session: CustomerSession) -> int:
        """
        Gate order submission on a known party size.

        Raises:
            PartySizeRequiredError: No party size on file; the client reopens the prompt.
        """
        if session.party_size is None:
            raise PartySizeRequiredError(
                restaurant_id=session.restaurant.id,
                table_id=session.table.id,
            )
        return session.party_size

    @staticmethod
    def describe(session: CustomerSession) -> dict:
        """Session summary returned to the customer client."""
        restaurant = session.restaurant
        return {
            "valid": True,
            "restaurant_id": restaurant.id,
            "restaurant_name": restaurant.name,
            "table_id": session.table.id,
            "table_name": session.table.name,
            "expires_at": as_utc(session.token.expires_at),
            "party_size": session.party_size,
            "needs_party_size": session.needs_party_size,
            "ayce_active": is_ayce_active(restaurant),
            "prepayment_required": restaurant.prepayment_required,
        }
