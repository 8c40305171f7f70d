"""
Table Token Service.

Issues, validates and revokes the bearer tokens that bind a customer's
browsing session to one physical table.

Issuance is a single transaction: the table row is locked, every live
token of the table is revoked and the new token inserted before one
commit. Two concurrent scans of the same table therefore serialize on the
row lock and at most one token per table is ever live.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import TokenInvalidReason, TokenRevokeReason
from shared.config.logging import audit_token_event, get_logger, mask_token
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import DatabaseError, TableNotFoundError, TableTokenInvalidError
from rest_api.models import Table, TableToken, as_utc, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenIssue:
    """Result of a QR scan: the new token and the tokens it superseded."""

    token: TableToken
    superseded_ids: list[int]


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of validating a token against the table the URL names."""

    valid: bool
    reason: TokenInvalidReason | None = None
    token: TableToken | None = None


def generate_token_value() -> str:
    """URL-safe random token with at least 128 bits of entropy."""
    return secrets.token_urlsafe(max(settings.table_token_bytes, 16))


class TableTokenService:
    """
    Domain service for the table token lifecycle.

    ``now`` is injectable so expiry can be exercised without sleeping.
    """

    def __init__(self, db: Session, now: Callable[[], datetime] = utc_now):
        self._db = db
        self._now = now

    # =========================================================================
    # Issue
    # =========================================================================

    def issue(self, restaurant_id: int, table_id: int) -> TokenIssue:
        """
        Mint a fresh token for the table, revoking every earlier one.

        The party size of the newest unexpired token carries over, so a guest
        rescanning the same table is not asked again; an expired token marks
        a finished seating and passes nothing on.

        Raises:
            TableNotFoundError: Unknown or inactive table.
            DatabaseError: The transaction could not be committed.
        """
        table = self._db.scalar(
            select(Table)
            .where(
                Table.id == table_id,
                Table.restaurant_id == restaurant_id,
                Table.is_active.is_(True),
            )
            .with_for_update()
        )
        if table is None:
            raise TableNotFoundError(table_id, restaurant_id=restaurant_id)

        now = self._now()
        live = self._db.scalars(
            select(TableToken)
            .where(
                TableToken.restaurant_id == restaurant_id,
                TableToken.table_id == table_id,
                TableToken.revoked.is_(False),
            )
            .order_by(TableToken.created_at.desc(), TableToken.id.desc())
        ).all()
        # Only a seating still in progress carries its guest count over
        current = next((row for row in live if as_utc(row.expires_at) >= now), None)
        inherited_party_size = current.party_size if current else None

        for previous in live:
            previous.revoked = True
            previous.revoked_at = now
            previous.revoked_reason = TokenRevokeReason.SUPERSEDED

        token = TableToken(
            restaurant_id=restaurant_id,
            table_id=table_id,
            token=generate_token_value(),
            created_at=now,
            expires_at=now + timedelta(hours=settings.table_token_ttl_hours),
            revoked=False,
            party_size=inherited_party_size,
        )
        self._db.add(token)

        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError(
                "issue table token",
                restaurant_id=restaurant_id,
                table_id=table_id,
                error=str(e),
            )
        self._db.refresh(token)

        superseded_ids = [previous.id for previous in live]
        audit_token_event(
            "ISSUED",
            restaurant_id=restaurant_id,
            table_id=table_id,
            token_hash=mask_token(token.token),
            superseded=len(superseded_ids),
        )
        return TokenIssue(token=token, superseded_ids=superseded_ids)

    # =========================================================================
    # Validate
    # =========================================================================

    def validate(
        self,
        token: str | None,
        expected_restaurant_id: int,
        expected_table_id: int,
        touch: bool = True,
    ) -> TokenValidation:
        """
        Check a token against the (restaurant, table) the request names.

        Reasons are checked in a fixed order: missing, not found, restaurant
        mismatch, table mismatch, expired, revoked. A missing token never
        reaches the database.
        """
        if not token:
            return TokenValidation(valid=False, reason=TokenInvalidReason.MISSING)

        row = self._db.scalar(select(TableToken).where(TableToken.token == token))
        reason = self._failure_reason(row, expected_restaurant_id, expected_table_id)
        if reason is not None:
            audit_token_event(
                "REJECTED",
                restaurant_id=expected_restaurant_id,
                table_id=expected_table_id,
                token_hash=mask_token(token),
                reason=reason.value,
            )
            return TokenValidation(valid=False, reason=reason, token=row)

        if touch:
            self._touch(row)
        return TokenValidation(valid=True, token=row)

    def require_valid(
        self,
        token: str | None,
        expected_restaurant_id: int,
        expected_table_id: int,
    ) -> TableToken:
        """
        Validate or raise.

        Raises:
            TableTokenInvalidError: With the failure reason as its code.
        """
        result = self.validate(token, expected_restaurant_id, expected_table_id)
        if not result.valid:
            raise TableTokenInvalidError(
                result.reason,
                restaurant_id=expected_restaurant_id,
                table_id=expected_table_id,
            )
        return result.token

    def _failure_reason(
        self,
        row: TableToken | None,
        expected_restaurant_id: int,
        expected_table_id: int,
    ) -> TokenInvalidReason | None:
        if row is None:
            return TokenInvalidReason.NOT_FOUND
        if row.restaurant_id != expected_restaurant_id:
            return TokenInvalidReason.RESTAURANT_MISMATCH
        if row.table_id != expected_table_id:
            return TokenInvalidReason.TABLE_MISMATCH
        if self._now() > as_utc(row.expires_at):
            return TokenInvalidReason.EXPIRED
        if row.revoked:
            return TokenInvalidReason.REVOKED
        return None

    def _touch(self, row: TableToken) -> None:
        # Bookkeeping only: a failed stamp must not lock the guest out
        row.last_used_at = self._now()
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            logger.warning("Failed to record token use", token_id=row.id, error=str(e))

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, token: str) -> dict | None:
        """
        Resolve a live token without knowing its table.

        Returns {id, restaurant_id, table_id, expires_at} for a token that is
        neither revoked nor expired, otherwise None.
        """
        row = self._db.scalar(
            select(TableToken).where(
                TableToken.token == token,
                TableToken.revoked.is_(False),
            )
        )
        if row is None or self._now() > as_utc(row.expires_at):
            return None
        return {
            "id": row.id,
            "restaurant_id": row.restaurant_id,
            "table_id": row.table_id,
            "expires_at": as_utc(row.expires_at),
        }

    # =========================================================================
    # Revoke
    # =========================================================================

    def revoke_all_for_table(
        self,
        restaurant_id: int,
        table_id: int,
        reason: str = TokenRevokeReason.TABLE_CLOSED,
        commit: bool = True,
    ) -> list[int]:
        """
        Revoke every live token of the table. Idempotent.

        Returns:
            Ids of the tokens revoked by this call (empty when none were live).
        """
        ids = list(
            self._db.scalars(
                select(TableToken.id).where(
                    TableToken.restaurant_id == restaurant_id,
                    TableToken.table_id == table_id,
                    TableToken.revoked.is_(False),
                )
            ).all()
        )
        if not ids:
            return []

        self._db.execute(
            update(TableToken)
            .where(TableToken.id.in_(ids))
            .values(revoked=True, revoked_at=self._now(), revoked_reason=reason)
            .execution_options(synchronize_session="fetch")
        )
        if commit:
            safe_commit(self._db)

        audit_token_event(
            "REVOKED",
            restaurant_id=restaurant_id,
            table_id=table_id,
            reason=reason,
            count=len(ids),
        )
        return ids

    def get_tokens(self, ids: list[int]) -> list[TableToken]:
        """Load token rows by id (for change events)."""
        if not ids:
            return []
        return list(self._db.scalars(select(TableToken).where(TableToken.id.in_(ids))).all())
