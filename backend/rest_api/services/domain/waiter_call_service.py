"""
Waiter Call Service.

Customers raise calls with their table token; staff resolve them. A call
goes active -> resolved once and is never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import ErrorMessages, WaiterCallStatus
from shared.config.logging import customer_logger, floor_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import ConflictError, DatabaseError, NotFoundError
from shared.utils.schemas import WaiterCallOutput
from rest_api.models import WaiterCall, as_utc, utc_now
from rest_api.services.domain.session_gate import CustomerSession


def waiter_call_to_output(call: WaiterCall) -> WaiterCallOutput:
    return WaiterCallOutput(
        id=call.id,
        restaurant_id=call.restaurant_id,
        table_id=call.table_id,
        table_name=call.table.name if call.table else None,
        status=call.status,
        created_at=as_utc(call.created_at),
        resolved_at=as_utc(call.resolved_at),
        resolved_by_id=call.resolved_by_id,
    )


@dataclass(frozen=True)
class WaiterCallRequest:
    call: WaiterCall
    created: bool


class WaiterCallService:
    """Domain service for the waiter call queue."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utc_now):
        self._db = db
        self._now = now

    def _active_for_table(self, restaurant_id: int, table_id: int) -> WaiterCall | None:
        return self._db.scalar(
            select(WaiterCall)
            .options(selectinload(WaiterCall.table))
            .where(
                WaiterCall.restaurant_id == restaurant_id,
                WaiterCall.table_id == table_id,
                WaiterCall.status == WaiterCallStatus.ACTIVE.value,
            )
            .order_by(WaiterCall.created_at.asc(), WaiterCall.id.asc())
            .limit(1)
        )

    def request(self, session: CustomerSession) -> WaiterCallRequest:
        """
        Raise a call for the session's table.

        While a call of the table is still active, that call is returned
        instead of queueing a second one.
        """
        restaurant_id = session.restaurant.id
        table_id = session.table.id

        existing = self._active_for_table(restaurant_id, table_id)
        if existing is not None:
            return WaiterCallRequest(call=existing, created=False)

        call = WaiterCall(
            restaurant_id=restaurant_id,
            table_id=table_id,
            status=WaiterCallStatus.ACTIVE.value,
            created_at=self._now(),
        )
        self._db.add(call)
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("request waiter call", table_id=table_id, error=str(e))
        self._db.refresh(call)

        customer_logger.info(
            "Waiter called",
            call_id=call.id,
            restaurant_id=restaurant_id,
            table_id=table_id,
        )
        return WaiterCallRequest(call=call, created=True)

    def resolve(self, call_id: int, restaurant_id: int, user_id: int | None = None) -> WaiterCall:
        """
        Mark a call resolved.

        Raises:
            NotFoundError: Unknown call or another restaurant's call.
            ConflictError: ALREADY_RESOLVED.
        """
        call = self._db.scalar(
            select(WaiterCall)
            .options(selectinload(WaiterCall.table))
            .where(WaiterCall.id == call_id, WaiterCall.restaurant_id == restaurant_id)
            .with_for_update()
        )
        if call is None:
            raise NotFoundError("Waiter call", call_id, restaurant_id=restaurant_id)
        if call.status == WaiterCallStatus.RESOLVED.value:
            raise ConflictError(
                ErrorMessages.WAITER_CALL_RESOLVED,
                code="ALREADY_RESOLVED",
                call_id=call_id,
            )

        call.status = WaiterCallStatus.RESOLVED.value
        call.resolved_at = self._now()
        call.resolved_by_id = user_id
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("resolve waiter call", call_id=call_id, error=str(e))
        self._db.refresh(call)

        floor_logger.info("Waiter call resolved", call_id=call_id, user_id=user_id)
        return call

    def list_active(self, restaurant_id: int) -> list[WaiterCall]:
        """Active calls, oldest first."""
        return list(
            self._db.scalars(
                select(WaiterCall)
                .options(selectinload(WaiterCall.table))
                .where(
                    WaiterCall.restaurant_id == restaurant_id,
                    WaiterCall.status == WaiterCallStatus.ACTIVE.value,
                )
                .order_by(WaiterCall.created_at.asc(), WaiterCall.id.asc())
            ).all()
        )
