"""
Order Workflow Service.

The order state machine: pending -> preparing -> ready -> served -> paid,
forward only. Every transition mirrors the new status onto the order's
lines, and who may request each target status is checked here rather than
left to the client.

Payment and token revocation are separate commits. When the revocation
fails after the payment committed, PartialApplicationError tells the
caller to close the table again; revocation is idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import (
    ErrorMessages,
    OPEN_ORDER_STATUSES,
    OrderStatus,
    PaymentMethod,
    TokenRevokeReason,
    UserRole,
    role_may_set_status,
    validate_order_transition,
)
from shared.config.logging import floor_logger, kitchen_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    AlreadyPaidError,
    DatabaseError,
    InvalidTransitionError,
    PartialApplicationError,
    TableNotFoundError,
    TransitionNotAllowedError,
    ValidationError,
)
from rest_api.models import Order, Table, utc_now
from rest_api.services.domain.order_service import OrderService
from rest_api.services.domain.table_token_service import TableTokenService


@dataclass
class TransitionResult:
    """The refetched order and what changed around it."""

    order: Order
    old_status: str
    changed: bool = True
    revoked_token_ids: list[int] = field(default_factory=list)


@dataclass
class CloseTableResult:
    table_id: int
    paid_orders: list[Order] = field(default_factory=list)
    old_statuses: dict[int, str] = field(default_factory=dict)
    revoked_token_ids: list[int] = field(default_factory=list)


class OrderWorkflowService:
    """Status transitions, payment and table close."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utc_now):
        self._db = db
        self._now = now
        self._orders = OrderService(db, now=now)
        self._tokens = TableTokenService(db, now=now)

    @staticmethod
    def _authorize(role: UserRole, target: OrderStatus, **log_context) -> None:
        if not role_may_set_status(role, target):
            raise TransitionNotAllowedError(role.value, target.value, **log_context)

    @staticmethod
    def _require_method(method: PaymentMethod | str | None) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            raise ValidationError(
                ErrorMessages.PAYMENT_METHOD_REQUIRED,
                code="PAYMENT_METHOD_REQUIRED",
            )

    @staticmethod
    def _apply_status(order: Order, target: OrderStatus) -> None:
        order.status = target.value
        for item in order.items:
            item.status = target.value

    # =========================================================================
    # Kitchen and floor transitions
    # =========================================================================

    def set_status(
        self,
        order_id: int,
        restaurant_id: int,
        target: OrderStatus,
        role: UserRole,
        user_id: int | None = None,
        user_email: str | None = None,
    ) -> TransitionResult:
        """
        Move an order one step forward.

        Re-applying the current status is a no-op, so two staff members
        pressing the same button both succeed. ``paid`` is reached through
        ``pay`` only, since it needs a payment method.

        Raises:
            TransitionNotAllowedError: The role may not set ``target``.
            ValidationError: PAYMENT_METHOD_REQUIRED when ``target`` is paid.
            InvalidTransitionError: The state machine has no such edge.
            DatabaseError: The transition could not be committed.
        """
        self._authorize(role, target, order_id=order_id, user_id=user_id)
        if target == OrderStatus.PAID:
            raise ValidationError(
                ErrorMessages.PAYMENT_METHOD_REQUIRED,
                code="PAYMENT_METHOD_REQUIRED",
                order_id=order_id,
            )

        order = self._orders.get_order(order_id, restaurant_id, for_update=True)
        old_status = order.status
        if old_status == target.value:
            return TransitionResult(order=order, old_status=old_status, changed=False)

        if not validate_order_transition(OrderStatus(old_status), target):
            raise InvalidTransitionError("Order", old_status, target.value, order_id=order_id)

        self._apply_status(order, target)
        order.set_updated_by(user_id, user_email)
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("update order status", order_id=order_id, error=str(e))

        logger = kitchen_logger if target in (OrderStatus.PREPARING, OrderStatus.READY) else floor_logger
        logger.info(
            "Order status changed",
            order_id=order_id,
            restaurant_id=restaurant_id,
            from_status=old_status,
            to_status=target.value,
            role=role.value,
            user_id=user_id,
        )
        return TransitionResult(
            order=self._orders.get_order(order_id, restaurant_id),
            old_status=old_status,
        )

    # =========================================================================
    # Payment
    # =========================================================================

    def pay(
        self,
        order_id: int,
        restaurant_id: int,
        method: PaymentMethod | str | None,
        role: UserRole,
        user_id: int | None = None,
        user_email: str | None = None,
    ) -> TransitionResult:
        """
        Mark one order paid.

        Paying the table's last unpaid order revokes the table's tokens, which
        ends the customer session.

        Raises:
            TransitionNotAllowedError: Kitchen accounts may not take payments.
            ValidationError: PAYMENT_METHOD_REQUIRED.
            AlreadyPaidError: The order is already paid.
            DatabaseError: The payment could not be committed.
            PartialApplicationError: Paid, but the tokens were not revoked.
        """
        self._authorize(role, OrderStatus.PAID, order_id=order_id, user_id=user_id)
        payment_method = self._require_method(method)

        order = self._orders.get_order(order_id, restaurant_id, for_update=True)
        old_status = order.status
        if old_status == OrderStatus.PAID.value:
            raise AlreadyPaidError(order.id)

        table_id = order.table_id
        self._mark_paid(order, payment_method, user_id, user_email)
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            raise DatabaseError("pay order", order_id=order_id, error=str(e))

        floor_logger.info(
            "Order paid",
            order_id=order_id,
            restaurant_id=restaurant_id,
            method=payment_method.value,
            user_id=user_id,
        )

        revoked: list[int] = []
        if not self._has_open_orders(restaurant_id, table_id):
            revoked = self._revoke_after_payment(restaurant_id, table_id, "pay order")

        return TransitionResult(
            order=self._orders.get_order(order_id, restaurant_id),
            old_status=old_status,
            revoked_token_ids=revoked,
        )

    def close_table(
        self,
        table_id: int,
        restaurant_id: int,
        method: PaymentMethod | str | None,
        role: UserRole,
        user_id: int | None = None,
        user_email: str | None = None,
    ) -> CloseTableResult:
        """
        Pay every open order of the table and revoke its tokens.

        Idempotent: closing a table with nothing open still revokes any live
        token, which is how a failed revocation is retried.

        Raises:
            TransitionNotAllowedError: Kitchen accounts may not take payments.
            ValidationError: PAYMENT_METHOD_REQUIRED.
            TableNotFoundError: Unknown table.
            DatabaseError: The payments could not be committed.
            PartialApplicationError: Paid, but the tokens were not revoked.
        """
        self._authorize(role, OrderStatus.PAID, table_id=table_id, user_id=user_id)
        payment_method = self._require_method(method)

        table = self._db.scalar(
            select(Table).where(Table.id == table_id, Table.restaurant_id == restaurant_id)
        )
        if table is None:
            raise TableNotFoundError(table_id, restaurant_id=restaurant_id)

        open_orders = list(
            self._db.scalars(
                self._orders.order_query()
                .where(
                    Order.restaurant_id == restaurant_id,
                    Order.table_id == table_id,
                    Order.status.in_([s.value for s in OPEN_ORDER_STATUSES]),
                )
                .order_by(Order.id)
                .with_for_update()
            ).all()
        )
        old_statuses = {order.id: order.status for order in open_orders}
        for order in open_orders:
            self._mark_paid(order, payment_method, user_id, user_email)

        if open_orders:
            try:
                safe_commit(self._db)
            except SQLAlchemyError as e:
                raise DatabaseError("close table", table_id=table_id, error=str(e))

        revoked = self._revoke_after_payment(restaurant_id, table_id, "close table")
        floor_logger.info(
            "Table closed",
            table_id=table_id,
            restaurant_id=restaurant_id,
            method=payment_method.value,
            paid_orders=len(open_orders),
            revoked_tokens=len(revoked),
            user_id=user_id,
        )

        paid_orders = [self._orders.get_order(order_id, restaurant_id) for order_id in old_statuses]
        return CloseTableResult(
            table_id=table_id,
            paid_orders=paid_orders,
            old_statuses=old_statuses,
            revoked_token_ids=revoked,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _mark_paid(
        self,
        order: Order,
        method: PaymentMethod,
        user_id: int | None,
        user_email: str | None,
    ) -> None:
        self._apply_status(order, OrderStatus.PAID)
        order.payment_method = method.value
        order.paid_at = self._now()
        order.set_updated_by(user_id, user_email)

    def _has_open_orders(self, restaurant_id: int, table_id: int) -> bool:
        return (
            self._db.scalar(
                select(Order.id)
                .where(
                    Order.restaurant_id == restaurant_id,
                    Order.table_id == table_id,
                    Order.status.in_([s.value for s in OPEN_ORDER_STATUSES]),
                )
                .limit(1)
            )
            is not None
        )

    def _revoke_after_payment(self, restaurant_id: int, table_id: int, operation: str) -> list[int]:
        try:
            return self._tokens.revoke_all_for_table(
                restaurant_id, table_id, reason=TokenRevokeReason.TABLE_CLOSED
            )
        except SQLAlchemyError as e:
            raise PartialApplicationError(
                operation,
                restaurant_id=restaurant_id,
                table_id=table_id,
                error=str(e),
            )
