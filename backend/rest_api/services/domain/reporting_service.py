"""
Reporting Service: dashboard counters and the payments report.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shared.config.constants import OrderStatus, PaymentMethod, WaiterCallStatus
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import DashboardOutput, PaymentsReportOutput
from rest_api.models import Order, WaiterCall
from rest_api.services.domain.order_service import OrderService, order_to_output


class ReportingService:
    def __init__(self, db: Session):
        self._db = db

    def dashboard(self, restaurant_id: int) -> DashboardOutput:
        """Live counters for the staff dashboard."""
        rows = self._db.execute(
            select(Order.status, func.count(Order.id))
            .where(
                Order.restaurant_id == restaurant_id,
                Order.status.in_(
                    [OrderStatus.PENDING.value, OrderStatus.PREPARING.value, OrderStatus.READY.value]
                ),
            )
            .group_by(Order.status)
        ).all()
        counts = {status: count for status, count in rows}

        active_calls = self._db.scalar(
            select(func.count(WaiterCall.id)).where(
                WaiterCall.restaurant_id == restaurant_id,
                WaiterCall.status == WaiterCallStatus.ACTIVE.value,
            )
        )
        return DashboardOutput(
            pending_orders=counts.get(OrderStatus.PENDING.value, 0),
            preparing_orders=counts.get(OrderStatus.PREPARING.value, 0),
            ready_orders=counts.get(OrderStatus.READY.value, 0),
            active_waiter_calls=active_calls or 0,
        )

    def payments(
        self,
        restaurant_id: int,
        date_from: date | None = None,
        date_to: date | None = None,
        method: PaymentMethod | None = None,
    ) -> PaymentsReportOutput:
        """
        Paid orders by ``paid_at`` day, both ends inclusive (UTC days).

        Raises:
            ValidationError: ``date_from`` after ``date_to``.
        """
        if date_from and date_to and date_from > date_to:
            raise ValidationError(
                "The start date must not be after the end date",
                code="VALIDATION_ERROR",
                date_from=str(date_from),
                date_to=str(date_to),
            )

        query = OrderService(self._db).order_query().where(
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.PAID.value,
        )
        if date_from:
            query = query.where(Order.paid_at >= datetime.combine(date_from, time.min, timezone.utc))
        if date_to:
            end = datetime.combine(date_to + timedelta(days=1), time.min, timezone.utc)
            query = query.where(Order.paid_at < end)
        if method:
            query = query.where(Order.payment_method == method.value)

        orders = list(self._db.scalars(query.order_by(Order.paid_at.desc(), Order.id.desc())).all())

        by_method: dict[str, int] = {m.value: 0 for m in PaymentMethod}
        for order in orders:
            if order.payment_method:
                by_method[order.payment_method] = by_method.get(order.payment_method, 0) + order.total_cents

        return PaymentsReportOutput(
            orders=[order_to_output(order) for order in orders],
            count=len(orders),
            total_cents=sum(order.total_cents for order in orders),
            by_method=by_method,
        )
