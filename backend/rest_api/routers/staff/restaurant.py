"""
Staff restaurant endpoints: dashboard counters, payments report and the
ordering settings.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shared.config.constants import ALL_STAFF_ROLES, FLOOR_ROLES, MANAGEMENT_ROLES, PaymentMethod
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, require_roles, staff_restaurant_id
from shared.utils.schemas import (
    DashboardOutput,
    PaymentsReportOutput,
    RestaurantSettingsOutput,
    RestaurantSettingsUpdate,
)
from rest_api.services.domain.reporting_service import ReportingService
from rest_api.services.domain.restaurant_service import RestaurantService, settings_to_output

router = APIRouter(tags=["staff-restaurant"])


@router.get("/dashboard", response_model=DashboardOutput)
def dashboard(
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> DashboardOutput:
    require_roles(ctx, ALL_STAFF_ROLES)
    return ReportingService(db).dashboard(staff_restaurant_id(ctx, restaurant_id))


@router.get("/payments", response_model=PaymentsReportOutput)
def payments_report(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    method: PaymentMethod | None = Query(default=None),
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> PaymentsReportOutput:
    """Paid orders between two days (inclusive), optionally for one method."""
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    return ReportingService(db).payments(rid, date_from=date_from, date_to=date_to, method=method)


@router.get("/settings", response_model=RestaurantSettingsOutput)
def get_settings(
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> RestaurantSettingsOutput:
    rid = staff_restaurant_id(ctx, restaurant_id)
    return settings_to_output(RestaurantService(db).get(rid))


@router.patch("/settings", response_model=RestaurantSettingsOutput)
def update_settings(
    body: RestaurantSettingsUpdate,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> RestaurantSettingsOutput:
    """Managers edit cooldown, prepayment and all-you-can-eat pricing."""
    require_roles(ctx, MANAGEMENT_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    restaurant = RestaurantService(db).update_settings(
        rid,
        body.model_dump(exclude_unset=True),
        user_id=ctx["user_id"],
        user_email=ctx["email"],
    )
    return settings_to_output(restaurant)
