"""
Staff waiter call endpoints.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from shared.config.constants import FLOOR_ROLES
from shared.infrastructure.db import get_db
from shared.infrastructure.events import RealtimeNotifier, waiter_call_event
from shared.security.auth import current_user_context, require_roles, staff_restaurant_id
from shared.utils.schemas import WaiterCallOutput
from rest_api.core.dependencies import get_notifier
from rest_api.services.domain.waiter_call_service import WaiterCallService, waiter_call_to_output

router = APIRouter(prefix="/waiter-calls", tags=["staff-waiter-calls"])


@router.get("", response_model=list[WaiterCallOutput])
def list_active_calls(
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> list[WaiterCallOutput]:
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    return [waiter_call_to_output(call) for call in WaiterCallService(db).list_active(rid)]


@router.post("/{call_id}/resolve", response_model=WaiterCallOutput)
def resolve_call(
    call_id: int,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> WaiterCallOutput:
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    call = WaiterCallService(db).resolve(call_id, rid, user_id=ctx["user_id"])
    background_tasks.add_task(notifier.publish_many, [waiter_call_event(call, "UPDATE")])
    return waiter_call_to_output(call)
