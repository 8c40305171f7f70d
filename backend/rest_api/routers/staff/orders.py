"""
Staff order endpoints: floor and kitchen views, workflow transitions,
payment and staff edits.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from shared.config.constants import ALL_STAFF_ROLES, FLOOR_ROLES
from shared.infrastructure.db import get_db
from shared.infrastructure.events import (
    RealtimeNotifier,
    order_events,
    restaurant_table_event,
    table_token_events,
)
from shared.security.auth import current_user_context, require_roles, staff_restaurant_id
from shared.utils.schemas import (
    EditOrderRequest,
    OrderOutput,
    PayOrderRequest,
    UpdateOrderStatusRequest,
)
from rest_api.core.dependencies import get_notifier
from rest_api.services.domain.order_service import OrderService, order_to_output
from rest_api.services.domain.order_workflow import OrderWorkflowService
from rest_api.services.domain.table_token_service import TableTokenService

router = APIRouter(tags=["staff-orders"])


@router.get("/orders", response_model=list[OrderOutput])
def list_floor_orders(
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> list[OrderOutput]:
    """Unpaid orders of the restaurant, newest first."""
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    orders = OrderService(db).list_floor_orders(rid)
    return [order_to_output(order, role=ctx["role"]) for order in orders]


@router.get("/kitchen/orders", response_model=list[OrderOutput])
def list_kitchen_orders(
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> list[OrderOutput]:
    """Pending and preparing orders, oldest first."""
    require_roles(ctx, ALL_STAFF_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    orders = OrderService(db).list_kitchen_orders(rid)
    return [order_to_output(order, role=ctx["role"]) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> OrderOutput:
    rid = staff_restaurant_id(ctx, restaurant_id)
    return order_to_output(OrderService(db).get_order(order_id, rid), role=ctx["role"])


@router.post("/orders/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """
    Move an order forward (preparing, ready, served).

    Kitchen accounts may only start preparation and mark orders ready.
    """
    rid = staff_restaurant_id(ctx, restaurant_id)
    result = OrderWorkflowService(db).set_status(
        order_id,
        rid,
        body.status,
        role=ctx["role"],
        user_id=ctx["user_id"],
        user_email=ctx["email"],
    )
    if result.changed:
        background_tasks.add_task(
            notifier.publish_many,
            order_events(result.order, "UPDATE", old_status=result.old_status),
        )
    return order_to_output(result.order, role=ctx["role"])


@router.post("/orders/{order_id}/pay", response_model=OrderOutput)
def pay_order(
    order_id: int,
    body: PayOrderRequest,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """Record payment (cash or card). Paying the table's last open order ends its QR session."""
    rid = staff_restaurant_id(ctx, restaurant_id)
    result = OrderWorkflowService(db).pay(
        order_id,
        rid,
        body.payment_method,
        role=ctx["role"],
        user_id=ctx["user_id"],
        user_email=ctx["email"],
    )

    events = order_events(result.order, "UPDATE", old_status=result.old_status)
    if result.revoked_token_ids:
        events += table_token_events(
            TableTokenService(db).get_tokens(result.revoked_token_ids), "UPDATE"
        )
        events.append(
            restaurant_table_event(rid, result.order.table_id, session_closed=True)
        )
    background_tasks.add_task(notifier.publish_many, events)
    return order_to_output(result.order, role=ctx["role"])


@router.put("/orders/{order_id}", response_model=OrderOutput)
def edit_order(
    order_id: int,
    body: EditOrderRequest,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """Correct a submitted order: quantities, notes, added and removed lines."""
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    result = OrderService(db).edit_order(
        order_id,
        rid,
        body.items,
        removed_item_ids=body.removed_item_ids,
        notes=body.notes,
        update_notes="notes" in body.model_fields_set,
        user_id=ctx["user_id"],
        user_email=ctx["email"],
    )
    background_tasks.add_task(
        notifier.publish_many,
        order_events(result.order, "UPDATE", deleted_item_ids=result.deleted_item_ids),
    )
    return order_to_output(result.order, role=ctx["role"])
