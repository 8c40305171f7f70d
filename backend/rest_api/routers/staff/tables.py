"""
Staff table endpoints: close a table and rotate its QR session.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import FLOOR_ROLES, TokenRevokeReason
from shared.infrastructure.db import get_db
from shared.infrastructure.events import (
    RealtimeNotifier,
    order_events,
    restaurant_table_event,
    table_token_events,
)
from shared.security.auth import current_user_context, require_roles, staff_restaurant_id
from shared.utils.exceptions import TableNotFoundError
from shared.utils.schemas import CloseTableRequest, CloseTableResponse, RevokeTokensResponse
from rest_api.core.dependencies import get_notifier
from rest_api.models import Table
from rest_api.services.domain.order_workflow import OrderWorkflowService
from rest_api.services.domain.table_token_service import TableTokenService

router = APIRouter(prefix="/tables", tags=["staff-tables"])


@router.post("/{table_id}/close", response_model=CloseTableResponse)
def close_table(
    table_id: int,
    body: CloseTableRequest,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> CloseTableResponse:
    """
    Pay every open order of the table with one method and end its QR session.

    Safe to repeat: a second close pays nothing and revokes any token left.
    """
    rid = staff_restaurant_id(ctx, restaurant_id)
    result = OrderWorkflowService(db).close_table(
        table_id,
        rid,
        body.payment_method,
        role=ctx["role"],
        user_id=ctx["user_id"],
        user_email=ctx["email"],
    )

    events = []
    for order in result.paid_orders:
        events += order_events(order, "UPDATE", old_status=result.old_statuses.get(order.id))
    events += table_token_events(TableTokenService(db).get_tokens(result.revoked_token_ids), "UPDATE")
    events.append(restaurant_table_event(rid, table_id, session_closed=True))
    background_tasks.add_task(notifier.publish_many, events)

    return CloseTableResponse(
        table_id=table_id,
        paid_order_ids=[order.id for order in result.paid_orders],
        revoked_token_count=len(result.revoked_token_ids),
    )


@router.post("/{table_id}/tokens/revoke", response_model=RevokeTokensResponse)
def revoke_table_tokens(
    table_id: int,
    background_tasks: BackgroundTasks,
    restaurant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> RevokeTokensResponse:
    """Rotate the table's QR session: guests must scan again."""
    require_roles(ctx, FLOOR_ROLES)
    rid = staff_restaurant_id(ctx, restaurant_id)
    table = db.scalar(select(Table).where(Table.id == table_id, Table.restaurant_id == rid))
    if table is None:
        raise TableNotFoundError(table_id, restaurant_id=rid)

    service = TableTokenService(db)
    revoked = service.revoke_all_for_table(rid, table_id, reason=TokenRevokeReason.MANUAL)
    if revoked:
        background_tasks.add_task(
            notifier.publish_many,
            table_token_events(service.get_tokens(revoked), "UPDATE"),
        )
    return RevokeTokensResponse(table_id=table_id, revoked_token_count=len(revoked))
