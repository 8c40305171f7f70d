"""
Customer endpoints.

Every route validates the table token against the (restaurant, table) in
the path before it reads anything else.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.infrastructure.events import RealtimeNotifier, order_events, waiter_call_event
from shared.security.auth import table_token_param
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    MenuOutput,
    OrderOutput,
    PartySizeRequest,
    PartySizeResponse,
    SessionOutput,
    SubmitOrderRequest,
    SubmitOrderResponse,
    WaiterCallOutput,
)
from rest_api.core.dependencies import get_notifier
from rest_api.services.domain.order_service import OrderService, order_to_output
from rest_api.services.domain.restaurant_service import RestaurantService
from rest_api.services.domain.session_gate import CustomerSession, SessionGateService
from rest_api.services.domain.waiter_call_service import WaiterCallService, waiter_call_to_output

router = APIRouter(prefix="/api/customer/{restaurant_id}/{table_id}", tags=["customer"])


def customer_session(
    restaurant_id: int,
    table_id: int,
    token: str | None = Depends(table_token_param),
    db: Session = Depends(get_db),
) -> CustomerSession:
    """Validated session for the table named in the path."""
    return SessionGateService(db).open(restaurant_id, table_id, token)


@router.get("/session", response_model=SessionOutput)
def get_session(session: CustomerSession = Depends(customer_session)) -> SessionOutput:
    return SessionOutput(**SessionGateService.describe(session))


@router.get("/menu", response_model=MenuOutput)
def get_menu(
    session: CustomerSession = Depends(customer_session),
    db: Session = Depends(get_db),
) -> MenuOutput:
    return RestaurantService(db).menu(session)


@router.put("/party-size", response_model=PartySizeResponse)
@limiter.limit(settings.customer_write_rate_limit)
def set_party_size(
    request: Request,
    response: Response,
    body: PartySizeRequest,
    session: CustomerSession = Depends(customer_session),
    db: Session = Depends(get_db),
) -> PartySizeResponse:
    party_size = SessionGateService(db).ensure_party_size(session, body.party_size)
    return PartySizeResponse(party_size=party_size)


@router.post("/orders", response_model=SubmitOrderResponse, status_code=201)
@limiter.limit(settings.customer_write_rate_limit)
def place_order(
    request: Request,
    response: Response,
    body: SubmitOrderRequest,
    background_tasks: BackgroundTasks,
    session: CustomerSession = Depends(customer_session),
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> SubmitOrderResponse:
    """
    Submit the cart. Prices are recomputed from the menu; the response says
    whether guests must pay before the kitchen starts.
    """
    order = OrderService(db).place_order(session, body.items, notes=body.notes)
    background_tasks.add_task(notifier.publish_many, order_events(order, "INSERT"))
    return SubmitOrderResponse(
        order=order_to_output(order),
        prepayment_required=session.restaurant.prepayment_required,
    )


@router.get("/orders", response_model=list[OrderOutput])
def list_orders(
    session: CustomerSession = Depends(customer_session),
    db: Session = Depends(get_db),
) -> list[OrderOutput]:
    """Orders placed during the current QR session."""
    return [order_to_output(order) for order in OrderService(db).list_session_orders(session)]


@router.post("/waiter-calls", response_model=WaiterCallOutput)
@limiter.limit(settings.customer_write_rate_limit)
def call_waiter(
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    session: CustomerSession = Depends(customer_session),
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> WaiterCallOutput:
    """Raise a waiter call, or return the table's call that is still active."""
    result = WaiterCallService(db).request(session)
    if result.created:
        response.status_code = 201
        background_tasks.add_task(notifier.publish_many, [waiter_call_event(result.call, "INSERT")])
    return waiter_call_to_output(result.call)
