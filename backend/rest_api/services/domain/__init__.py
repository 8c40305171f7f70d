"""
Domain Services - application layer.

Routers stay thin: they validate input, call one of these services and
publish the resulting change events.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import TableTokenService

    # In router
    service = TableTokenService(db)
    issued = service.issue(restaurant_id, table_id)
"""

from .table_token_service import TableTokenService, TokenIssue, TokenValidation
from .session_gate import CustomerSession, SessionGateService, parse_party_size
from .order_cart import CartLine, OrderCart
from .order_service import EditResult, OrderService, order_to_output
from .order_workflow import CloseTableResult, OrderWorkflowService, TransitionResult
from .waiter_call_service import WaiterCallRequest, WaiterCallService, waiter_call_to_output
from .reporting_service import ReportingService
from .restaurant_service import RestaurantService, parse_cooldown_minutes, settings_to_output

__all__ = [
    # Tokens and sessions
    "TableTokenService",
    "TokenIssue",
    "TokenValidation",
    "CustomerSession",
    "SessionGateService",
    "parse_party_size",
    # Orders
    "CartLine",
    "OrderCart",
    "EditResult",
    "OrderService",
    "order_to_output",
    "CloseTableResult",
    "OrderWorkflowService",
    "TransitionResult",
    # Floor
    "WaiterCallRequest",
    "WaiterCallService",
    "waiter_call_to_output",
    "ReportingService",
    "RestaurantService",
    "parse_cooldown_minutes",
    "settings_to_output",
]
