"""
Staff routers - /api/staff/*, authenticated with a staff JWT.

- orders: floor and kitchen views, status transitions, payment, edits
- tables: table close and manual QR rotation
- waiter_calls: active calls and resolution
- restaurant: dashboard, payments report, ordering settings
"""

from fastapi import APIRouter

from .orders import router as orders_router
from .tables import router as tables_router
from .waiter_calls import router as waiter_calls_router
from .restaurant import router as restaurant_router

router = APIRouter(prefix="/api/staff")
router.include_router(orders_router)
router.include_router(tables_router)
router.include_router(waiter_calls_router)
router.include_router(restaurant_router)

__all__ = ["router"]
