"""
Services module for business logic.

- domain/: application services (token lifecycle, session gate, orders,
  workflow, waiter calls, reporting, restaurant settings)

Usage:
    from rest_api.services.domain import OrderService
    service = OrderService(db)
    orders = service.list_floor_orders(restaurant_id)
"""
