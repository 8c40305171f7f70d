"""
SQLAlchemy ORM Models Package.

- base: Base class, AuditMixin, timestamp helpers
- tenant: Restaurant
- user: User
- table: Table, TableToken
- catalog: Category, Product
- order: Order, OrderItem
- waiter_call: WaiterCall
"""

from .base import Base, AuditMixin, as_utc, utc_now
from .tenant import Restaurant
from .user import User
from .table import Table, TableToken
from .catalog import Category, Product
from .order import Order, OrderItem
from .waiter_call import WaiterCall

__all__ = [
    "Base",
    "AuditMixin",
    "as_utc",
    "utc_now",
    "Restaurant",
    "User",
    "Table",
    "TableToken",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "WaiterCall",
]
