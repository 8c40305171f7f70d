"""
Redis channel naming.

One channel per (restaurant, logical table) so a kitchen screen can listen
to ``orders`` alone while the floor view also follows ``waiter_calls``.
"""

from __future__ import annotations

from .event_schema import WATCHED_TABLES


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_restaurant_table(restaurant_id: int, table: str) -> str:
    """Channel carrying changes of ``table`` rows for one restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    if table not in WATCHED_TABLES:
        raise ValueError(f"Unknown change table: {table!r}")
    return f"restaurant:{restaurant_id}:{table}"
