"""
Change event builders for domain rows.

Handlers build the events while their Session is still open and hand the
list to ``RealtimeNotifier.publish_many`` as a background task, so nothing
here touches the database after the response is sent.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from .event_schema import ChangeEvent


def _value(raw: Any) -> Any:
    if isinstance(raw, Enum):
        return raw.value
    if isinstance(raw, datetime):
        return raw.isoformat()
    return raw


def _snapshot(row: Any, fields: Iterable[str]) -> dict[str, Any]:
    return {name: _value(getattr(row, name)) for name in fields}


ORDER_FIELDS = (
    "id", "restaurant_id", "table_id", "status", "pricing_mode", "total_cents",
    "notes", "party_size", "payment_method", "paid_at",
)
ORDER_ITEM_FIELDS = (
    "id", "order_id", "product_id", "quantity", "unit_price_cents",
    "total_price_cents", "notes", "status",
)
WAITER_CALL_FIELDS = ("id", "restaurant_id", "table_id", "status", "created_at", "resolved_at")
# The token string itself is a credential and never leaves the database
TABLE_TOKEN_FIELDS = ("id", "restaurant_id", "table_id", "expires_at", "revoked", "revoked_reason")


def order_events(
    order: Any,
    change_type: str,
    old_status: str | None = None,
    include_items: bool = True,
    deleted_item_ids: Iterable[int] = (),
) -> list[ChangeEvent]:
    """Events for an order row and, optionally, its item rows."""
    events = [
        ChangeEvent(
            table="orders",
            type=change_type,
            restaurant_id=order.restaurant_id,
            record_id=order.id,
            new=_snapshot(order, ORDER_FIELDS),
            old={"status": old_status} if old_status is not None else {},
        )
    ]
    if include_items:
        for item in order.items:
            events.append(
                ChangeEvent(
                    table="order_items",
                    type=change_type,
                    restaurant_id=order.restaurant_id,
                    record_id=item.id,
                    new=_snapshot(item, ORDER_ITEM_FIELDS),
                )
            )
    for item_id in deleted_item_ids:
        events.append(
            ChangeEvent(
                table="order_items",
                type="DELETE",
                restaurant_id=order.restaurant_id,
                record_id=item_id,
                old={"id": item_id, "order_id": order.id},
            )
        )
    return events


def waiter_call_event(call: Any, change_type: str) -> ChangeEvent:
    """Event for a waiter call row."""
    return ChangeEvent(
        table="waiter_calls",
        type=change_type,
        restaurant_id=call.restaurant_id,
        record_id=call.id,
        new=_snapshot(call, WAITER_CALL_FIELDS),
    )


def table_token_events(tokens: Iterable[Any], change_type: str) -> list[ChangeEvent]:
    """Events for table token rows, without the token strings."""
    return [
        ChangeEvent(
            table="table_tokens",
            type=change_type,
            restaurant_id=token.restaurant_id,
            record_id=token.id,
            new=_snapshot(token, TABLE_TOKEN_FIELDS),
        )
        for token in tokens
    ]


def restaurant_table_event(restaurant_id: int, table_id: int, **changes: Any) -> ChangeEvent:
    """Event telling views a table's session state changed (tokens revoked, closed)."""
    return ChangeEvent(
        table="tables",
        type="UPDATE",
        restaurant_id=restaurant_id,
        record_id=table_id,
        new={"id": table_id, **{k: _value(v) for k, v in changes.items()}},
    )
