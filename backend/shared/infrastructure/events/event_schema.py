"""
Change event schema.

A ChangeEvent says "this row changed". Subscribers do not patch local state
from the payload; they refetch whatever the event touched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any

# Logical tables whose changes are broadcast
WATCHED_TABLES: frozenset[str] = frozenset(
    {"orders", "order_items", "waiter_calls", "table_tokens", "tables", "products"}
)

CHANGE_TYPES: frozenset[str] = frozenset({"INSERT", "UPDATE", "DELETE"})


@dataclass
class ChangeEvent:
    """
    A single row change.

    ``new`` is the row after the change (empty on DELETE) and ``old`` the
    row before it (empty on INSERT). ``record_id`` is the primary key.
    """

    table: str
    type: str
    restaurant_id: int
    record_id: int | None = None
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if self.table not in WATCHED_TABLES:
            raise ValueError(f"Unknown change table: {self.table!r}")

        if self.type not in CHANGE_TYPES:
            raise ValueError(f"Change type must be one of {sorted(CHANGE_TYPES)}")

        if not isinstance(self.restaurant_id, int) or self.restaurant_id <= 0:
            raise ValueError("Event restaurant_id must be a positive integer")

        if self.record_id is not None and (not isinstance(self.record_id, int) or self.record_id <= 0):
            raise ValueError("Event record_id must be a positive integer or None")

        if not isinstance(self.new, dict) or not isinstance(self.old, dict):
            raise ValueError("Event new/old payloads must be dicts")

        if self.ts is None:
            self.ts = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeEvent":
        """Deserialize event from JSON string; validation runs in __post_init__."""
        return cls(**json.loads(json_str))
