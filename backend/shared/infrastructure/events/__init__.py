"""
Realtime change feed over Redis pub/sub.

- circuit_breaker.py: Circuit breaker and jittered backoff for publishing
- event_schema.py: ChangeEvent dataclass with validation
- channels.py: Channel naming
- redis_pool.py: Redis client construction
- publisher.py: publish_event with retry and size check
- notifier.py: RealtimeNotifier contract, Redis and in-memory implementations
- domain_publishers.py: ChangeEvent builders for domain rows
"""

from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    calculate_retry_delay_with_jitter,
)
from .event_schema import ChangeEvent, WATCHED_TABLES
from .channels import channel_restaurant_table
from .redis_pool import create_redis_pool
from .publisher import publish_event, MAX_EVENT_SIZE
from .notifier import (
    RealtimeNotifier,
    InMemoryNotifier,
    RedisNotifier,
    build_notifier,
)
from .domain_publishers import (
    order_events,
    waiter_call_event,
    table_token_events,
    restaurant_table_event,
)

__all__ = [
    "CircuitState",
    "EventCircuitBreaker",
    "calculate_retry_delay_with_jitter",
    "ChangeEvent",
    "WATCHED_TABLES",
    "channel_restaurant_table",
    "create_redis_pool",
    "publish_event",
    "MAX_EVENT_SIZE",
    "RealtimeNotifier",
    "InMemoryNotifier",
    "RedisNotifier",
    "build_notifier",
    "order_events",
    "waiter_call_event",
    "table_token_events",
    "restaurant_table_event",
]
