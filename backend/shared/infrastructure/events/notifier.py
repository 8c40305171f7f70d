"""
Realtime change notifier.

Writers publish a ChangeEvent after their transaction commits; staff views
subscribe per restaurant and refetch whatever the event touched. Delivery
is at-least-once and unordered across tables.

Two implementations share the contract:
- RedisNotifier: Redis pub/sub, for any deployment with more than one process.
- InMemoryNotifier: a single process (development, tests).

The application builds exactly one notifier in its lifespan and hands it to
request handlers through a dependency; nothing here is a module global.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass

import redis.asyncio as redis

from shared.config.settings import Settings
from shared.config.logging import get_logger
from .channels import channel_restaurant_table
from .circuit_breaker import EventCircuitBreaker
from .event_schema import ChangeEvent, WATCHED_TABLES
from .publisher import publish_event
from .redis_pool import create_redis_pool

logger = get_logger(__name__)

EventFilter = Callable[[ChangeEvent], bool]


class RealtimeNotifier(ABC):
    """Push notification of row changes to subscribed views."""

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Publish one event. May raise on transport failure."""

    async def publish_many(self, events: Iterable[ChangeEvent]) -> None:
        """
        Publish events after a commit.

        The write is already durable, so a transport failure is logged and
        swallowed here; subscribers reconcile on their next refetch.
        """
        for event in events:
            try:
                await self.publish(event)
            except Exception as e:
                logger.error(
                    "Failed to publish change event",
                    table=event.table,
                    change_type=event.type,
                    record_id=event.record_id,
                    restaurant_id=event.restaurant_id,
                    error=str(e),
                )

    @abstractmethod
    def subscribe(
        self,
        restaurant_id: int,
        tables: Iterable[str] | None = None,
        event_filter: EventFilter | None = None,
    ) -> AsyncIterator[ChangeEvent]:
        """Stream changes of ``tables`` (default: all watched) for one restaurant."""

    @abstractmethod
    async def health(self) -> dict:
        """Return a health summary of the transport."""

    async def close(self) -> None:
        """Release transport resources."""


def _normalize_tables(tables: Iterable[str] | None) -> frozenset[str]:
    if tables is None:
        return WATCHED_TABLES
    selected = frozenset(tables)
    unknown = selected - WATCHED_TABLES
    if unknown:
        raise ValueError(f"Unknown change tables: {sorted(unknown)}")
    return selected


# =============================================================================
# In-process notifier
# =============================================================================


@dataclass
class _Subscription:
    restaurant_id: int
    tables: frozenset[str]
    event_filter: EventFilter | None
    queue: asyncio.Queue

    def wants(self, event: ChangeEvent) -> bool:
        if event.restaurant_id != self.restaurant_id or event.table not in self.tables:
            return False
        return self.event_filter is None or self.event_filter(event)


class InMemoryNotifier(RealtimeNotifier):
    """
    Fan events out to subscribers living in the same process.

    The last ``history_size`` published events are kept in ``published``.
    """

    def __init__(self, history_size: int = 1000, queue_size: int = 1000):
        self._subscriptions: list[_Subscription] = []
        self._queue_size = queue_size
        self.published: deque[ChangeEvent] = deque(maxlen=history_size)

    async def publish(self, event: ChangeEvent) -> None:
        self.published.append(event)
        for subscription in list(self._subscriptions):
            if not subscription.wants(event):
                continue
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping change event for slow subscriber",
                    restaurant_id=event.restaurant_id,
                    table=event.table,
                )

    async def subscribe(
        self,
        restaurant_id: int,
        tables: Iterable[str] | None = None,
        event_filter: EventFilter | None = None,
    ) -> AsyncIterator[ChangeEvent]:
        subscription = _Subscription(
            restaurant_id=restaurant_id,
            tables=_normalize_tables(tables),
            event_filter=event_filter,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        self._subscriptions.append(subscription)
        try:
            while True:
                yield await subscription.queue.get()
        finally:
            self._subscriptions.remove(subscription)

    async def health(self) -> dict:
        return {
            "status": "healthy",
            "backend": "memory",
            "subscribers": len(self._subscriptions),
        }


# =============================================================================
# Redis notifier
# =============================================================================


class RedisNotifier(RealtimeNotifier):
    """Redis pub/sub transport. One channel per (restaurant, table)."""

    def __init__(self, client: redis.Redis, circuit_breaker: EventCircuitBreaker | None = None):
        self._redis = client
        self._circuit_breaker = circuit_breaker or EventCircuitBreaker()

    async def publish(self, event: ChangeEvent) -> None:
        channel = channel_restaurant_table(event.restaurant_id, event.table)
        await publish_event(self._redis, channel, event, self._circuit_breaker)

    async def subscribe(
        self,
        restaurant_id: int,
        tables: Iterable[str] | None = None,
        event_filter: EventFilter | None = None,
    ) -> AsyncIterator[ChangeEvent]:
        channels = [
            channel_restaurant_table(restaurant_id, table)
            for table in sorted(_normalize_tables(tables))
        ]
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(*channels)
        logger.info("Redis change subscriber started", channels=channels)

        try:
            while True:
                try:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                except redis.TimeoutError:
                    # Normal for pubsub - continue listening
                    continue

                if msg is None or msg.get("type") != "message":
                    continue

                try:
                    event = ChangeEvent.from_json(msg["data"])
                except (ValueError, TypeError) as e:
                    logger.warning("Discarding malformed change event", error=str(e))
                    continue

                if event_filter is None or event_filter(event):
                    yield event
        finally:
            try:
                await pubsub.unsubscribe(*channels)
                await pubsub.aclose()
            except Exception as e:
                logger.warning("Error during pubsub cleanup", error=str(e))

    async def health(self) -> dict:
        try:
            await self._redis.ping()
            status = "healthy"
        except Exception as e:
            logger.warning("Redis health check failed", error=str(e))
            status = "unhealthy"
        return {
            "status": status,
            "backend": "redis",
            "circuit_breaker": self._circuit_breaker.get_stats(),
        }

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Redis async pool closed")


def build_notifier(config: Settings) -> RealtimeNotifier:
    """Create the notifier selected by ``realtime_backend``."""
    if config.realtime_backend == "memory":
        return InMemoryNotifier()
    if config.realtime_backend == "redis":
        return RedisNotifier(
            create_redis_pool(config),
            EventCircuitBreaker(failure_threshold=config.redis_publish_max_retries + 2),
        )
    raise ValueError(f"Unknown realtime backend: {config.realtime_backend!r}")
