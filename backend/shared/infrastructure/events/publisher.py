"""
Core event publishing with retry and size validation.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_schema import ChangeEvent
from .circuit_breaker import EventCircuitBreaker, calculate_retry_delay_with_jitter

logger = get_logger(__name__)

# Maximum serialized event size (64 KB)
MAX_EVENT_SIZE = 64 * 1024


def _validate_event_size(event_json: str, event: ChangeEvent) -> None:
    """Raise ValueError if the serialized event is too large."""
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Change event {event.table}/{event.type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: ChangeEvent,
    circuit_breaker: EventCircuitBreaker,
) -> int:
    """
    Publish an event to a Redis channel.

    Retries with exponential backoff and jitter, and fails fast while the
    circuit breaker is open.

    Returns:
        Number of subscribers that received the message.
        Returns 0 if the circuit breaker is open.

    Raises:
        ValueError: If event is too large.
        Exception: The last Redis error once all retries are exhausted.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event)

    if not circuit_breaker.can_execute():
        logger.warning(
            "Event publish skipped - circuit breaker open",
            channel=channel,
            table=event.table,
        )
        return 0

    max_retries = settings.redis_publish_max_retries
    last_error: Exception | None = None
    for attempt in range(max_retries):
        try:
            result = await redis_client.publish(channel, event_json)
            circuit_breaker.record_success()
            return result
        except Exception as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = calculate_retry_delay_with_jitter(
                    attempt, settings.redis_publish_retry_delay
                )
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    "Redis publish failed after all retries",
                    channel=channel,
                    error=str(e),
                )

    circuit_breaker.record_failure()
    raise last_error  # type: ignore[misc]
