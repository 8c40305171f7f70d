"""
Circuit breaker guarding Redis publishes.

While Redis is down every publish would otherwise wait out its retries, and
that delay lands on the background task of each mutating request. After
``failure_threshold`` exhausted publishes the breaker opens and publishes
are dropped at once; after ``recovery_timeout`` seconds a few probe
publishes are let through and the first success closes it again.
"""

from __future__ import annotations

import random
import time
from enum import Enum
from typing import Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class EventCircuitBreaker:
    """
    Per-notifier breaker. State lives in the process; each worker trips on
    its own.

    All callers run on the event loop, so no locking is needed.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._probes = 0
        self._rejected = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def _trip(self, why: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.error("Publish circuit opened", reason=why, failures=self._consecutive_failures)

    def can_execute(self) -> bool:
        """False while open; moves to half-open once the recovery timeout passed."""
        if self._state is CircuitState.OPEN:
            if self._clock() - (self._opened_at or 0.0) < self.recovery_timeout:
                self._rejected += 1
                return False
            self._state = CircuitState.HALF_OPEN
            self._probes = 0
            logger.info("Publish circuit half-open, probing Redis")

        if self._state is CircuitState.HALF_OPEN:
            if self._probes >= self.half_open_max_calls:
                self._rejected += 1
                return False
            self._probes += 1
        return True

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state is CircuitState.HALF_OPEN:
            self._trip("probe failed")
        elif self._state is CircuitState.CLOSED and self._consecutive_failures >= self.failure_threshold:
            self._trip("threshold reached")

    def record_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            logger.info("Publish circuit closed")
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None

    def get_stats(self) -> dict:
        """Snapshot for the detailed health endpoint."""
        return {
            "state": self._state.value,
            "failure_count": self._consecutive_failures,
            "rejected_count": self._rejected,
        }


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.5, cap: float = 10.0) -> float:
    """
    Full-jitter exponential backoff: a uniform draw from
    [base_delay, min(base_delay * 2**attempt, cap)].
    """
    ceiling = min(base_delay * (2 ** attempt), cap)
    return random.uniform(base_delay, max(ceiling, base_delay))
