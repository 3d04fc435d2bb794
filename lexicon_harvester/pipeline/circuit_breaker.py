"""
Consecutive-failure circuit breaker.

The breaker never interrupts a batch. The scheduler consults it between
batches: once the number of consecutive terminal failures reaches the
threshold it cools down, recycles the shared session and starts counting
again from zero.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from lexicon_harvester.utils.logging import get_logger
from .session_pool import SessionPool


logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class CircuitBreaker:
    """Tracks consecutive failures across keys and gates the next batch."""

    def __init__(self, threshold: int, cooldown_seconds: float, sleep: Sleeper = asyncio.sleep):
        """
        Args:
            threshold: Consecutive terminal failures that trip the breaker
            cooldown_seconds: Pause before recycling once tripped
            sleep: Awaitable sleep function (injectable for tests)
        """
        if threshold < 1:
            raise ValueError("threshold must be at least 1")

        self.threshold = threshold
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep

        self._consecutive_failures = 0
        self._trips = 0
        self._last_recycled = False

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    @property
    def trips(self) -> int:
        return self._trips

    @property
    def last_recycled(self) -> bool:
        """Whether the most recent trip actually closed a live session."""
        return self._last_recycled

    def record_success(self) -> None:
        self._consecutive_failures = 0

    def record_failure(self) -> int:
        """Count one terminal failure and return the new consecutive count."""
        self._consecutive_failures += 1
        return self._consecutive_failures

    def reset(self) -> None:
        self._consecutive_failures = 0

    def should_trip(self) -> bool:
        return self._consecutive_failures >= self.threshold

    async def guard(self, pool: SessionPool) -> bool:
        """
        Run before a batch starts. Cools down and recycles when tripped.

        Args:
            pool: Session pool to recycle

        Returns:
            True if the breaker tripped
        """
        if not self.should_trip():
            return False

        self._trips += 1
        logger.warning(
            f"{self._consecutive_failures} consecutive failures (threshold {self.threshold}), "
            f"cooling down for {self.cooldown_seconds:.0f}s and recycling the session"
        )

        await self._sleep(self.cooldown_seconds)
        self._last_recycled = await pool.recycle("circuit breaker")
        self.reset()
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self._consecutive_failures,
            "threshold": self.threshold,
            "trips": self._trips,
        }
