"""
Bounded retry with linear backoff for a single key.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from lexicon_harvester.utils.logging import get_logger
from .circuit_breaker import CircuitBreaker
from .interfaces import Extractor
from .models import ResultRecord, WorkItem, WorkKey
from .session_pool import SessionPool


logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class RetryController:
    """
    Runs one key through the extractor, retrying transient failures.

    Every call returns a ResultRecord: the extracted record on success or a
    terminal-failure record once ``max_retries + 1`` attempts have failed.
    Handle borrow failures count as attempt failures.
    """

    def __init__(
        self,
        extractor: Extractor,
        pool: SessionPool,
        breaker: CircuitBreaker,
        max_retries: int = 2,
        base_delay: float = 5.0,
        attempt_timeout: Optional[float] = None,
        sleep: Sleeper = asyncio.sleep
    ):
        """
        Args:
            extractor: Adapter that turns a key and a handle into a record
            pool: Pool that lends handles
            breaker: Receives success/terminal-failure outcomes
            max_retries: Retries after the first attempt
            base_delay: Backoff unit; attempt ``n`` failing waits ``n * base_delay``
            attempt_timeout: Optional per-attempt limit in seconds
            sleep: Awaitable sleep function (injectable for tests)
        """
        self.extractor = extractor
        self.pool = pool
        self.breaker = breaker
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_delay(self, attempt_number: int) -> float:
        """Delay after failed attempt ``attempt_number`` (1-based)."""
        return attempt_number * self.base_delay

    async def attempt(self, item: WorkItem) -> ResultRecord:
        """
        Extract ``item.key`` with retries.

        Args:
            item: Work item; its attempt counter and state are updated

        Returns:
            Successful or terminal-failure record
        """
        schema = self.extractor.schema

        while True:
            attempt_number = item.begin_attempt()

            try:
                record = await self._attempt_once(item.key)
            except Exception as e:
                error_message = f"{type(e).__name__}: {e}"
                item.last_error = error_message

                if attempt_number < self.max_attempts:
                    delay = self.backoff_delay(attempt_number)
                    logger.warning(
                        f"Attempt {attempt_number}/{self.max_attempts} for '{item.key}' failed: "
                        f"{error_message}; retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue

                item.fail(error_message)
                consecutive = self.breaker.record_failure()
                logger.error(
                    f"Giving up on '{item.key}' after {attempt_number} attempts: {error_message} "
                    f"(consecutive failures: {consecutive})"
                )
                return ResultRecord.failure(schema, item.key, attempts=attempt_number,
                                            error_message=error_message)

            item.succeed()
            self.breaker.record_success()
            record = ResultRecord.from_values(schema, item.key, record.values, attempts=attempt_number)
            logger.debug(f"Extracted '{item.key}' on attempt {attempt_number}")
            return record

    async def _attempt_once(self, key: WorkKey) -> ResultRecord:
        async with self.pool.borrow_handle() as handle:
            if self.attempt_timeout:
                return await asyncio.wait_for(self.extractor.extract(key, handle), self.attempt_timeout)
            return await self.extractor.extract(key, handle)
