"""
Batch scheduler: the top-level driver of an extraction run.

Handles pending-set computation, batching, bounded concurrency, per-batch
persistence, session recycling and pacing.
"""

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from lexicon_harvester.utils.logging import get_event_logger, get_logger
from .checkpoint import CheckpointStore, ResultSet
from .circuit_breaker import CircuitBreaker
from .interfaces import Extractor
from .models import PipelineConfig, ResultRecord, RunSummary, WorkItem, WorkKey
from .retry import RetryController
from .session_pool import SessionPool


logger = get_logger(__name__)
event_log = get_event_logger("lexicon_harvester.events")

Sleeper = Callable[[float], Awaitable[None]]


class BatchScheduler:
    """
    Drives a list of keys through the extractor in sequential batches.

    Batch N+1 never starts before batch N has completed and been persisted,
    so the output file always reflects every finished batch.
    """

    def __init__(
        self,
        extractor: Extractor,
        pool: SessionPool,
        checkpoint: CheckpointStore,
        config: Optional[PipelineConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the scheduler.

        Args:
            extractor: Extraction adapter
            pool: Shared session pool
            checkpoint: Prior results and output persistence
            config: Pipeline tunables
            breaker: Circuit breaker (built from config when omitted)
            sleep: Awaitable sleep used for every pause (injectable for tests)
            clock: Monotonic clock for the run duration
        """
        self.extractor = extractor
        self.pool = pool
        self.checkpoint = checkpoint
        self.config = config or PipelineConfig()
        self._sleep = sleep
        self._clock = clock

        self.breaker = breaker or CircuitBreaker(
            threshold=self.config.failure_threshold,
            cooldown_seconds=self.config.cooldown_seconds,
            sleep=sleep
        )
        self.controller = RetryController(
            extractor=extractor,
            pool=pool,
            breaker=self.breaker,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            attempt_timeout=self.config.attempt_timeout,
            sleep=sleep
        )

        self.summary = RunSummary(output_path=str(checkpoint.output_path))
        self._slots: Optional[asyncio.Semaphore] = None
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Finish the current batch, persist it and start no further batches."""
        if not self._stop_requested:
            logger.info("Stop requested, finishing the current batch")
        self._stop_requested = True

    @staticmethod
    def distinct_keys(keys: Iterable[WorkKey]) -> List[WorkKey]:
        """Deduplicate keys keeping first-seen order."""
        return list(dict.fromkeys(keys))

    @staticmethod
    def partition(items: Sequence[WorkItem], size: int) -> List[List[WorkItem]]:
        return [list(items[i:i + size]) for i in range(0, len(items), size)]

    async def run(self, input_keys: Iterable[WorkKey]) -> RunSummary:
        """
        Process every key not yet recorded in the output.

        Args:
            input_keys: Keys in input order; duplicates are allowed

        Returns:
            Run summary (also available as ``self.summary``)

        Raises:
            DatasetError: If the output can no longer be written
        """
        start = self._clock()
        summary = self.summary
        summary.started_at = datetime.now()

        distinct = self.distinct_keys(input_keys)
        checkpointed = self.checkpoint.load()
        result_set = self.checkpoint.result_set()

        pending = [WorkItem(key=key) for key in distinct if key not in checkpointed]

        summary.total_keys = len(distinct)
        summary.skipped = len(distinct) - len(pending)
        summary.pending = len(pending)

        logger.info(f"Total unique keys: {summary.total_keys}")
        logger.info(f"Already processed: {summary.skipped}")
        logger.info(f"Remaining to process: {summary.pending}")

        if not pending:
            logger.info("All keys already processed, nothing to do")
            return self._finish(start)

        batches = self.partition(pending, self.config.batch_size)
        summary.batches_total = len(batches)
        self._slots = asyncio.Semaphore(self.config.concurrency)

        logger.info(
            f"Processing {len(pending)} keys in {len(batches)} batches of up to "
            f"{self.config.batch_size} with {self.config.concurrency} concurrent slots"
        )

        for index, batch in enumerate(batches):
            if self._stop_requested:
                summary.interrupted = True
                logger.info(f"Stopping before batch {index + 1}/{len(batches)}")
                break

            if index > 0 and await self.breaker.guard(self.pool):
                summary.breaker_trips += 1
                if self.breaker.last_recycled:
                    summary.recycles += 1

                # A stop may arrive during the cooldown
                if self._stop_requested:
                    summary.interrupted = True
                    logger.info(f"Stopping before batch {index + 1}/{len(batches)}")
                    break

            records = await self._process_batch(index, len(batches), batch)
            self._record_batch(result_set, records)

            # Persist before anything else so a crash keeps this batch
            self.checkpoint.persist(result_set)
            summary.batches_completed += 1
            self._log_progress(index, len(batches))

            is_last = index + 1 == len(batches)
            cadence = self.config.recycle_every_batches
            if cadence and (index + 1) % cadence == 0 and not is_last:
                if await self.pool.recycle(f"every {cadence} batches"):
                    summary.recycles += 1

            if not is_last and not self._stop_requested and self.config.batch_delay > 0:
                logger.info(f"Waiting {self.config.batch_delay:.1f}s before next batch")
                await self._sleep(self.config.batch_delay)

        if self._stop_requested and summary.batches_completed < summary.batches_total:
            summary.interrupted = True

        return self._finish(start)

    async def _process_batch(self, index: int, total: int, batch: List[WorkItem]) -> List[ResultRecord]:
        """Run one batch; a batch-level error turns every key into a failure record."""
        logger.info(f"Processing batch {index + 1}/{total} ({len(batch)} keys)")

        try:
            return await self._dispatch(batch)
        except Exception as e:
            error_message = f"{type(e).__name__}: {e}"
            logger.error(f"Batch {index + 1} failed unexpectedly: {error_message}; "
                         f"recording {len(batch)} keys as failed")
            self.summary.errors.append(f"batch {index + 1}: {error_message}")

            schema = self.extractor.schema
            records = []
            for item in batch:
                item.fail(error_message)
                self.breaker.record_failure()
                records.append(ResultRecord.failure(schema, item.key, attempts=item.attempt,
                                                    error_message=error_message))
            return records

    async def _dispatch(self, batch: List[WorkItem]) -> List[ResultRecord]:
        tasks = [asyncio.ensure_future(self._run_item(item)) for item in batch]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_item(self, item: WorkItem) -> ResultRecord:
        async with self._slots:
            item.dispatch()
            record = await self.controller.attempt(item)
            # Per-item pacing, held inside the slot
            if self.config.item_delay > 0:
                await self._sleep(self.config.item_delay)
            return record

    def _record_batch(self, result_set: ResultSet, records: List[ResultRecord]) -> None:
        schema = self.extractor.schema
        for record in records:
            if record.key in result_set:
                logger.warning(f"Duplicate result for '{record.key}' ignored")
                continue

            self.checkpoint.merge(result_set, record)
            if record.succeeded:
                self.summary.succeeded += 1
                if schema.is_empty(record.values):
                    self.summary.empty += 1
                    logger.warning(f"No content found for '{record.key}'")
            else:
                self.summary.failed += 1

    def _log_progress(self, index: int, total_batches: int) -> None:
        summary = self.summary
        processed = summary.processed
        batch_pct = processed / summary.pending * 100 if summary.pending else 100.0
        overall = summary.skipped + processed
        overall_pct = overall / summary.total_keys * 100 if summary.total_keys else 100.0

        logger.info(f"Batch {index + 1}/{total_batches} saved to {self.checkpoint.output_path}")
        logger.info(f"Run progress: {processed}/{summary.pending} ({batch_pct:.1f}%)")
        logger.info(f"Overall progress: {overall}/{summary.total_keys} ({overall_pct:.1f}%)")

    def _finish(self, start: float) -> RunSummary:
        summary = self.summary
        summary.completed_at = datetime.now()
        summary.execution_time = self._clock() - start

        status = "interrupted" if summary.interrupted else "completed"
        logger.info(f"Extraction {status}")
        logger.info(f"  Total unique keys: {summary.total_keys}")
        logger.info(f"  Already processed: {summary.skipped}")
        logger.info(f"  Newly succeeded: {summary.succeeded}")
        logger.info(f"  Failed extractions: {summary.failed}")
        logger.info(f"  Success rate: {summary.get_success_rate():.1f}%")
        logger.info(f"  Execution time: {summary.execution_time:.2f} seconds")
        logger.info(f"  Output file: {summary.output_path}")
        logger.debug(f"Breaker: {self.breaker.get_stats()}; session pool: {self.pool.get_stats()}")
        event_log.info("run_finished", status=status, **summary.to_dict())
        return summary
