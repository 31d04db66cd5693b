"""Scheduler and job queue coordination for price checks."""

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from coinwatch.config import Settings
from coinwatch.db import JobQueue
from coinwatch.errors import QUEUE_CONNECTION_FAILED, ConfigurationError, QueueNotInitializedError
from coinwatch.models import Job, JobType, QueueStats
from coinwatch.scheduler.checker import PriceAlertChecker

logger = logging.getLogger(__name__)

QUEUE_NAME = "price-check"
WORKER_NAME = "price-check-worker"
RECURRING_JOB_NAME = "recurring-price-check"
IMMEDIATE_JOB_NAME = "immediate-price-check"
IMMEDIATE_PRIORITY = 1
CLEAN_GRACE_SECONDS = 24 * 60 * 60
CLEAN_LIMIT = 100


class SchedulerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    PAUSED = "paused"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


def next_aligned_tick(now: datetime, interval_minutes: int) -> datetime:
    """Next wall-clock time that is a whole multiple of the interval since midnight.

    With a 30 minute interval the ticks are :00 and :30 of every hour.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((now - midnight).total_seconds() // 60)
    next_minute = (elapsed // interval_minutes + 1) * interval_minutes
    return midnight + timedelta(minutes=next_minute)


class AlertSchedulerService:
    """Owns the price-check queue, its single worker and the recurring schedule.

    A service built with ``process_jobs=False`` only connects to the queue,
    which is what operator commands need to control a worker running in
    another process.
    """

    def __init__(
        self,
        settings: Settings,
        checker: Optional[PriceAlertChecker] = None,
        queue: Optional[JobQueue] = None,
        process_jobs: bool = True,
    ):
        self.settings = settings
        self.checker = checker
        self.queue = queue
        self.process_jobs = process_jobs
        self.state = SchedulerState.UNINITIALIZED
        self._stopping = asyncio.Event()
        self._worker_task: Optional[asyncio.Task] = None
        self._schedule_task: Optional[asyncio.Task] = None

    # ==================== Lifecycle ====================

    async def initialize(self) -> None:
        """Connect the queue and, when processing, start the worker and schedule.

        Raises:
            ConfigurationError: If the queue cannot be opened.
        """
        if self.state in (SchedulerState.READY, SchedulerState.PAUSED):
            return
        if self.process_jobs and self.checker is None:
            raise ConfigurationError("A price alert checker is required to process jobs")

        self.state = SchedulerState.INITIALIZING
        try:
            if self.queue is None:
                db_path = self.settings.queue.database_path
                if not db_path:
                    raise ConfigurationError(f"{QUEUE_CONNECTION_FAILED}: queue.database_path is not set")
                self.queue = JobQueue(db_path, name=QUEUE_NAME)
            paused = self.queue.is_paused()
        except sqlite3.Error as e:
            self.state = SchedulerState.UNINITIALIZED
            raise ConfigurationError(f"{QUEUE_CONNECTION_FAILED}: {e}") from e
        except ConfigurationError:
            self.state = SchedulerState.UNINITIALIZED
            raise

        if self.process_jobs:
            stalled = self.queue.requeue_stalled()
            if stalled:
                logger.warning("Requeued %d stalled job(s)", stalled)
            self._register_listeners()
            self._stopping.clear()
            self._worker_task = asyncio.create_task(self._worker_loop(), name=WORKER_NAME)
            self._schedule_task = asyncio.create_task(self._schedule_loop(), name=RECURRING_JOB_NAME)
            logger.info(
                "Price checks scheduled every %d minute(s)",
                self.settings.jobs.price_check_interval_minutes,
            )

        self.state = SchedulerState.PAUSED if paused else SchedulerState.READY
        logger.info("Alert scheduler initialized (queue=%s, state=%s)", QUEUE_NAME, self.state.value)

    async def shutdown(self) -> None:
        """Stop scheduling, let an in-flight job finish, then close."""
        if self.state in (SchedulerState.UNINITIALIZED, SchedulerState.CLOSED):
            return
        self.state = SchedulerState.SHUTTING_DOWN
        self._stopping.set()

        if self._schedule_task is not None:
            self._schedule_task.cancel()
            await asyncio.gather(self._schedule_task, return_exceptions=True)
        if self._worker_task is not None:
            await asyncio.gather(self._worker_task, return_exceptions=True)

        self._schedule_task = None
        self._worker_task = None
        self.state = SchedulerState.CLOSED
        logger.info("Alert scheduler shut down")

    async def run_forever(self) -> None:
        """Initialize and block until cancelled, then shut down cleanly."""
        await self.initialize()
        try:
            await asyncio.Event().wait()
        finally:
            await self.shutdown()

    def is_service_initialized(self) -> bool:
        return self.state in (SchedulerState.READY, SchedulerState.PAUSED)

    def _require_ready(self) -> JobQueue:
        if not self.is_service_initialized() or self.queue is None:
            raise QueueNotInitializedError()
        return self.queue

    # ==================== Operations ====================

    def trigger_immediate_price_check(self) -> str:
        """Enqueue a price check ahead of scheduled ones.

        Returns:
            The id of the enqueued job.
        """
        queue = self._require_ready()
        job = queue.add(
            IMMEDIATE_JOB_NAME,
            data={"type": JobType.IMMEDIATE.value, "timestamp": datetime.now().isoformat()},
            job_type=JobType.IMMEDIATE,
            priority=IMMEDIATE_PRIORITY,
            max_attempts=self.settings.jobs.max_retries,
            backoff_delay=self.settings.jobs.retry_delay,
        )
        logger.info("Immediate price check queued as job %s", job.id)
        return job.id

    def pause_queue(self) -> None:
        self._require_ready().pause()
        self.state = SchedulerState.PAUSED
        logger.info("Price check queue paused")

    def resume_queue(self) -> None:
        self._require_ready().resume()
        self.state = SchedulerState.READY
        logger.info("Price check queue resumed")

    def clean_old_jobs(self) -> list[str]:
        """Remove up to 100 completed and 100 failed jobs older than 24 hours."""
        removed = self._require_ready().clean(CLEAN_GRACE_SECONDS, CLEAN_LIMIT)
        logger.info("Cleaned %d old job(s)", len(removed))
        return removed

    def get_queue_stats(self) -> QueueStats:
        return self._require_ready().get_stats()

    def get_job_info(self, job_id: str) -> Optional[Job]:
        return self._require_ready().get_job(job_id)

    def get_connection_info(self) -> dict:
        queue = self._require_ready()
        return {
            "database": str(queue.db_path),
            "queue": queue.name,
            "worker": WORKER_NAME if self.process_jobs else None,
            "state": self.state.value,
            "paused": queue.is_paused(),
        }

    # ==================== Worker ====================

    def schedule_recurring_check(self, now: Optional[datetime] = None) -> Job:
        """Enqueue the recurring check for the next aligned tick.

        At most one recurring check is pending at a time. While one is still
        waiting (the queue is paused or the worker is behind) it is returned
        instead of queueing another. The job id embeds the tick time, so
        scheduling the same tick twice also returns the already queued job.
        """
        queue = self._require_ready()
        pending = [job for job in queue.get_waiting() if job.type == JobType.RECURRING]
        if pending:
            return min(pending, key=lambda job: job.run_at)

        tick = next_aligned_tick(now or datetime.now(), self.settings.jobs.price_check_interval_minutes)
        return queue.add(
            RECURRING_JOB_NAME,
            data={"type": JobType.RECURRING.value, "timestamp": tick.isoformat()},
            job_type=JobType.RECURRING,
            job_id=f"{RECURRING_JOB_NAME}:{tick:%Y%m%dT%H%M}",
            max_attempts=self.settings.jobs.max_retries,
            backoff_delay=self.settings.jobs.retry_delay,
            run_at=tick,
        )

    async def process_next_job(self) -> Optional[Job]:
        """Claim and run one due job.

        Returns:
            The job after it completed or failed, or None if nothing was due.
        """
        queue = self._require_ready()
        if self.checker is None:
            raise ConfigurationError("A price alert checker is required to process jobs")

        job = await asyncio.to_thread(queue.claim_next)
        if job is None:
            return None

        try:
            summary = await self.checker.check_all_active_alerts()
        except Exception as e:
            # Any job failure is recorded on the job and retried by the queue
            logger.exception("Price check job %s failed (attempt %d)", job.id, job.attempts)
            return await asyncio.to_thread(queue.fail, job.id, str(e) or e.__class__.__name__)
        return await asyncio.to_thread(queue.complete, job.id, summary.model_dump(mode="json"))

    async def _worker_loop(self) -> None:
        poll_interval = self.settings.queue.poll_interval
        while not self._stopping.is_set():
            try:
                job = await self.process_next_job()
            except sqlite3.Error:
                logger.exception("Job queue error, retrying in %.1fs", poll_interval)
                job = None
            if job is None:
                await self._sleep(poll_interval)

    async def _schedule_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                job = await asyncio.to_thread(self.schedule_recurring_check)
            except sqlite3.Error:
                logger.exception("Could not schedule recurring price check")
                await self._sleep(self.settings.queue.poll_interval)
                continue
            delay = (job.run_at - datetime.now()).total_seconds()
            if delay <= 0:
                # Due but not yet claimed; the next tick is queued once it is
                delay = self.settings.queue.poll_interval
            await self._sleep(delay + 0.001)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _register_listeners(self) -> None:
        self.queue.on("waiting", lambda job: logger.debug("Job %s waiting (run at %s)", job.id, job.run_at))
        self.queue.on("active", lambda job: logger.info("Processing price check job %s", job.id))
        self.queue.on(
            "completed",
            lambda job: logger.info(
                "Job %s completed: %s alert(s) triggered",
                job.id,
                (job.result or {}).get("triggered_alerts", 0),
            ),
        )
        self.queue.on("failed", lambda job: logger.error("Job %s failed: %s", job.id, job.failed_reason))
