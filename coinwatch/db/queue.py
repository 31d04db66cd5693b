"""SQLite-backed durable job queue.

Jobs survive process restarts and can be inspected or controlled (pause,
resume, trigger, clean) from another process sharing the same database file.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from coinwatch.models import Job, JobState, JobType, QueueStats

logger = logging.getLogger(__name__)

JobListener = Callable[[Job], None]


def _ts(value: datetime) -> str:
    # Fixed-width timestamps keep SQL string comparisons chronological
    return value.isoformat(timespec="microseconds")


class JobQueue:
    """Durable priority queue with retry/backoff and bounded job history.

    Lower priority values are served first. Each job carries its own
    attempt budget and exponential backoff base delay.
    """

    DEFAULT_PRIORITY = 10
    EVENTS = ("waiting", "active", "completed", "failed")

    def __init__(
        self,
        db_path: Path,
        name: str = "price-check",
        keep_completed: int = 100,
        keep_failed: int = 50,
    ):
        """Initialize the queue.

        Args:
            db_path: Path to the SQLite database file.
            name: Queue name; several queues may share one database.
            keep_completed: Completed jobs retained for inspection.
            keep_failed: Failed jobs retained for inspection.
        """
        self.db_path = Path(db_path)
        self.name = name
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed
        self._listeners: dict[str, list[JobListener]] = {event: [] for event in self.EVENTS}
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    queue TEXT NOT NULL,
                    id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    state TEXT NOT NULL,
                    data TEXT NOT NULL,
                    priority INTEGER NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    max_attempts INTEGER NOT NULL,
                    backoff_delay REAL NOT NULL,
                    result TEXT,
                    failed_reason TEXT,
                    created_at TEXT NOT NULL,
                    run_at TEXT NOT NULL,
                    processed_at TEXT,
                    finished_at TEXT,
                    PRIMARY KEY (queue, id)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_state
                ON jobs (queue, state, priority, run_at)
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS queue_meta (
                    queue TEXT PRIMARY KEY,
                    paused INTEGER NOT NULL DEFAULT 0
                )
            """)
            cursor.execute(
                "INSERT OR IGNORE INTO queue_meta (queue, paused) VALUES (?, 0)",
                (self.name,),
            )
            conn.commit()
        finally:
            conn.close()

    # ==================== Events ====================

    def on(self, event: str, listener: JobListener) -> None:
        """Register a listener for a job state transition."""
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, job: Job) -> None:
        for listener in self._listeners[event]:
            try:
                listener(job)
            except Exception:
                # Listeners are observers only; a broken one must not stall the queue
                logger.exception("Queue listener for '%s' failed on job %s", event, job.id)

    # ==================== Rows ====================

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        def _dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return Job(
            id=row["id"],
            name=row["name"],
            type=JobType(row["type"]),
            state=JobState(row["state"]),
            data=json.loads(row["data"]),
            priority=row["priority"],
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            backoff_delay=row["backoff_delay"],
            result=json.loads(row["result"]) if row["result"] else None,
            failed_reason=row["failed_reason"],
            created_at=datetime.fromisoformat(row["created_at"]),
            run_at=datetime.fromisoformat(row["run_at"]),
            processed_at=_dt(row["processed_at"]),
            finished_at=_dt(row["finished_at"]),
        )

    def _fetch(self, conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
        row = conn.execute(
            "SELECT * FROM jobs WHERE queue = ? AND id = ?", (self.name, job_id)
        ).fetchone()
        return self._row_to_job(row) if row else None

    # ==================== Producer ====================

    def add(
        self,
        name: str,
        data: Optional[dict[str, Any]] = None,
        job_type: JobType = JobType.IMMEDIATE,
        priority: Optional[int] = None,
        job_id: Optional[str] = None,
        max_attempts: int = 3,
        backoff_delay: float = 5.0,
        run_at: Optional[datetime] = None,
    ) -> Job:
        """Enqueue a job.

        Args:
            name: Job name (e.g. ``recurring-price-check``).
            data: JSON-serializable payload.
            job_type: Recurring or immediate.
            priority: Lower runs first; defaults to DEFAULT_PRIORITY.
            job_id: Explicit id. If a job with this id exists it is returned
                unchanged instead of enqueueing a duplicate.
            max_attempts: Total attempts before the job is marked failed.
            backoff_delay: Base delay in seconds for exponential retry backoff.
            run_at: Earliest start time; defaults to now.

        Returns:
            The enqueued (or already existing) job.
        """
        now = datetime.now()
        job_id = job_id or str(uuid.uuid4())
        priority = self.DEFAULT_PRIORITY if priority is None else priority
        run_at = run_at or now

        conn = self._get_connection()
        try:
            existing = self._fetch(conn, job_id)
            if existing is not None:
                return existing
            conn.execute(
                """
                INSERT INTO jobs
                (queue, id, name, type, state, data, priority, attempts, max_attempts,
                 backoff_delay, created_at, run_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    self.name,
                    job_id,
                    name,
                    JobType(job_type).value,
                    JobState.WAITING.value,
                    json.dumps(data or {}),
                    priority,
                    max_attempts,
                    backoff_delay,
                    _ts(now),
                    _ts(run_at),
                ),
            )
            conn.commit()
            job = self._fetch(conn, job_id)
        finally:
            conn.close()

        self._emit("waiting", job)
        return job

    # ==================== Consumer ====================

    def claim_next(self, now: Optional[datetime] = None) -> Optional[Job]:
        """Atomically move the best due waiting job to ``active``.

        Returns None when the queue is paused or nothing is due.
        """
        now = now or datetime.now()
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            paused = conn.execute(
                "SELECT paused FROM queue_meta WHERE queue = ?", (self.name,)
            ).fetchone()
            if paused and paused["paused"]:
                conn.rollback()
                return None
            row = conn.execute(
                """
                SELECT id FROM jobs
                WHERE queue = ? AND state = ? AND run_at <= ?
                ORDER BY priority, run_at, created_at
                LIMIT 1
                """,
                (self.name, JobState.WAITING.value, _ts(now)),
            ).fetchone()
            if row is None:
                conn.rollback()
                return None
            conn.execute(
                """
                UPDATE jobs SET state = ?, attempts = attempts + 1, processed_at = ?
                WHERE queue = ? AND id = ?
                """,
                (JobState.ACTIVE.value, _ts(now), self.name, row["id"]),
            )
            conn.commit()
            job = self._fetch(conn, row["id"])
        finally:
            conn.close()

        self._emit("active", job)
        return job

    def complete(self, job_id: str, result: Optional[dict[str, Any]] = None) -> Job:
        """Mark an active job completed with its return value."""
        now = datetime.now()
        conn = self._get_connection()
        try:
            conn.execute(
                """
                UPDATE jobs SET state = ?, result = ?, failed_reason = NULL, finished_at = ?
                WHERE queue = ? AND id = ?
                """,
                (JobState.COMPLETED.value, json.dumps(result or {}), _ts(now), self.name, job_id),
            )
            conn.commit()
            job = self._fetch(conn, job_id)
        finally:
            conn.close()
        if job is None:
            raise KeyError(job_id)

        self._trim(JobState.COMPLETED, self.keep_completed)
        self._emit("completed", job)
        return job

    def fail(self, job_id: str, reason: str, now: Optional[datetime] = None) -> Job:
        """Record a failed attempt.

        The job goes back to ``waiting`` with exponential backoff while it has
        attempts left, otherwise it is marked ``failed``.
        """
        now = now or datetime.now()
        conn = self._get_connection()
        try:
            job = self._fetch(conn, job_id)
            if job is None:
                raise KeyError(job_id)

            if job.attempts < job.max_attempts:
                delay = job.backoff_delay * 2 ** (job.attempts - 1)
                conn.execute(
                    """
                    UPDATE jobs SET state = ?, failed_reason = ?, run_at = ?
                    WHERE queue = ? AND id = ?
                    """,
                    (
                        JobState.WAITING.value,
                        reason,
                        _ts(now + timedelta(seconds=delay)),
                        self.name,
                        job_id,
                    ),
                )
                event = "waiting"
            else:
                conn.execute(
                    """
                    UPDATE jobs SET state = ?, failed_reason = ?, finished_at = ?
                    WHERE queue = ? AND id = ?
                    """,
                    (JobState.FAILED.value, reason, _ts(now), self.name, job_id),
                )
                event = "failed"
            conn.commit()
            job = self._fetch(conn, job_id)
        finally:
            conn.close()

        if event == "failed":
            self._trim(JobState.FAILED, self.keep_failed)
        self._emit(event, job)
        return job

    def requeue_stalled(self) -> int:
        """Return jobs left ``active`` by a dead worker to ``waiting``."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE jobs SET state = ?, run_at = ? WHERE queue = ? AND state = ?",
                (JobState.WAITING.value, _ts(datetime.now()), self.name, JobState.ACTIVE.value),
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def next_run_at(self) -> Optional[datetime]:
        """Earliest start time among waiting jobs."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT MIN(run_at) AS run_at FROM jobs WHERE queue = ? AND state = ?",
                (self.name, JobState.WAITING.value),
            ).fetchone()
            return datetime.fromisoformat(row["run_at"]) if row["run_at"] else None
        finally:
            conn.close()

    # ==================== Inspection ====================

    def get_job(self, job_id: str) -> Optional[Job]:
        conn = self._get_connection()
        try:
            return self._fetch(conn, job_id)
        finally:
            conn.close()

    def get_jobs(self, state: JobState) -> list[Job]:
        """Get jobs in a state, most recent first."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT * FROM jobs WHERE queue = ? AND state = ?
                ORDER BY COALESCE(finished_at, run_at) DESC
                """,
                (self.name, JobState(state).value),
            ).fetchall()
            return [self._row_to_job(row) for row in rows]
        finally:
            conn.close()

    def get_waiting(self) -> list[Job]:
        return self.get_jobs(JobState.WAITING)

    def get_active(self) -> list[Job]:
        return self.get_jobs(JobState.ACTIVE)

    def get_completed(self) -> list[Job]:
        return self.get_jobs(JobState.COMPLETED)

    def get_failed(self) -> list[Job]:
        return self.get_jobs(JobState.FAILED)

    def get_stats(self) -> QueueStats:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT state, COUNT(*) AS n FROM jobs WHERE queue = ? GROUP BY state",
                (self.name,),
            ).fetchall()
        finally:
            conn.close()

        counts = {row["state"]: row["n"] for row in rows}
        return QueueStats(
            total_jobs=sum(counts.values()),
            waiting_jobs=counts.get(JobState.WAITING.value, 0),
            active_jobs=counts.get(JobState.ACTIVE.value, 0),
            completed_jobs=counts.get(JobState.COMPLETED.value, 0),
            failed_jobs=counts.get(JobState.FAILED.value, 0),
        )

    # ==================== Control ====================

    def pause(self) -> None:
        """Stop handing out new jobs. Jobs already active are unaffected."""
        self._set_paused(True)

    def resume(self) -> None:
        self._set_paused(False)

    def is_paused(self) -> bool:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT paused FROM queue_meta WHERE queue = ?", (self.name,)
            ).fetchone()
            return bool(row and row["paused"])
        finally:
            conn.close()

    def _set_paused(self, paused: bool) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "UPDATE queue_meta SET paused = ? WHERE queue = ?",
                (1 if paused else 0, self.name),
            )
            conn.commit()
        finally:
            conn.close()

    def clean(
        self,
        grace_seconds: float,
        limit: int = 0,
        states: tuple[JobState, ...] = (JobState.COMPLETED, JobState.FAILED),
    ) -> list[str]:
        """Remove finished jobs older than ``grace_seconds``.

        Args:
            grace_seconds: Minimum age (since finishing) of removed jobs.
            limit: Maximum number of jobs removed per state, oldest first;
                0 means no cap.
            states: Terminal states to sweep.

        Returns:
            Ids of the removed jobs.
        """
        cutoff = _ts(datetime.now() - timedelta(seconds=grace_seconds))
        query = """
            SELECT id FROM jobs
            WHERE queue = ? AND state = ? AND finished_at < ?
            ORDER BY finished_at
        """
        if limit > 0:
            query += " LIMIT ?"
        conn = self._get_connection()
        try:
            ids = []
            for state in states:
                params: list = [self.name, JobState(state).value, cutoff]
                if limit > 0:
                    params.append(limit)
                ids.extend(row["id"] for row in conn.execute(query, params).fetchall())
            conn.executemany(
                "DELETE FROM jobs WHERE queue = ? AND id = ?",
                [(self.name, job_id) for job_id in ids],
            )
            conn.commit()
            return ids
        finally:
            conn.close()

    def _trim(self, state: JobState, keep: int) -> None:
        """Keep only the ``keep`` most recently finished jobs in a terminal state."""
        conn = self._get_connection()
        try:
            conn.execute(
                """
                DELETE FROM jobs WHERE queue = ? AND state = ? AND id NOT IN (
                    SELECT id FROM jobs WHERE queue = ? AND state = ?
                    ORDER BY finished_at DESC LIMIT ?
                )
                """,
                (self.name, state.value, self.name, state.value, keep),
            )
            conn.commit()
        finally:
            conn.close()
