"""Tests for the durable job queue.

**Feature: price-alerts**
"""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coinwatch.db import JobQueue
from coinwatch.models import JobState, JobType


@pytest.fixture
def temp_queue():
    """Create a temporary queue for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield JobQueue(Path(tmpdir) / "queue.db")


class TestPriorityOrdering:
    """
    **Feature: price-alerts, Property: Priority Ordering**

    *For any* set of due jobs, lower priority values are claimed first.
    """

    @given(priorities=st.lists(st.integers(min_value=0, max_value=20), min_size=1, max_size=8))
    @settings(max_examples=25, deadline=None)
    def test_claims_in_priority_order(self, priorities):
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = JobQueue(Path(tmpdir) / "queue.db")
            base = datetime.now() - timedelta(minutes=1)
            for i, priority in enumerate(priorities):
                queue.add("job", priority=priority, run_at=base + timedelta(microseconds=i))

            claimed = []
            while (job := queue.claim_next()) is not None:
                claimed.append(job.priority)
                queue.complete(job.id)

            assert claimed == sorted(priorities)

    def test_immediate_job_runs_before_queued_recurring(self, temp_queue: JobQueue):
        past = datetime.now() - timedelta(seconds=5)
        temp_queue.add("recurring-price-check", job_type=JobType.RECURRING, run_at=past)
        immediate = temp_queue.add("immediate-price-check", priority=1)
        assert temp_queue.claim_next().id == immediate.id


class TestQueueBasics:
    def test_add_defaults(self, temp_queue: JobQueue):
        job = temp_queue.add("immediate-price-check", data={"type": "immediate"})
        assert job.state == JobState.WAITING
        assert job.priority == JobQueue.DEFAULT_PRIORITY
        assert job.attempts == 0
        assert job.data == {"type": "immediate"}
        assert temp_queue.get_job(job.id) == job

    def test_explicit_job_id_deduplicates(self, temp_queue: JobQueue):
        first = temp_queue.add("recurring-price-check", job_id="tick-1")
        second = temp_queue.add("recurring-price-check", job_id="tick-1", priority=1)
        assert second == first
        assert temp_queue.get_stats().total_jobs == 1

    def test_future_job_not_claimed(self, temp_queue: JobQueue):
        temp_queue.add("job", run_at=datetime.now() + timedelta(hours=1))
        assert temp_queue.claim_next() is None
        assert temp_queue.next_run_at() is not None

    def test_claim_marks_active_and_counts_attempt(self, temp_queue: JobQueue):
        temp_queue.add("job")
        job = temp_queue.claim_next()
        assert job.state == JobState.ACTIVE
        assert job.attempts == 1
        assert job.processed_at is not None
        assert temp_queue.claim_next() is None

    def test_complete_stores_result(self, temp_queue: JobQueue):
        temp_queue.add("job")
        job = temp_queue.claim_next()
        done = temp_queue.complete(job.id, {"triggered_alerts": 2})
        assert done.state == JobState.COMPLETED
        assert done.result == {"triggered_alerts": 2}
        assert done.finished_at is not None

    def test_stats(self, temp_queue: JobQueue):
        temp_queue.add("a")
        temp_queue.add("b")
        temp_queue.add("c", run_at=datetime.now() - timedelta(seconds=1), priority=0)
        job = temp_queue.claim_next()
        temp_queue.complete(job.id)
        temp_queue.claim_next()

        stats = temp_queue.get_stats()
        assert stats.total_jobs == 3
        assert stats.completed_jobs == 1
        assert stats.active_jobs == 1
        assert stats.waiting_jobs == 1
        assert stats.failed_jobs == 0
        assert len(temp_queue.get_waiting()) == 1


class TestRetryBackoff:
    """
    **Feature: price-alerts, Property: Exponential Retry**

    *For any* job with N attempts, failures re-queue it with delays
    base, 2*base, ... until the Nth failure marks it failed.
    """

    def test_backoff_then_failed(self, temp_queue: JobQueue):
        job = temp_queue.add("job", max_attempts=3, backoff_delay=5.0)
        now = datetime.now()

        claimed = temp_queue.claim_next(now)
        retried = temp_queue.fail(claimed.id, "HTTP 503", now=now)
        assert retried.state == JobState.WAITING
        assert retried.run_at == now + timedelta(seconds=5)
        assert temp_queue.claim_next(now) is None

        later = now + timedelta(seconds=5)
        claimed = temp_queue.claim_next(later)
        assert claimed.attempts == 2
        retried = temp_queue.fail(claimed.id, "HTTP 503", now=later)
        assert retried.run_at == later + timedelta(seconds=10)

        last = later + timedelta(seconds=10)
        claimed = temp_queue.claim_next(last)
        failed = temp_queue.fail(claimed.id, "HTTP 503", now=last)
        assert failed.state == JobState.FAILED
        assert failed.attempts == 3
        assert failed.failed_reason == "HTTP 503"
        assert [j.id for j in temp_queue.get_failed()] == [job.id]

    def test_requeue_stalled(self, temp_queue: JobQueue):
        temp_queue.add("job")
        temp_queue.claim_next()
        assert temp_queue.requeue_stalled() == 1
        assert temp_queue.get_stats().waiting_jobs == 1


class TestPauseResume:
    def test_paused_queue_hands_out_nothing(self, temp_queue: JobQueue):
        temp_queue.add("job")
        temp_queue.pause()
        assert temp_queue.is_paused()
        assert temp_queue.claim_next() is None

        temp_queue.resume()
        assert not temp_queue.is_paused()
        assert temp_queue.claim_next() is not None

    def test_pause_is_shared_across_instances(self, temp_queue: JobQueue):
        other = JobQueue(temp_queue.db_path)
        other.pause()
        assert temp_queue.is_paused()


class TestRetentionAndClean:
    def test_completed_history_is_bounded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = JobQueue(Path(tmpdir) / "queue.db", keep_completed=3, keep_failed=2)
            for _ in range(5):
                queue.add("job")
                queue.complete(queue.claim_next().id)
            for _ in range(4):
                queue.add("job", max_attempts=1)
                queue.fail(queue.claim_next().id, "boom")

            stats = queue.get_stats()
            assert stats.completed_jobs == 3
            assert stats.failed_jobs == 2

    def test_clean_removes_only_old_finished_jobs(self, temp_queue: JobQueue):
        for _ in range(3):
            temp_queue.add("job")
            temp_queue.complete(temp_queue.claim_next().id)
        temp_queue.add("waiting")

        assert temp_queue.clean(grace_seconds=3600) == []

        removed = temp_queue.clean(grace_seconds=-1, limit=2)
        assert len(removed) == 2
        stats = temp_queue.get_stats()
        assert stats.completed_jobs == 1
        assert stats.waiting_jobs == 1

    def test_clean_limit_applies_per_state(self, temp_queue: JobQueue):
        for _ in range(3):
            temp_queue.add("job")
            temp_queue.complete(temp_queue.claim_next().id)
        for _ in range(3):
            temp_queue.add("job", max_attempts=1)
            temp_queue.fail(temp_queue.claim_next().id, "boom")

        removed = temp_queue.clean(grace_seconds=-1, limit=2)

        assert len(removed) == 4
        stats = temp_queue.get_stats()
        assert stats.completed_jobs == 1
        assert stats.failed_jobs == 1


class TestListeners:
    def test_events_fire_on_transitions(self, temp_queue: JobQueue):
        events = []
        for event in JobQueue.EVENTS:
            temp_queue.on(event, lambda job, event=event: events.append(event))

        temp_queue.add("job", max_attempts=1)
        job = temp_queue.claim_next()
        temp_queue.fail(job.id, "boom")
        assert events == ["waiting", "active", "failed"]

    def test_broken_listener_does_not_break_queue(self, temp_queue: JobQueue):
        def broken(job):
            raise RuntimeError("listener bug")

        temp_queue.on("waiting", broken)
        assert temp_queue.add("job").state == JobState.WAITING

    def test_unknown_event_rejected(self, temp_queue: JobQueue):
        with pytest.raises(ValueError):
            temp_queue.on("delayed", lambda job: None)
