"""JobScheduler tests: ordering, deduplication, blocking dequeue, shutdown."""

from __future__ import annotations

import threading
import time

import pytest

from urlinsight.crawler.constants import DEFAULT_PRIORITY
from urlinsight.crawler.errors import PoolShutdown
from urlinsight.crawler.scheduler import EnqueueStatus, JobScheduler


def drain_ids(scheduler: JobScheduler) -> list[int]:
    ids = []
    while True:
        job = scheduler.dequeue(timeout=0)
        if job is None:
            return ids
        ids.append(job.target_id)


class TestOrdering:
    def test_higher_priority_first(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue_with_priority(1, 1)
        scheduler.enqueue_with_priority(2, 10)
        scheduler.enqueue_with_priority(3, 5)

        assert drain_ids(scheduler) == [2, 3, 1]

    def test_fifo_within_same_priority(self) -> None:
        scheduler = JobScheduler()
        for target_id in (4, 2, 9, 1):
            scheduler.enqueue(target_id)

        assert drain_ids(scheduler) == [4, 2, 9, 1]

    def test_enqueue_uses_default_priority(self) -> None:
        scheduler = JobScheduler()
        result = scheduler.enqueue(7)
        assert result.job.priority == DEFAULT_PRIORITY


class TestDeduplication:
    def test_duplicate_while_queued(self) -> None:
        scheduler = JobScheduler()
        assert scheduler.enqueue(1).accepted
        assert scheduler.enqueue_with_priority(1, 9).status == EnqueueStatus.SKIPPED_DUPLICATE
        assert scheduler.qsize() == 1

    def test_duplicate_while_in_flight(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue(1)
        job = scheduler.dequeue(timeout=0)

        assert scheduler.in_flight() == {job.target_id}
        assert scheduler.enqueue(1).status == EnqueueStatus.SKIPPED_DUPLICATE

        scheduler.task_done(1)
        assert not scheduler.is_tracked(1)
        assert scheduler.enqueue(1).accepted

    def test_invalid_ids(self) -> None:
        scheduler = JobScheduler()
        for bad in (0, -1, True, "3"):
            assert scheduler.enqueue(bad).status == EnqueueStatus.SKIPPED_INVALID_ID
        assert scheduler.qsize() == 0


class TestBlockingDequeue:
    def test_timeout_returns_none(self) -> None:
        scheduler = JobScheduler()
        started = time.monotonic()
        assert scheduler.dequeue(timeout=0.05) is None
        assert time.monotonic() - started >= 0.05

    def test_enqueue_wakes_waiting_consumer(self) -> None:
        scheduler = JobScheduler()
        received = []

        consumer = threading.Thread(target=lambda: received.append(scheduler.dequeue(timeout=5)))
        consumer.start()
        time.sleep(0.05)
        scheduler.enqueue(42)
        consumer.join(timeout=5)

        assert received[0].target_id == 42

    def test_should_stop_never_claims_a_job(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue(1)

        assert scheduler.dequeue(should_stop=lambda: True, timeout=1) is None
        assert scheduler.qsize() == 1
        assert scheduler.in_flight() == set()

    def test_wake_all_rechecks_stop_condition(self) -> None:
        scheduler = JobScheduler()
        stop = threading.Event()
        received = []

        consumer = threading.Thread(
            target=lambda: received.append(scheduler.dequeue(should_stop=stop.is_set)),
        )
        consumer.start()
        time.sleep(0.05)
        stop.set()
        scheduler.wake_all()
        consumer.join(timeout=5)

        assert not consumer.is_alive()
        assert received == [None]


class TestClose:
    def test_close_refuses_new_jobs_and_releases_waiters(self) -> None:
        scheduler = JobScheduler()
        received = []

        def consume() -> None:
            try:
                received.append(scheduler.dequeue())
            except PoolShutdown as exc:
                received.append(exc)

        consumer = threading.Thread(target=consume)
        consumer.start()
        time.sleep(0.05)

        scheduler.close()
        consumer.join(timeout=5)

        assert isinstance(received[0], PoolShutdown)
        assert scheduler.closed
        assert scheduler.enqueue(1).status == EnqueueStatus.SKIPPED_CLOSED

    def test_drain_returns_queued_jobs_in_order(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue_with_priority(1, 1)
        scheduler.enqueue_with_priority(2, 8)

        assert [job.target_id for job in scheduler.drain()] == [2, 1]
        assert scheduler.qsize() == 0
        assert not scheduler.is_tracked(1)

    def test_wait_idle(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue(1)
        assert scheduler.wait_idle(timeout=0.05) is False

        scheduler.dequeue(timeout=0)
        threading.Timer(0.05, scheduler.task_done, args=(1,)).start()
        assert scheduler.wait_idle(timeout=5) is True

    def test_snapshot_counts(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue(1)
        scheduler.enqueue(1)
        scheduler.enqueue(2)
        scheduler.dequeue(timeout=0)

        snapshot = scheduler.snapshot()
        assert snapshot["enqueued"] == 2
        assert snapshot["dequeued"] == 1
        assert snapshot["in_flight"] == 1
        assert snapshot["queue_size"] == 1
        assert snapshot["skipped_duplicate"] == 1

    def test_dequeue_on_closed_scheduler_raises(self) -> None:
        scheduler = JobScheduler()
        scheduler.enqueue(1)
        scheduler.close()

        with pytest.raises(PoolShutdown):
            scheduler.dequeue(timeout=0)
