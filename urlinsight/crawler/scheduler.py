"""Thread-safe priority scheduler with per-target deduplication."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import heapq
import itertools
import threading
import time
from typing import Callable

from .constants import DEFAULT_PRIORITY
from .errors import PoolShutdown
from .types import Job


class EnqueueStatus(str, Enum):
    """Result status for scheduler enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_INVALID_ID = "skipped_invalid_id"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    job: Job | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


class JobScheduler:
    """Priority queue feeding pool workers.

    - Higher priority first; FIFO within one priority (sequence tiebreak).
    - A target id is tracked from enqueue until `task_done`, so it can be
      queued or in flight at most once.
    - One `threading.Condition` guards all state.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._heap: list[tuple[int, int, Job]] = []
        self._sequence = itertools.count()

        self._queued_ids: set[int] = set()
        self._in_flight_ids: set[int] = set()

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._completed_count = 0
        self._skipped_duplicate_count = 0

        self._closed = False

    def enqueue(self, target_id: int) -> EnqueueResult:
        """Queue `target_id` at the default priority."""

        return self.enqueue_with_priority(target_id, DEFAULT_PRIORITY)

    def enqueue_with_priority(self, target_id: int, priority: int) -> EnqueueResult:
        """Queue `target_id` at `priority`; duplicates are dropped."""

        if not isinstance(target_id, int) or isinstance(target_id, bool) or target_id <= 0:
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_ID)

        with self._cond:
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED)

            if target_id in self._queued_ids or target_id in self._in_flight_ids:
                self._skipped_duplicate_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_DUPLICATE)

            job = Job(target_id=target_id, priority=int(priority))
            heapq.heappush(self._heap, (-job.priority, next(self._sequence), job))
            self._queued_ids.add(target_id)
            self._enqueued_count += 1
            self._cond.notify()

        return EnqueueResult(EnqueueStatus.ENQUEUED, job=job)

    def dequeue(
        self,
        *,
        should_stop: Callable[[], bool] | None = None,
        timeout: float | None = None,
    ) -> Job | None:
        """Block until a job is available and move it to in-flight.

        Returns `None` when `should_stop()` becomes true or `timeout` elapses,
        and raises `PoolShutdown` once the scheduler is closed. `should_stop`
        is evaluated before any job is taken, so a stopping caller never
        claims work.
        """

        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                if self._closed:
                    raise PoolShutdown("scheduler closed")
                if should_stop is not None and should_stop():
                    return None

                if self._heap:
                    _, _, job = heapq.heappop(self._heap)
                    self._queued_ids.discard(job.target_id)
                    self._in_flight_ids.add(job.target_id)
                    self._dequeued_count += 1
                    return job

                if deadline is None:
                    self._cond.wait()
                    continue

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def task_done(self, target_id: int) -> None:
        """Release the in-flight slot for `target_id`."""

        with self._cond:
            if target_id in self._in_flight_ids:
                self._in_flight_ids.discard(target_id)
                self._completed_count += 1
            self._cond.notify_all()

    def wake_all(self) -> None:
        """Wake every blocked `dequeue` so it re-checks its stop condition."""

        with self._cond:
            self._cond.notify_all()

    def close(self) -> None:
        """Refuse new jobs and release every waiter."""

        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def drain(self) -> list[Job]:
        """Remove and return every queued (not in-flight) job in priority order."""

        with self._cond:
            jobs = [heapq.heappop(self._heap)[2] for _ in range(len(self._heap))]
            self._queued_ids.clear()
            return jobs

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued or in flight. Returns False on timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._heap or self._in_flight_ids:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def qsize(self) -> int:
        with self._cond:
            return len(self._heap)

    def in_flight(self) -> set[int]:
        """Return snapshot of target ids currently being processed."""

        with self._cond:
            return set(self._in_flight_ids)

    def is_tracked(self, target_id: int) -> bool:
        """Return True if target is queued or in flight."""

        with self._cond:
            return target_id in self._queued_ids or target_id in self._in_flight_ids

    def snapshot(self) -> dict[str, int | bool]:
        """Return scheduler counters for logs/stats reporting."""

        with self._cond:
            return {
                "closed": self._closed,
                "queue_size": len(self._heap),
                "in_flight": len(self._in_flight_ids),
                "enqueued": self._enqueued_count,
                "dequeued": self._dequeued_count,
                "completed": self._completed_count,
                "skipped_duplicate": self._skipped_duplicate_count,
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "JobScheduler",
]
