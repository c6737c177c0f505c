"""Runtime-adjustable crawl worker pool.

Workers pull jobs from a `JobScheduler` and run fetch -> analyze -> link
check -> persist -> publish for each. A single supervisor thread owns the
worker set and applies `adjust_workers` commands from a control queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import logging
import queue
import threading
import time

from .config import CrawlerConfig
from .constants import DEQUEUE_POLL_SECONDS, MIN_WORKERS, SEMAPHORE_POLL_SECONDS
from .errors import FetchError, ParseError, PoolShutdown, TargetNotFoundError
from .fetcher import Fetcher
from .link_checker import LinkChecker
from .parsers import HTMLAnalyzer
from .publisher import ResultPublisher
from .repository import TargetRepository
from .scheduler import EnqueueResult, EnqueueStatus, JobScheduler
from .stats import StatsCollector
from .types import (
    CrawlResult,
    FetchResult,
    Job,
    TargetStatus,
    WorkerAction,
    WorkerCommand,
    utc_now_iso,
)


LOGGER = logging.getLogger(__name__)

_STOP_SUPERVISOR = object()


@dataclass(slots=True)
class _WorkerHandle:
    name: str
    retire: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    current_target: int | None = None

    @property
    def alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


class WorkerPool:
    """Bounded pool of crawl workers fed by a priority scheduler.

    Lifecycle:
    - `start()` spawns the supervisor and the initial workers, then returns.
    - `cancel()` (or setting the event passed to `start`) aborts in-flight
      fetches and unblocks every dequeue. A cancelled pool accepts no
      new work, and a job cancelled mid-crawl is never persisted.
    - `shutdown()` stops handing out jobs, waits for in-flight jobs to
      finish, and returns once every worker has exited.
    """

    def __init__(
        self,
        repository: TargetRepository,
        config: CrawlerConfig | None = None,
        *,
        fetcher: Fetcher | None = None,
        analyzer: HTMLAnalyzer | None = None,
        link_checker: LinkChecker | None = None,
        scheduler: JobScheduler | None = None,
        publisher: ResultPublisher | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config or CrawlerConfig()
        self.repository = repository

        self.fetcher = fetcher or Fetcher(self.config)
        self.analyzer = analyzer or HTMLAnalyzer()
        self.link_checker = link_checker or LinkChecker(self.config)
        self.scheduler = scheduler or JobScheduler()
        self.publisher = publisher or ResultPublisher(
            repository,
            buffer_size=self.config.results_buffer,
        )
        self.stats = stats or StatsCollector()

        self._owns_fetcher = fetcher is None
        self._owns_link_checker = link_checker is None

        self._fetch_semaphore = threading.BoundedSemaphore(self.config.max_concurrent_crawls)
        self._cancel_event = threading.Event()

        self._control: queue.Queue[object] = queue.Queue()
        self._workers_lock = threading.Lock()
        self._workers: dict[str, _WorkerHandle] = {}
        self._worker_ids = itertools.count(1)
        self._supervisor: threading.Thread | None = None

        self._state_lock = threading.Lock()
        self._started = False
        self._target_workers = self.config.number_of_crawlers
        self._stopping = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, target_id: int) -> EnqueueResult:
        """Queue a target at default priority. Duplicates are a no-op."""

        self._ensure_accepting()
        return self._record_enqueue(target_id, self.scheduler.enqueue(target_id))

    def enqueue_with_priority(self, target_id: int, priority: int) -> EnqueueResult:
        """Queue a target at `priority` (higher runs first)."""

        self._ensure_accepting()
        return self._record_enqueue(
            target_id,
            self.scheduler.enqueue_with_priority(target_id, priority),
        )

    def start(self, cancel_event: threading.Event | None = None) -> None:
        """Spawn the supervisor and initial workers, then return immediately.

        `cancel_event` acts as the top-level cancellation signal; when set,
        every dequeue unblocks and every in-flight fetch is aborted.
        """

        with self._state_lock:
            if self._stopping:
                raise PoolShutdown("pool has been shut down")
            if self._started:
                raise RuntimeError("pool already started")
            self._started = True

        if cancel_event is not None:
            self._cancel_event = cancel_event

        with self._workers_lock:
            for _ in range(self.config.number_of_crawlers):
                self._spawn_worker_locked()

        self._supervisor = threading.Thread(
            target=self._supervise,
            name="crawler-supervisor",
            daemon=True,
        )
        self._supervisor.start()

        LOGGER.info(
            "Crawler pool started: workers=%d, max_concurrent_crawls=%d, crawl_timeout=%.1fs",
            self.config.number_of_crawlers,
            self.config.max_concurrent_crawls,
            self.config.crawl_timeout_seconds,
        )

    def cancel(self) -> None:
        """Abort in-flight fetches and release every blocked dequeue."""

        self._cancel_event.set()
        self.scheduler.wake_all()

    def shutdown(self) -> None:
        """Stop dequeuing, wait for in-flight jobs, and stop all threads."""

        with self._state_lock:
            if self._stopped:
                return
            self._stopping = True

        self.scheduler.close()
        abandoned = self.scheduler.drain()
        if abandoned:
            LOGGER.warning(
                "Shutdown: %d queued job(s) were not started: %s",
                len(abandoned),
                [job.target_id for job in abandoned],
            )

        # Supervisor first, so no worker is spawned after the join below.
        if self._supervisor is not None:
            self._control.put(_STOP_SUPERVISOR)
            self._supervisor.join()

        for handle in self._snapshot_handles():
            if handle.thread is not None:
                handle.thread.join()

        if self._owns_link_checker:
            self.link_checker.close()
        if self._owns_fetcher:
            self.fetcher.close()

        self.stats.record_scheduler_snapshot(self.scheduler.snapshot())
        self.stats.finish()

        with self._state_lock:
            self._stopped = True
        LOGGER.info("Crawler pool stopped")

    def get_results(self) -> queue.Queue[CrawlResult]:
        """Completion feed (bounded, drop-oldest)."""

        return self.publisher.results()

    def adjust_workers(self, command: WorkerCommand) -> None:
        """Ask the supervisor to add or retire workers.

        Retiring workers finish their current job before exiting. The pool
        never shrinks below one worker.
        """

        if not isinstance(command, WorkerCommand):
            raise TypeError(f"Expected WorkerCommand, got {type(command)!r}")
        with self._state_lock:
            if self._stopping:
                raise PoolShutdown("pool is shutting down")
            if self._cancel_event.is_set():
                raise PoolShutdown("pool is cancelled")
            if command.action == WorkerAction.ADD:
                self._target_workers += command.count
            else:
                self._target_workers = max(MIN_WORKERS, self._target_workers - command.count)
        self._control.put(command)

    @property
    def worker_count(self) -> int:
        """Workers that are not marked for retirement."""

        with self._workers_lock:
            return sum(1 for handle in self._workers.values() if not handle.retire.is_set())

    @property
    def target_workers(self) -> int:
        """Desired worker count after every submitted command is applied."""

        with self._state_lock:
            return self._target_workers

    @property
    def live_threads(self) -> int:
        """Worker threads still running, including retiring ones."""

        with self._workers_lock:
            return sum(1 for handle in self._workers.values() if handle.alive)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def snapshot(self) -> dict[str, object]:
        """Return pool + scheduler state for logs/stats reporting."""

        with self._workers_lock:
            busy = {
                handle.name: handle.current_target
                for handle in self._workers.values()
                if handle.current_target is not None
            }
        return {
            "workers": self.worker_count,
            "live_threads": self.live_threads,
            "busy": busy,
            "cancelled": self.cancelled,
            "results_dropped": self.publisher.dropped,
            "scheduler": self.scheduler.snapshot(),
        }

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Supervisor
    # ------------------------------------------------------------------

    def _supervise(self) -> None:
        cancel_seen = False
        while True:
            try:
                item = self._control.get(timeout=DEQUEUE_POLL_SECONDS)
            except queue.Empty:
                item = None

            if item is _STOP_SUPERVISOR:
                return

            if isinstance(item, WorkerCommand):
                self._apply_command(item)

            if self._cancel_event.is_set() and not cancel_seen:
                cancel_seen = True
                self.scheduler.wake_all()

            self._reap_workers()

    def _apply_command(self, command: WorkerCommand) -> None:
        with self._state_lock:
            stopping = self._stopping
        if stopping:
            LOGGER.info("Ignoring %s: pool is shutting down", command)
            return

        if command.action == WorkerAction.ADD:
            with self._workers_lock:
                for _ in range(command.count):
                    self._spawn_worker_locked()
            LOGGER.info("Added %d worker(s); active=%d", command.count, self.worker_count)
            return

        with self._workers_lock:
            active = [h for h in self._workers.values() if not h.retire.is_set()]
            removable = max(0, len(active) - MIN_WORKERS)
            to_retire = min(command.count, removable)
            # Newest workers retire first.
            for handle in active[len(active) - to_retire:]:
                handle.retire.set()

        if to_retire < command.count:
            LOGGER.warning(
                "Requested removal of %d worker(s); retiring %d to keep at least %d",
                command.count,
                to_retire,
                MIN_WORKERS,
            )
        self.scheduler.wake_all()
        LOGGER.info("Retiring %d worker(s); active=%d", to_retire, self.worker_count)

    def _spawn_worker_locked(self) -> _WorkerHandle:
        handle = _WorkerHandle(name=f"crawler-worker-{next(self._worker_ids)}")
        handle.thread = threading.Thread(
            target=self._worker_loop,
            args=(handle,),
            name=handle.name,
            daemon=True,
        )
        self._workers[handle.name] = handle
        handle.thread.start()
        self.stats.record_worker_event("spawned")
        return handle

    def _reap_workers(self) -> None:
        with self._workers_lock:
            finished = [
                name
                for name, handle in self._workers.items()
                if handle.thread is not None and not handle.thread.is_alive()
            ]
            for name in finished:
                del self._workers[name]

    def _snapshot_handles(self) -> list[_WorkerHandle]:
        with self._workers_lock:
            return list(self._workers.values())

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker_loop(self, handle: _WorkerHandle) -> None:
        # Called with the scheduler lock held; must not touch scheduler state.
        def should_exit() -> bool:
            return self._cancel_event.is_set() or handle.retire.is_set() or self._stopping

        LOGGER.debug("[%s] started", handle.name)
        while True:
            try:
                job = self.scheduler.dequeue(should_stop=should_exit, timeout=DEQUEUE_POLL_SECONDS)
            except PoolShutdown:
                break
            if job is None:
                if should_exit():
                    break
                continue

            handle.current_target = job.target_id
            try:
                self._process(job, handle.name)
            finally:
                handle.current_target = None
                self.scheduler.task_done(job.target_id)

        self.stats.record_worker_event("retired" if handle.retire.is_set() else "exited")
        LOGGER.debug("[%s] exited", handle.name)

    def _process(self, job: Job, worker_name: str) -> None:
        target_id = job.target_id
        started = time.monotonic()
        result = CrawlResult(target_id=target_id)

        try:
            target = self.repository.find_by_id(target_id)
            result.url = target.url

            self.publisher.mark_running(target_id)
            result.status = TargetStatus.RUNNING

            fetch_result = self._fetch(target.url)

            try:
                analysis, links = self.analyzer.analyze_fetch(fetch_result, target_id=target_id)
            except ParseError:
                self.stats.record_parse(ok=False)
                raise
            self.stats.record_parse(ok=True)

            self.link_checker.run(links, cancel_event=self._cancel_event)
            if self._cancel_event.is_set():
                # Unprobed links carry status 0; such a snapshot must not be saved.
                raise FetchError(target.url, "Cancelled during link check", cancelled=True)
            analysis.recount(links)
            self.stats.record_links(links)

            try:
                self.publisher.persist(target_id, analysis, links)
            except Exception:
                self.stats.record_persist(ok=False)
                raise
            self.stats.record_persist(ok=True)

            result.status = TargetStatus.DONE
            result.analysis = analysis
            result.links = links
            LOGGER.info(
                "[%s] target=%d done in %.2fs (links=%d, broken=%d)",
                worker_name,
                target_id,
                time.monotonic() - started,
                len(links),
                analysis.broken_link_count,
            )
        except TargetNotFoundError as exc:
            result.status = TargetStatus.ERROR
            result.error = exc
            LOGGER.warning("[%s] target=%d lookup failed: %s", worker_name, target_id, exc)
        except Exception as exc:
            result.status = TargetStatus.ERROR
            result.error = exc
            self.publisher.mark_error(target_id)
            if isinstance(exc, FetchError) and exc.cancelled:
                LOGGER.info("[%s] target=%d cancelled", worker_name, target_id)
            elif isinstance(exc, FetchError | ParseError):
                LOGGER.warning("[%s] target=%d %s: %s", worker_name, target_id, exc.__class__.__name__, exc)
            else:
                LOGGER.exception("[%s] target=%d failed", worker_name, target_id)
        finally:
            result.duration_seconds = time.monotonic() - started
            result.finished_at = utc_now_iso()
            self.stats.record_job(result)
            dropped = self.publisher.publish(result)
            self.stats.record_publish(dropped=dropped)

    def _fetch(self, url: str) -> FetchResult:
        if not self._acquire_fetch_slot():
            raise FetchError(url, "Fetch cancelled while waiting for a crawl slot", cancelled=True)
        try:
            fetch_result = self.fetcher.fetch(
                url,
                timeout=self.config.crawl_timeout_seconds,
                cancel_event=self._cancel_event,
            )
        except FetchError as exc:
            self.stats.record_fetch_error(exc)
            raise
        finally:
            self._fetch_semaphore.release()

        self.stats.record_fetch(fetch_result)
        return fetch_result

    def _acquire_fetch_slot(self) -> bool:
        while not self._cancel_event.is_set():
            if self._fetch_semaphore.acquire(timeout=SEMAPHORE_POLL_SECONDS):
                return True
        return False

    def _ensure_accepting(self) -> None:
        with self._state_lock:
            if self._stopping:
                raise PoolShutdown("pool is shutting down")
            if self._cancel_event.is_set():
                raise PoolShutdown("pool is cancelled")

    def _record_enqueue(self, target_id: int, result: EnqueueResult) -> EnqueueResult:
        self.stats.record_enqueue(result)
        if result.status == EnqueueStatus.SKIPPED_DUPLICATE:
            LOGGER.debug("Target %s already queued or in flight; skipping", target_id)
        elif result.status == EnqueueStatus.SKIPPED_INVALID_ID:
            LOGGER.warning("Rejected invalid target id %r", target_id)
        return result


__all__ = ["WorkerPool"]
