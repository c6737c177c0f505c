"""Thread-safe crawl pool statistics aggregation."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
import threading
from typing import Any, Iterable, Mapping

from .scheduler import EnqueueResult, EnqueueStatus
from .types import CrawlResult, FetchResult, Link, TargetStatus, utc_now_iso


class StatsCollector:
    """Collect and summarize crawl pool runtime statistics.

    The collector is thread-safe and shared by every worker.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = utc_now_iso()
        self._finished_at: str | None = None

        self._enqueue_counts: dict[str, int] = defaultdict(int)
        self._scheduler_snapshot: dict[str, int | bool] = {}

        self._fetched_ok = 0
        self._fetched_error = 0
        self._fetch_status_code_counts: dict[str, int] = defaultdict(int)
        self._fetch_error_type_counts: dict[str, int] = defaultdict(int)
        self._fetch_elapsed_ms_total = 0
        self._fetch_elapsed_samples = 0
        self._fetch_bytes_total = 0

        self._parsed_ok = 0
        self._parsed_error = 0

        self._links_total = 0
        self._links_broken = 0
        self._links_external = 0

        self._jobs_by_status: dict[str, int] = defaultdict(int)
        self._job_seconds_total = 0.0
        self._persisted = 0
        self._persist_errors = 0

        self._published = 0
        self._dropped = 0

        self._worker_events: dict[str, int] = defaultdict(int)

    def record_enqueue(self, result_or_status: EnqueueResult | EnqueueStatus) -> None:
        """Record one scheduler enqueue outcome."""

        if isinstance(result_or_status, EnqueueResult):
            status = result_or_status.status
        else:
            status = result_or_status

        with self._lock:
            self._enqueue_counts[status.value] += 1

    def record_scheduler_snapshot(self, snapshot: Mapping[str, int | bool]) -> None:
        with self._lock:
            self._scheduler_snapshot = dict(snapshot)

    def record_fetch(self, result: FetchResult) -> None:
        """Record one completed download."""

        with self._lock:
            self._fetched_ok += 1
            self._fetch_status_code_counts[str(result.status_code)] += 1
            if result.elapsed_ms is not None:
                self._fetch_elapsed_ms_total += int(result.elapsed_ms)
                self._fetch_elapsed_samples += 1
            self._fetch_bytes_total += result.content_length

    def record_fetch_error(self, exc: Exception) -> None:
        with self._lock:
            self._fetched_error += 1
            self._fetch_error_type_counts[exc.__class__.__name__] += 1

    def record_parse(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self._parsed_ok += 1
            else:
                self._parsed_error += 1

    def record_links(self, links: Iterable[Link]) -> None:
        """Record probed links for one page."""

        total = broken = external = 0
        for link in links:
            total += 1
            broken += int(link.broken)
            external += int(link.is_external)

        with self._lock:
            self._links_total += total
            self._links_broken += broken
            self._links_external += external

    def record_persist(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self._persisted += 1
            else:
                self._persist_errors += 1

    def record_job(self, result: CrawlResult) -> None:
        """Record the final outcome of one processed job."""

        status = result.status.value if isinstance(result.status, TargetStatus) else str(result.status)
        with self._lock:
            self._jobs_by_status[status] += 1
            self._job_seconds_total += max(0.0, result.duration_seconds)

    def record_publish(self, *, dropped: int = 0) -> None:
        with self._lock:
            self._published += 1
            self._dropped += dropped

    def record_worker_event(self, name: str) -> None:
        """Count worker lifecycle events (spawned, retired, exited)."""

        with self._lock:
            self._worker_events[name] += 1

    def finish(self) -> None:
        with self._lock:
            self._finished_at = utc_now_iso()

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            start = _parse_iso_utc(self._started_at)
            end = _parse_iso_utc(self._finished_at) if self._finished_at else datetime.now(
                timezone.utc
            )
            duration_seconds = max(0.0, (end - start).total_seconds())

            jobs_total = sum(self._jobs_by_status.values())
            fetch_elapsed_avg = (
                self._fetch_elapsed_ms_total / self._fetch_elapsed_samples
                if self._fetch_elapsed_samples > 0
                else 0.0
            )

            return {
                "started_at": self._started_at,
                "finished_at": self._finished_at,
                "duration_seconds": duration_seconds,
                "jobs": {
                    "total": jobs_total,
                    "by_status": dict(self._jobs_by_status),
                    "seconds_total": self._job_seconds_total,
                    "seconds_avg": self._job_seconds_total / jobs_total if jobs_total else 0.0,
                    "per_second": jobs_total / duration_seconds if duration_seconds > 0 else 0.0,
                },
                "scheduler": {
                    "enqueue_status_counts": dict(self._enqueue_counts),
                    "snapshot": dict(self._scheduler_snapshot),
                },
                "fetch": {
                    "ok": self._fetched_ok,
                    "error": self._fetched_error,
                    "status_code_counts": dict(self._fetch_status_code_counts),
                    "error_type_counts": dict(self._fetch_error_type_counts),
                    "elapsed_ms_total": self._fetch_elapsed_ms_total,
                    "elapsed_ms_avg": fetch_elapsed_avg,
                    "bytes_total": self._fetch_bytes_total,
                },
                "parse": {
                    "ok": self._parsed_ok,
                    "error": self._parsed_error,
                },
                "links": {
                    "total": self._links_total,
                    "broken": self._links_broken,
                    "external": self._links_external,
                    "internal": self._links_total - self._links_external,
                },
                "persist": {
                    "ok": self._persisted,
                    "error": self._persist_errors,
                },
                "publish": {
                    "published": self._published,
                    "dropped": self._dropped,
                },
                "workers": dict(self._worker_events),
            }


def _parse_iso_utc(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["StatsCollector"]
