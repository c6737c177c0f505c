"""Bridge between finished jobs, the repository, and the completion feed."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Sequence

from .errors import PersistError
from .repository import TargetRepository
from .types import AnalysisResult, CrawlResult, Link, TargetStatus


LOGGER = logging.getLogger(__name__)


class ResultPublisher:
    """Persist job outcomes and publish `CrawlResult`s for observers.

    The completion feed is a bounded `queue.Queue` with a drop-oldest policy:
    when no one reads it, the oldest result is discarded so workers never
    block and memory stays bounded. The repository remains the authoritative
    record of success or failure.
    """

    def __init__(self, repository: TargetRepository, *, buffer_size: int) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self.repository = repository
        self._results: queue.Queue[CrawlResult] = queue.Queue(maxsize=buffer_size)
        self._publish_lock = threading.Lock()
        self._dropped = 0

    def mark_running(self, target_id: int) -> None:
        self.repository.update_status(target_id, TargetStatus.RUNNING)

    def mark_error(self, target_id: int) -> None:
        """Best-effort error status; a failure here is logged, not raised."""

        try:
            self.repository.update_status(target_id, TargetStatus.ERROR)
        except Exception as exc:
            LOGGER.warning("Cannot set error status for target=%s: %s", target_id, exc)

    def persist(
        self,
        target_id: int,
        analysis: AnalysisResult,
        links: Sequence[Link],
    ) -> None:
        """Write snapshot, links and the `done` status in one repository commit."""

        try:
            self.repository.save_results(target_id, analysis, links)
        except Exception as exc:
            raise PersistError(target_id, f"save_results failed: {exc}") from exc

    def publish(self, result: CrawlResult) -> int:
        """Put `result` on the feed; return how many old results were dropped."""

        dropped = 0
        with self._publish_lock:
            while True:
                try:
                    self._results.put_nowait(result)
                    break
                except queue.Full:
                    try:
                        self._results.get_nowait()
                        dropped += 1
                    except queue.Empty:
                        continue
            self._dropped += dropped

        if dropped:
            LOGGER.debug("Completion feed full, dropped %d oldest result(s)", dropped)
        return dropped

    def results(self) -> queue.Queue[CrawlResult]:
        """Return the completion feed."""

        return self._results

    @property
    def dropped(self) -> int:
        with self._publish_lock:
            return self._dropped


__all__ = ["ResultPublisher"]
