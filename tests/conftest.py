"""Shared fixtures and in-memory fakes for crawler tests.

No test talks to the network:
- `FakeFetcher` serves canned pages and can hold a fetch open until released.
- `FakeLinkChecker` marks links broken from a fixed set instead of probing.
- `InMemoryRepository` implements the repository protocol with dicts.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterator

import pytest

from urlinsight.crawler.config import CrawlerConfig
from urlinsight.crawler.errors import FetchError, TargetNotFoundError
from urlinsight.crawler.pool import WorkerPool
from urlinsight.crawler.types import AnalysisResult, FetchResult, Link, Target, TargetStatus


SIMPLE_PAGE = (
    "<!DOCTYPE html><html><head><title>T</title></head>"
    "<body><h1>A</h1><h2>B</h2>"
    '<a href="/about">About</a><a href="https://other.example.org/">Other</a>'
    "</body></html>"
)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it is true or `timeout` elapses."""

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class InMemoryRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self.targets: dict[int, Target] = {}
        self.snapshots: dict[int, list[tuple[AnalysisResult, list[Link]]]] = {}
        self.status_history: dict[int, list[TargetStatus]] = {}
        self.fail_save_for: set[int] = set()

    def add(self, url: str) -> Target:
        with self._lock:
            target = Target(id=self._next_id, url=url, status=TargetStatus.QUEUED)
            self._next_id += 1
            self.targets[target.id] = target
            self.status_history[target.id] = [TargetStatus.QUEUED]
        return target

    def find_by_id(self, target_id: int) -> Target:
        with self._lock:
            target = self.targets.get(target_id)
        if target is None:
            raise TargetNotFoundError(target_id)
        return target

    def update_status(self, target_id: int, status: TargetStatus) -> None:
        with self._lock:
            target = self.targets.get(target_id)
            if target is None:
                raise TargetNotFoundError(target_id)
            self.targets[target_id] = Target(id=target.id, url=target.url, status=status)
            self.status_history[target_id].append(status)

    def save_results(self, target_id: int, analysis: AnalysisResult, links) -> None:
        if target_id in self.fail_save_for:
            raise RuntimeError("disk full")
        with self._lock:
            target = self.targets.get(target_id)
            if target is None:
                raise TargetNotFoundError(target_id)
            self.snapshots.setdefault(target_id, []).append((analysis, list(links)))
            self.targets[target_id] = Target(id=target.id, url=target.url, status=TargetStatus.DONE)
            self.status_history[target_id].append(TargetStatus.DONE)

    def status(self, target_id: int) -> TargetStatus:
        with self._lock:
            return self.targets[target_id].status


class FakeFetcher:
    """Serve canned pages; URLs in `blocked` wait for `release` (or cancel)."""

    def __init__(self, config: CrawlerConfig | None = None) -> None:
        self.pages: dict[str, tuple[int, str, str]] = {}
        self.failures: dict[str, str] = {}
        self.blocked: set[str] = set()
        self.release = threading.Event()

        self._lock = threading.Lock()
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    def add_page(self, url: str, body: str = SIMPLE_PAGE, *, status: int = 200,
                 content_type: str = "text/html; charset=utf-8") -> None:
        self.pages[url] = (status, content_type, body)

    def fetch(self, url: str, *, timeout: float | None = None,
              cancel_event: threading.Event | None = None) -> FetchResult:
        with self._lock:
            self.calls.append(url)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if url in self.blocked:
                while not self.release.wait(0.01):
                    if cancel_event is not None and cancel_event.is_set():
                        raise FetchError(url, "Fetch cancelled", cancelled=True)
            if url in self.failures:
                raise FetchError(url, self.failures[url])
            status, content_type, body = self.pages.get(url, (200, "text/html", SIMPLE_PAGE))
            return FetchResult(
                requested_url=url,
                final_url=url,
                status_code=status,
                content_type=content_type,
                body=body.encode("utf-8"),
                elapsed_ms=1,
            )
        finally:
            with self._lock:
                self.active -= 1

    def close(self) -> None:
        self.closed = True


class FakeLinkChecker:
    """Mark links 200/404; `on_run` fires before probing (e.g. to cancel mid-check)."""

    def __init__(self, config: CrawlerConfig | None = None) -> None:
        self.broken: set[str] = set()
        self.on_run: Callable[[], None] | None = None
        self.closed = False

    def run(self, links, *, cancel_event: threading.Event | None = None):
        if self.on_run is not None:
            self.on_run()
        for link in links:
            if cancel_event is not None and cancel_event.is_set():
                link.status_code = 0
            else:
                link.status_code = 404 if link.href in self.broken else 200
        return list(links)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def link_checker() -> FakeLinkChecker:
    return FakeLinkChecker()


@pytest.fixture()
def make_pool(
    repository: InMemoryRepository,
    fetcher: FakeFetcher,
    link_checker: FakeLinkChecker,
) -> Iterator[Callable[..., WorkerPool]]:
    """Factory for pools wired to the fakes; every pool is torn down after the test."""

    pools: list[WorkerPool] = []

    def factory(**overrides) -> WorkerPool:
        config = CrawlerConfig(number_of_crawlers=1).with_overrides(**overrides)
        pool = WorkerPool(
            repository,
            config,
            fetcher=fetcher,
            link_checker=link_checker,
        )
        pools.append(pool)
        return pool

    yield factory

    fetcher.release.set()
    for pool in pools:
        pool.cancel()
        pool.shutdown()
