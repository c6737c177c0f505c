"""Single-page HTTP fetching with a hard deadline and immediate cancellation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
import logging
import threading
import time
from typing import Callable

import requests

from .config import CrawlerConfig
from .constants import DEFAULT_FETCH_CHUNK_BYTES, FETCH_WAIT_POLL_SECONDS
from .errors import FetchError
from .types import FetchResult
from .url import is_http_url


LOGGER = logging.getLogger(__name__)


class Fetcher:
    """Fetch one URL with `requests`, bounded by a per-call deadline.

    Concurrency model:
    - The request runs on a small internal executor while the caller waits on
      it, re-checking the cancel event and the deadline every
      `FETCH_WAIT_POLL_SECONDS`. A pool-level cancel therefore aborts an
      in-flight fetch immediately, even one still waiting for headers.
    - One `requests.Session` per executor thread, so requests never share a
      session. An abandoned request finishes (or times out) on its own thread
      and its result is discarded.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.config = config
        self._session_factory = session_factory

        self._thread_local = threading.local()
        self._sessions_lock = threading.Lock()
        self._sessions: list[requests.Session] = []

        # Extra room for requests abandoned by cancelled callers.
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_concurrent_crawls + config.number_of_crawlers,
            thread_name_prefix="crawler-fetch",
        )
        self._closed = False

    def fetch(
        self,
        url: str,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> FetchResult:
        """GET `url` and return the full body, or raise `FetchError`."""

        if not is_http_url(url):
            raise FetchError(url, f"Invalid or unsupported URL: {url!r}")
        if self._closed:
            raise FetchError(url, "Fetcher is closed")
        if cancel_event is not None and cancel_event.is_set():
            raise FetchError(url, "Fetch cancelled before start", cancelled=True)

        budget = self.config.crawl_timeout_seconds if timeout is None else timeout
        deadline = time.monotonic() + budget

        try:
            future = self._executor.submit(self._request, url, budget, deadline, cancel_event)
        except RuntimeError as exc:
            raise FetchError(url, "Fetcher is closed") from exc

        while True:
            try:
                return future.result(timeout=FETCH_WAIT_POLL_SECONDS)
            except FutureTimeoutError:
                pass
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                LOGGER.debug("Abandoning in-flight fetch of %s", url)
                raise FetchError(url, "Fetch cancelled", cancelled=True)
            if time.monotonic() > deadline:
                future.cancel()
                raise FetchError(url, f"Timed out after {budget:.1f}s")

    def _request(
        self,
        url: str,
        budget: float,
        deadline: float,
        cancel_event: threading.Event | None,
    ) -> FetchResult:
        started = time.perf_counter()
        session = self._thread_local_session()
        try:
            response = session.get(
                url,
                headers=self.config.headers(),
                timeout=budget,
                allow_redirects=True,
                stream=True,
            )
        except requests.Timeout as exc:
            raise FetchError(url, f"Timed out after {budget:.1f}s: {exc}") from exc
        except requests.RequestException as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc

        try:
            body = self._read_body(response, url, deadline=deadline, cancel_event=cancel_event)
        finally:
            response.close()

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if not 200 <= response.status_code < 300:
            LOGGER.info("Fetched %s with HTTP %s", url, response.status_code)

        return FetchResult(
            requested_url=url,
            final_url=response.url or url,
            status_code=response.status_code,
            content_type=response.headers.get("Content-Type"),
            body=body,
            elapsed_ms=elapsed_ms,
        )

    def _read_body(
        self,
        response: requests.Response,
        url: str,
        *,
        deadline: float,
        cancel_event: threading.Event | None,
    ) -> bytes:
        chunks: list[bytes] = []
        received = 0
        try:
            for chunk in response.iter_content(chunk_size=DEFAULT_FETCH_CHUNK_BYTES):
                if cancel_event is not None and cancel_event.is_set():
                    raise FetchError(url, "Fetch cancelled", cancelled=True)
                if time.monotonic() > deadline:
                    raise FetchError(url, "Deadline exceeded while reading body")
                if not chunk:
                    continue
                received += len(chunk)
                if received > self.config.max_body_bytes:
                    raise FetchError(
                        url,
                        f"Body exceeds max_body_bytes={self.config.max_body_bytes}",
                    )
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc
        return b"".join(chunks)

    def close(self) -> None:
        """Stop the request executor and close every session it opened."""

        self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = self._session_factory()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session


__all__ = ["Fetcher"]
