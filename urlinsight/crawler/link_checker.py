"""Bounded-concurrency liveness probes for links found on analyzed pages."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import threading
from typing import Callable, Sequence
from urllib.robotparser import RobotFileParser

import requests

from .config import CrawlerConfig
from .types import Link
from .url import robots_root


LOGGER = logging.getLogger(__name__)

STATUS_PROBE_FAILED = 0
STATUS_ROBOTS_DISALLOWED = 403
STATUS_METHOD_NOT_ALLOWED = 405


class LinkChecker:
    """Probe links with HEAD (GET on 405) under a shared concurrency ceiling.

    One `BoundedSemaphore` sized `link_concurrency` is shared by every `run`
    call, so concurrent pages never exceed that many outbound probes in total.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.config = config
        self.concurrency = config.link_concurrency
        self.timeout_seconds = config.link_timeout_seconds

        self._session_factory = session_factory
        self._thread_local = threading.local()
        self._sessions_lock = threading.Lock()
        self._sessions: list[requests.Session] = []

        self._semaphore = threading.BoundedSemaphore(self.concurrency)
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="link-probe",
        )

        self._robots_lock = threading.Lock()
        self._robots_cache: dict[str, RobotFileParser | None] = {}

    def run(
        self,
        links: Sequence[Link],
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[Link]:
        """Fill `status_code` on every link in place and return them."""

        if not links:
            return list(links)

        futures = [
            self._executor.submit(self._probe_link, link, cancel_event)
            for link in links
        ]
        for future in futures:
            future.result()

        return list(links)

    def check(self, url: str) -> int:
        """Return the HTTP status for URL, or 0 when the probe failed outright."""

        if self.config.respect_robots and not self._is_allowed_by_robots(url):
            return STATUS_ROBOTS_DISALLOWED

        session = self._thread_local_session()
        headers = self.config.headers()
        try:
            response = session.head(
                url,
                headers=headers,
                timeout=self.timeout_seconds,
                allow_redirects=True,
            )
            response.close()
            if response.status_code != STATUS_METHOD_NOT_ALLOWED:
                return response.status_code

            response = session.get(
                url,
                headers=headers,
                timeout=self.timeout_seconds,
                allow_redirects=True,
                stream=True,
            )
            response.close()
            return response.status_code
        except requests.RequestException as exc:
            LOGGER.debug("Link probe failed for %s: %s", url, exc)
            return STATUS_PROBE_FAILED

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _probe_link(self, link: Link, cancel_event: threading.Event | None) -> None:
        with self._semaphore:
            if cancel_event is not None and cancel_event.is_set():
                link.status_code = STATUS_PROBE_FAILED
                return
            link.status_code = self.check(link.href)

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = self._session_factory()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _is_allowed_by_robots(self, url: str) -> bool:
        host_key = robots_root(url)

        with self._robots_lock:
            cached = host_key in self._robots_cache
            parser = self._robots_cache.get(host_key)

        if not cached:
            parser = self._load_robots_parser(host_key)
            with self._robots_lock:
                self._robots_cache[host_key] = parser

        # If robots cannot be loaded, fail open.
        if parser is None:
            return True

        return parser.can_fetch(self.config.user_agent or "*", url)

    def _load_robots_parser(self, host_root: str) -> RobotFileParser | None:
        robots_url = f"{host_root}/robots.txt"

        try:
            response = self._thread_local_session().get(
                robots_url,
                headers={"User-Agent": self.config.user_agent},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException:
            return None

        if response.status_code >= 400:
            return None

        parser = RobotFileParser()
        parser.set_url(robots_url)
        parser.parse(response.text.splitlines())
        return parser


__all__ = [
    "LinkChecker",
    "STATUS_PROBE_FAILED",
    "STATUS_ROBOTS_DISALLOWED",
]
