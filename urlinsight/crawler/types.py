"""Core type definitions for the crawler pool.

This module is intentionally dependency-light so other crawler modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import time
from typing import Iterable

from .constants import DEFAULT_PRIORITY


class ContentKind(str, Enum):
    """Normalized content categories used by fetcher and analyzer."""

    HTML = "html"
    PDF = "pdf"
    TEXT = "text"
    BINARY = "binary"
    UNKNOWN = "unknown"


class TargetStatus(str, Enum):
    """Persisted lifecycle status of one analysis target.

    There is no dedicated "stopped" value; a stop request is recorded as ERROR.
    """

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class WorkerAction(str, Enum):
    """Actions accepted by `WorkerPool.adjust_workers`."""

    ADD = "add"
    REMOVE = "remove"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def infer_content_kind(content_type: str | None, url: str) -> ContentKind:
    """Infer coarse content kind from HTTP content type and URL."""

    normalized = (content_type or "").split(";", maxsplit=1)[0].strip().lower()
    lower_url = url.lower()

    if "html" in normalized:
        return ContentKind.HTML
    if "application/pdf" in normalized or lower_url.endswith(".pdf"):
        return ContentKind.PDF
    if normalized.startswith("text/"):
        return ContentKind.TEXT
    if normalized:
        return ContentKind.BINARY
    return ContentKind.UNKNOWN


def is_broken_status(status_code: int) -> bool:
    """A probe that failed outright (0) or returned 4xx/5xx is broken."""

    return status_code == 0 or 400 <= status_code < 600


@dataclass(frozen=True, slots=True)
class Job:
    """A pending request to crawl and analyze one target."""

    target_id: int
    priority: int = DEFAULT_PRIORITY
    enqueued_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True, slots=True)
class Target:
    """Persisted target row as seen by the crawler."""

    id: int
    url: str
    status: TargetStatus = TargetStatus.QUEUED


@dataclass(slots=True)
class Link:
    """One hyperlink discovered on an analyzed page."""

    href: str
    is_external: bool
    status_code: int = 0

    @property
    def broken(self) -> bool:
        return is_broken_status(self.status_code)

    def to_json(self) -> JSONDict:
        return {
            "href": self.href,
            "is_external": self.is_external,
            "status_code": self.status_code,
        }


@dataclass(slots=True)
class AnalysisResult:
    """Structured metadata extracted from one crawl of one target."""

    target_id: int = 0
    html_version: str = "unknown"
    title: str = ""
    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    h4_count: int = 0
    h5_count: int = 0
    h6_count: int = 0
    has_login_form: bool = False
    internal_link_count: int = 0
    external_link_count: int = 0
    broken_link_count: int = 0

    def recount(self, links: Iterable[Link]) -> "AnalysisResult":
        """Derive link counters from the classified link list."""

        internal = external = broken = 0
        for link in links:
            if link.is_external:
                external += 1
            else:
                internal += 1
            if link.broken:
                broken += 1

        self.internal_link_count = internal
        self.external_link_count = external
        self.broken_link_count = broken
        return self

    def heading_counts(self) -> dict[str, int]:
        return {
            "h1": self.h1_count,
            "h2": self.h2_count,
            "h3": self.h3_count,
            "h4": self.h4_count,
            "h5": self.h5_count,
            "h6": self.h6_count,
        }

    def to_json(self) -> JSONDict:
        return {
            "target_id": self.target_id,
            "html_version": self.html_version,
            "title": self.title,
            "h1_count": self.h1_count,
            "h2_count": self.h2_count,
            "h3_count": self.h3_count,
            "h4_count": self.h4_count,
            "h5_count": self.h5_count,
            "h6_count": self.h6_count,
            "has_login_form": self.has_login_form,
            "internal_link_count": self.internal_link_count,
            "external_link_count": self.external_link_count,
            "broken_link_count": self.broken_link_count,
        }


@dataclass(slots=True)
class FetchResult:
    """Result of downloading one URL."""

    requested_url: str
    final_url: str | None
    status_code: int
    content_type: str | None
    body: bytes
    fetched_at: str = field(default_factory=utc_now_iso)
    elapsed_ms: int | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def base_url(self) -> str:
        return self.final_url or self.requested_url

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def normalized_content_kind(self) -> ContentKind:
        return infer_content_kind(self.content_type, self.base_url)


@dataclass(slots=True)
class CrawlResult:
    """Outcome of one processed job, published on the completion feed."""

    target_id: int
    url: str | None = None
    status: TargetStatus = TargetStatus.RUNNING
    analysis: AnalysisResult | None = None
    links: list[Link] = field(default_factory=list)
    error: Exception | None = None
    finished_at: str | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.status == TargetStatus.DONE

    @property
    def link_count(self) -> int:
        return len(self.links)

    def to_json(self) -> JSONDict:
        return {
            "target_id": self.target_id,
            "url": self.url,
            "status": self.status.value,
            "analysis": None if self.analysis is None else self.analysis.to_json(),
            "link_count": self.link_count,
            "error": None if self.error is None else f"{self.error.__class__.__name__}: {self.error}",
            "finished_at": self.finished_at,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True, slots=True)
class WorkerCommand:
    """Instruction to grow or shrink the live worker set."""

    action: WorkerAction
    count: int

    def __post_init__(self) -> None:
        try:
            action = WorkerAction(self.action)
        except ValueError as exc:
            raise ValueError("action must be 'add' or 'remove'") from exc
        object.__setattr__(self, "action", action)
        if self.count <= 0:
            raise ValueError("worker count must be positive")


__all__ = [
    "AnalysisResult",
    "ContentKind",
    "CrawlResult",
    "FetchResult",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "Job",
    "Link",
    "Target",
    "TargetStatus",
    "WorkerAction",
    "WorkerCommand",
    "infer_content_kind",
    "is_broken_status",
    "utc_now_iso",
]
