"""Exception taxonomy for the crawl pool."""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for crawler failures."""


class FetchError(CrawlerError):
    """Network failure, timeout, oversize body, or cancellation during a fetch."""

    def __init__(self, url: str, message: str, *, cancelled: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.cancelled = cancelled


class ParseError(CrawlerError):
    """Document could not be parsed into any structural metadata."""


class PersistError(CrawlerError):
    """The transactional write through the repository failed."""

    def __init__(self, target_id: int, message: str) -> None:
        super().__init__(message)
        self.target_id = target_id


class TargetNotFoundError(CrawlerError):
    """Repository has no target row for the requested id."""

    def __init__(self, target_id: int) -> None:
        super().__init__(f"target {target_id} not found")
        self.target_id = target_id


class PoolShutdown(CrawlerError):
    """Raised when work is submitted to, or requested from, a closed pool.

    Not a failure: worker loops end quietly on it.
    """


__all__ = [
    "CrawlerError",
    "FetchError",
    "ParseError",
    "PersistError",
    "PoolShutdown",
    "TargetNotFoundError",
]
