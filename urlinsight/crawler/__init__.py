"""Crawler package: config, shared types, and worker pool components."""

from .config import CrawlerConfig, load_config, save_config
from .errors import (
    CrawlerError,
    FetchError,
    ParseError,
    PersistError,
    PoolShutdown,
    TargetNotFoundError,
)
from .fetcher import Fetcher
from .link_checker import LinkChecker
from .parsers import HTMLAnalyzer, HTMLAnalyzerConfig
from .pool import WorkerPool
from .publisher import ResultPublisher
from .repository import SQLiteRepository, TargetRepository
from .scheduler import EnqueueResult, EnqueueStatus, JobScheduler
from .stats import StatsCollector
from .types import (
    AnalysisResult,
    ContentKind,
    CrawlResult,
    FetchResult,
    Job,
    Link,
    Target,
    TargetStatus,
    WorkerAction,
    WorkerCommand,
    infer_content_kind,
    utc_now_iso,
)
from .url import host_from_url, is_external, resolve_url

__all__ = [
    "AnalysisResult",
    "ContentKind",
    "CrawlResult",
    "CrawlerConfig",
    "CrawlerError",
    "EnqueueResult",
    "EnqueueStatus",
    "FetchError",
    "FetchResult",
    "Fetcher",
    "HTMLAnalyzer",
    "HTMLAnalyzerConfig",
    "Job",
    "JobScheduler",
    "Link",
    "LinkChecker",
    "ParseError",
    "PersistError",
    "PoolShutdown",
    "ResultPublisher",
    "SQLiteRepository",
    "StatsCollector",
    "Target",
    "TargetNotFoundError",
    "TargetRepository",
    "TargetStatus",
    "WorkerAction",
    "WorkerCommand",
    "WorkerPool",
    "host_from_url",
    "infer_content_kind",
    "is_external",
    "load_config",
    "resolve_url",
    "save_config",
    "utc_now_iso",
]
