"""Default values shared by crawler config, pool, and CLI."""

from __future__ import annotations

DEFAULT_NUMBER_OF_CRAWLERS = 4
DEFAULT_MAX_CONCURRENT_CRAWLS = 5
DEFAULT_CRAWL_TIMEOUT_SECONDS = 30.0

DEFAULT_LINK_CONCURRENCY = 12
DEFAULT_LINK_TIMEOUT_SECONDS = 5.0

DEFAULT_RESULTS_BUFFER = 128
DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024
DEFAULT_FETCH_CHUNK_BYTES = 64 * 1024

DEFAULT_PRIORITY = 5
MIN_WORKERS = 1

# Workers re-check retirement/cancel flags at this cadence while idle.
DEQUEUE_POLL_SECONDS = 0.5
SEMAPHORE_POLL_SECONDS = 0.2
FETCH_WAIT_POLL_SECONDS = 0.05

DEFAULT_USER_AGENT = "URLInsight-Bot/1.0"
DEFAULT_HTTP_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
}
DEFAULT_RESPECT_ROBOTS = True

DEFAULT_DATABASE_PATH = "urlinsight.db"
DEFAULT_LOG_LEVEL = "INFO"

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")

# Environment variable -> config field.
ENV_VARS: dict[str, str] = {
    "NUMBER_OF_CRAWLERS": "number_of_crawlers",
    "MAX_CONCURRENT_CRAWLS": "max_concurrent_crawls",
    "CRAWL_TIMEOUT_SECONDS": "crawl_timeout_seconds",
    "LINK_CONCURRENCY": "link_concurrency",
    "LINK_TIMEOUT_SECONDS": "link_timeout_seconds",
    "RESULTS_BUFFER": "results_buffer",
    "MAX_BODY_BYTES": "max_body_bytes",
    "USER_AGENT": "user_agent",
    "DATABASE_PATH": "database_path",
    "LOG_LEVEL": "log_level",
}
