"""CLI entrypoint for analyzing a batch of URLs with the crawler pool."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import queue
import sys
import threading
import time
from typing import Any

if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from urlinsight.crawler import (
    CrawlResult,
    CrawlerConfig,
    SQLiteRepository,
    WorkerPool,
    load_config,
)
from urlinsight.crawler.constants import DEFAULT_PRIORITY, DEQUEUE_POLL_SECONDS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fetch and analyze web pages with the URLInsight crawler pool.",
    )

    parser.add_argument(
        "--url",
        action="append",
        default=[],
        help="URL to analyze (repeatable).",
    )
    parser.add_argument(
        "--urls_file",
        type=Path,
        default=None,
        help="Text file with one URL per line ('#' starts a comment).",
    )
    parser.add_argument(
        "--priority",
        type=int,
        default=DEFAULT_PRIORITY,
        help="Priority for every URL in this run (higher runs first).",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML crawler config.",
    )
    parser.add_argument("--number_of_crawlers", type=int, default=None)
    parser.add_argument("--max_concurrent_crawls", type=int, default=None)
    parser.add_argument("--crawl_timeout_seconds", type=float, default=None)
    parser.add_argument("--user_agent", type=str, default=None)
    parser.add_argument(
        "--respect_robots",
        dest="respect_robots",
        action="store_true",
        default=None,
        help="Respect robots.txt when probing links (default comes from config).",
    )
    parser.add_argument(
        "--no_respect_robots",
        dest="respect_robots",
        action="store_false",
        help="Ignore robots.txt when probing links.",
    )

    parser.add_argument(
        "--database",
        type=str,
        default=None,
        help="SQLite database path (default comes from config).",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=Path("urlinsight_output"),
        help="Directory for run logs.",
    )
    parser.add_argument(
        "--wait_seconds",
        type=float,
        default=None,
        help="Stop collecting results after this many seconds (default: wait for all).",
    )

    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print full stats JSON in stdout after run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def read_urls(args: argparse.Namespace) -> list[str]:
    """Collect URLs from --url and --urls_file, preserving order, without duplicates."""

    raw: list[str] = list(args.url)
    if args.urls_file is not None:
        for line in args.urls_file.read_text(encoding="utf-8").splitlines():
            line = line.split("#", maxsplit=1)[0].strip()
            if line:
                raw.append(line)

    urls: list[str] = []
    seen: set[str] = set()
    for url in raw:
        url = url.strip()
        if not url or url in seen:
            continue
        seen.add(url)
        urls.append(url)

    if not urls:
        raise ValueError("No URLs provided. Use --url or --urls_file.")
    return urls


def build_config(args: argparse.Namespace) -> CrawlerConfig:
    """Config file, then environment variables, then CLI flags."""

    base = load_config(args.config) if args.config is not None else CrawlerConfig()
    config = CrawlerConfig.from_env(base=base)
    return config.with_overrides(
        number_of_crawlers=args.number_of_crawlers,
        max_concurrent_crawls=args.max_concurrent_crawls,
        crawl_timeout_seconds=args.crawl_timeout_seconds,
        user_agent=args.user_agent,
        respect_robots=args.respect_robots,
        database_path=args.database,
    )


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "crawl.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Per-request connection chatter drowns out worker logs.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def apply_log_level(level: str) -> None:
    """Switch root logger and its handlers to a named level from config."""

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        handler.setLevel(level)


def collect_results(
    pool: WorkerPool,
    target_ids: set[int],
    *,
    wait_seconds: float | None,
) -> dict[int, CrawlResult]:
    """Read the completion feed until every target reported or time runs out."""

    deadline = None if wait_seconds is None else time.monotonic() + wait_seconds
    results: dict[int, CrawlResult] = {}
    feed = pool.get_results()

    while len(results) < len(target_ids):
        timeout = DEQUEUE_POLL_SECONDS
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logging.warning(
                    "Stopped waiting after %.1fs with %d/%d result(s)",
                    wait_seconds,
                    len(results),
                    len(target_ids),
                )
                break
            timeout = min(timeout, remaining)

        try:
            result = feed.get(timeout=timeout)
        except queue.Empty:
            continue
        if result.target_id in target_ids:
            results[result.target_id] = result

    return results


def print_summary(
    results: dict[int, CrawlResult],
    stats: dict[str, Any],
    *,
    database_path: str,
    print_stats_json: bool,
) -> None:
    print("\n=== Crawl Complete ===")
    print(f"database: {database_path}")

    print("\n--- Targets ---")
    for target_id in sorted(results):
        result = results[target_id]
        if result.ok and result.analysis is not None:
            analysis = result.analysis
            headings = " ".join(f"{tag}={count}" for tag, count in analysis.heading_counts().items())
            print(
                f"[{target_id}] {result.url} done "
                f"version={analysis.html_version!r} title={analysis.title!r} {headings} "
                f"login_form={analysis.has_login_form} "
                f"internal={analysis.internal_link_count} "
                f"external={analysis.external_link_count} "
                f"broken={analysis.broken_link_count}"
            )
        else:
            print(f"[{target_id}] {result.url} {result.status.value}: {result.error}")

    print("\n--- Core Stats ---")
    jobs = stats.get("jobs", {})
    fetch = stats.get("fetch", {})
    links = stats.get("links", {})
    publish = stats.get("publish", {})
    for key, value in [
        ("jobs_total", jobs.get("total")),
        ("jobs_by_status", jobs.get("by_status")),
        ("fetched_ok", fetch.get("ok")),
        ("fetched_error", fetch.get("error")),
        ("links_total", links.get("total")),
        ("links_broken", links.get("broken")),
        ("results_dropped", publish.get("dropped")),
        ("duration_seconds", stats.get("duration_seconds")),
    ]:
        if value is not None:
            print(f"{key}: {value}")

    if print_stats_json:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(stats, indent=2, sort_keys=True))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.output_dir, verbose=args.verbose)

    try:
        config = build_config(args)
        urls = read_urls(args)
    except Exception as exc:
        logging.error("Failed to build config: %s", exc)
        return 2

    if not args.verbose:
        apply_log_level(config.log_level)

    logging.info(
        "Starting crawl: urls=%d, workers=%d, database=%s",
        len(urls),
        config.number_of_crawlers,
        config.database_path,
    )

    try:
        repository = SQLiteRepository(config.database_path)
    except Exception:
        logging.exception("Cannot open database %s", config.database_path)
        return 1

    pool = WorkerPool(repository, config)
    cancel_event = threading.Event()
    exit_code = 0
    results: dict[int, CrawlResult] = {}

    try:
        targets = [repository.create_target(url) for url in urls]
        pool.start(cancel_event)
        for target in targets:
            pool.enqueue_with_priority(target.id, args.priority)
        results = collect_results(
            pool,
            {target.id for target in targets},
            wait_seconds=args.wait_seconds,
        )
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        pool.cancel()
        exit_code = 130
    except Exception:
        logging.exception("Crawl execution failed")
        pool.cancel()
        exit_code = 1
    finally:
        pool.shutdown()
        repository.close()

    if exit_code == 0:
        print_summary(
            results,
            pool.stats.to_json(),
            database_path=config.database_path,
            print_stats_json=args.print_stats_json,
        )
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
