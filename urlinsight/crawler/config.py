"""Typed crawler configuration with JSON/YAML/env load and save helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_CRAWL_TIMEOUT_SECONDS,
    DEFAULT_DATABASE_PATH,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_LINK_CONCURRENCY,
    DEFAULT_LINK_TIMEOUT_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_BODY_BYTES,
    DEFAULT_MAX_CONCURRENT_CRAWLS,
    DEFAULT_NUMBER_OF_CRAWLERS,
    DEFAULT_RESPECT_ROBOTS,
    DEFAULT_RESULTS_BUFFER,
    DEFAULT_USER_AGENT,
    ENV_VARS,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .types import JSONDict


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid int for '{key}': {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Invalid bool for '{key}': {value!r}")


@dataclass(slots=True)
class CrawlerConfig:
    """Top-level configuration used by pool, fetcher, and link checker."""

    number_of_crawlers: int = DEFAULT_NUMBER_OF_CRAWLERS
    max_concurrent_crawls: int = DEFAULT_MAX_CONCURRENT_CRAWLS
    crawl_timeout_seconds: float = DEFAULT_CRAWL_TIMEOUT_SECONDS

    link_concurrency: int = DEFAULT_LINK_CONCURRENCY
    link_timeout_seconds: float = DEFAULT_LINK_TIMEOUT_SECONDS

    results_buffer: int = DEFAULT_RESULTS_BUFFER
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))
    respect_robots: bool = DEFAULT_RESPECT_ROBOTS

    database_path: str = DEFAULT_DATABASE_PATH
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if self.number_of_crawlers <= 0:
            raise ValueError("number_of_crawlers must be > 0")
        if self.max_concurrent_crawls <= 0:
            raise ValueError("max_concurrent_crawls must be > 0")
        if self.crawl_timeout_seconds <= 0:
            raise ValueError("crawl_timeout_seconds must be > 0")
        if self.link_concurrency <= 0:
            raise ValueError("link_concurrency must be > 0")
        if self.link_timeout_seconds <= 0:
            raise ValueError("link_timeout_seconds must be > 0")
        if self.results_buffer <= 0:
            raise ValueError("results_buffer must be > 0")
        if self.max_body_bytes <= 0:
            raise ValueError("max_body_bytes must be > 0")

        self.user_agent = self.user_agent.strip() or DEFAULT_USER_AGENT
        self.log_level = self.log_level.strip().upper() or DEFAULT_LOG_LEVEL

    def headers(self) -> dict[str, str]:
        """Return request headers with the configured user agent applied."""

        merged: dict[str, str] = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "number_of_crawlers": self.number_of_crawlers,
            "max_concurrent_crawls": self.max_concurrent_crawls,
            "crawl_timeout_seconds": self.crawl_timeout_seconds,
            "link_concurrency": self.link_concurrency,
            "link_timeout_seconds": self.link_timeout_seconds,
            "results_buffer": self.results_buffer,
            "max_body_bytes": self.max_body_bytes,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "respect_robots": self.respect_robots,
            "database_path": self.database_path,
            "log_level": self.log_level,
        }

    def with_overrides(self, **overrides: Any) -> "CrawlerConfig":
        """Return a copy with non-None overrides applied."""

        payload = self.to_dict()
        payload.update({key: value for key, value in overrides.items() if value is not None})
        return CrawlerConfig.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CrawlerConfig":
        """Build config from a parsed dictionary."""

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")

        return cls(
            number_of_crawlers=_as_int(
                payload.get("number_of_crawlers", DEFAULT_NUMBER_OF_CRAWLERS),
                "number_of_crawlers",
            ),
            max_concurrent_crawls=_as_int(
                payload.get("max_concurrent_crawls", DEFAULT_MAX_CONCURRENT_CRAWLS),
                "max_concurrent_crawls",
            ),
            crawl_timeout_seconds=_as_float(
                payload.get("crawl_timeout_seconds", DEFAULT_CRAWL_TIMEOUT_SECONDS),
                "crawl_timeout_seconds",
            ),
            link_concurrency=_as_int(
                payload.get("link_concurrency", DEFAULT_LINK_CONCURRENCY),
                "link_concurrency",
            ),
            link_timeout_seconds=_as_float(
                payload.get("link_timeout_seconds", DEFAULT_LINK_TIMEOUT_SECONDS),
                "link_timeout_seconds",
            ),
            results_buffer=_as_int(
                payload.get("results_buffer", DEFAULT_RESULTS_BUFFER),
                "results_buffer",
            ),
            max_body_bytes=_as_int(
                payload.get("max_body_bytes", DEFAULT_MAX_BODY_BYTES),
                "max_body_bytes",
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            respect_robots=_as_bool(
                payload.get("respect_robots", DEFAULT_RESPECT_ROBOTS),
                "respect_robots",
            ),
            database_path=str(payload.get("database_path", DEFAULT_DATABASE_PATH)),
            log_level=str(payload.get("log_level", DEFAULT_LOG_LEVEL)),
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        base: "CrawlerConfig | None" = None,
    ) -> "CrawlerConfig":
        """Apply environment variable overrides on top of `base` (or defaults)."""

        env = os.environ if environ is None else environ
        payload = (base or cls()).to_dict()
        for env_name, key in ENV_VARS.items():
            raw = env.get(env_name)
            if raw is None or not raw.strip():
                continue
            payload[key] = raw.strip()
        return cls.from_dict(payload)


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> CrawlerConfig:
    """Load CrawlerConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {config_path} must be a mapping")

    return CrawlerConfig.from_dict(payload)


def save_config(config: CrawlerConfig, path: str | Path) -> None:
    """Save CrawlerConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "CrawlerConfig",
    "load_config",
    "save_config",
]
