"""URL resolution and host classification helpers."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urldefrag, urljoin, urlsplit


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")


def host_from_url(url: str) -> str:
    """Extract the lowercased hostname from URL (port and scheme ignored)."""

    try:
        parsed = urlsplit(url)
    except ValueError:
        return ""
    return (parsed.hostname or "").strip().lower().rstrip(".")


def robots_root(url: str) -> str:
    """Return `scheme://netloc` used to locate robots.txt for URL."""

    parsed = urlsplit(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def is_http_url(url: str, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True if URL is absolute and has an allowed HTTP-like scheme."""

    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.netloc:
        return False
    return parsed.scheme.lower() in {scheme.lower() for scheme in allowed_schemes}


def resolve_url(
    base_url: str,
    href: str | None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve possibly relative link against base URL and validate scheme.

    The fragment is dropped so `/a#x` and `/a#y` resolve to the same link.
    Returns `None` for empty, fragment-only, or non-HTTP references.
    """

    if href is None:
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    try:
        absolute, _fragment = urldefrag(urljoin(base_url, candidate))
    except ValueError:
        return None

    if is_http_url(absolute, allowed_schemes=allowed_schemes):
        return absolute
    return None


def is_external(base_url: str, url: str) -> bool:
    """Return True when URL's host differs from base URL's host (case-insensitive)."""

    return host_from_url(base_url) != host_from_url(url)


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "host_from_url",
    "is_external",
    "is_http_url",
    "resolve_url",
    "robots_root",
]
