"""Structural HTML analysis: doctype, title, headings, login form, links."""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup, Doctype

from ..errors import ParseError
from ..types import AnalysisResult, ContentKind, FetchResult, Link, infer_content_kind
from ..url import is_external, resolve_url


HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
UNPARSEABLE_KINDS = frozenset({ContentKind.PDF, ContentKind.BINARY})


@dataclass(slots=True)
class HTMLAnalyzerConfig:
    """Config for HTML analysis."""

    parser_features: str = "lxml"


class HTMLAnalyzer:
    """Turn one fetched document into an `AnalysisResult` and its link list.

    `analyze` does no I/O: link liveness is filled in later by the link
    checker, after which counters are re-derived with `AnalysisResult.recount`.
    """

    def __init__(self, config: HTMLAnalyzerConfig | None = None) -> None:
        self.config = config or HTMLAnalyzerConfig()

    def analyze(
        self,
        html: str | bytes,
        base_url: str,
        *,
        content_type: str | None = None,
        target_id: int = 0,
    ) -> tuple[AnalysisResult, list[Link]]:
        kind = infer_content_kind(content_type, base_url)
        if kind in UNPARSEABLE_KINDS:
            raise ParseError(f"Unsupported content kind for HTML analysis: {kind.value}")

        if not html.strip():
            raise ParseError("Empty document")

        # Bytes go to BeautifulSoup undecoded so a header charset, a <meta>
        # declaration or its own sniffing picks the encoding.
        from_encoding = charset_from_content_type(content_type) if isinstance(html, bytes) else None
        try:
            soup = BeautifulSoup(html, self.config.parser_features, from_encoding=from_encoding)
        except Exception as exc:
            raise ParseError(f"{exc.__class__.__name__}: {exc}") from exc

        if soup.find() is None:
            raise ParseError("Document contains no elements")

        result = AnalysisResult(
            target_id=target_id,
            html_version=self._detect_html_version(soup),
            title=self._extract_title(soup),
            has_login_form=self._has_login_form(soup),
        )
        self._count_headings(soup, result)

        links = self._extract_links(soup, base_url)
        result.recount(links)
        return result, links

    def analyze_fetch(self, fetch_result: FetchResult, *, target_id: int = 0) -> tuple[AnalysisResult, list[Link]]:
        """Analyze a `FetchResult`, resolving links against its final URL."""

        return self.analyze(
            fetch_result.body,
            fetch_result.base_url,
            content_type=fetch_result.content_type,
            target_id=target_id,
        )

    @staticmethod
    def _detect_html_version(soup: BeautifulSoup) -> str:
        for node in soup.contents:
            if isinstance(node, Doctype):
                declaration = str(node).strip().lower()
                if declaration.startswith("html"):
                    return "HTML 5"
                return declaration
        return "unknown"

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> str:
        title = soup.find("title")
        if title is None:
            return ""
        return title.get_text().strip()

    @staticmethod
    def _count_headings(soup: BeautifulSoup, result: AnalysisResult) -> None:
        counts = dict.fromkeys(HEADING_TAGS, 0)
        for heading in soup.find_all(HEADING_TAGS):
            counts[heading.name.lower()] += 1

        result.h1_count = counts["h1"]
        result.h2_count = counts["h2"]
        result.h3_count = counts["h3"]
        result.h4_count = counts["h4"]
        result.h5_count = counts["h5"]
        result.h6_count = counts["h6"]

    @staticmethod
    def _has_login_form(soup: BeautifulSoup) -> bool:
        for form in soup.find_all("form"):
            for field in form.find_all("input"):
                if str(field.get("type", "")).strip().lower() == "password":
                    return True
        return False

    @staticmethod
    def _extract_links(soup: BeautifulSoup, base_url: str) -> list[Link]:
        links: list[Link] = []
        seen: set[str] = set()

        for anchor in soup.find_all("a", href=True):
            resolved = resolve_url(base_url, anchor.get("href"))
            if not resolved or resolved in seen:
                continue
            seen.add(resolved)
            links.append(Link(href=resolved, is_external=is_external(base_url, resolved)))

        return links


def charset_from_content_type(content_type: str | None) -> str | None:
    """Return the `charset` parameter of a Content-Type header, if any."""

    if not content_type:
        return None
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip("\"'") or None
    return None


__all__ = [
    "HEADING_TAGS",
    "charset_from_content_type",
    "HTMLAnalyzer",
    "HTMLAnalyzerConfig",
]
