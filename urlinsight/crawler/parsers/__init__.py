"""Parser package exports."""

from .html_analyzer import HEADING_TAGS, HTMLAnalyzer, HTMLAnalyzerConfig

__all__ = [
    "HEADING_TAGS",
    "HTMLAnalyzer",
    "HTMLAnalyzerConfig",
]
