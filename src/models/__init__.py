"""
Data Models - Core data structures for the crawling system.
"""

from .crawl import (
    CrawlFilters,
    CrawlPhase,
    CrawlRunState,
    CrawlSettings,
    CrawlTarget,
    ExtractedRecord,
    ExtractionSource,
    PageResult,
    PaginationMode,
    ProgressEvent,
    ReviewSort,
    TargetKind,
    TerminalEvent,
    UrlShape,
)

__all__ = [
    "CrawlFilters", "CrawlPhase", "CrawlRunState", "CrawlSettings", "CrawlTarget",
    "ExtractedRecord", "ExtractionSource", "PageResult", "PaginationMode",
    "ProgressEvent", "ReviewSort", "TargetKind", "TerminalEvent", "UrlShape",
]
