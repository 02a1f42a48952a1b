"""
Crawl error taxonomy.

Fatal errors abort the job; page-transient errors skip the current page and
let the pagination loop continue.
"""

from typing import Optional


class CrawlError(Exception):
    """Base class for all crawl engine errors."""


class FatalCrawlError(CrawlError):
    """Job-aborting error."""


class LaunchError(FatalCrawlError):
    """Browser process could not be started."""


class CapacityExceeded(FatalCrawlError):
    """Page pool is full."""

    def __init__(self, limit: int):
        super().__init__(f"Maximum concurrent pages limit reached: {limit}")
        self.limit = limit


class InvalidTarget(FatalCrawlError):
    """URL is not a recognized target shape."""

    def __init__(self, url: str, reason: Optional[str] = None):
        message = f"Invalid target URL: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.url = url


class InvalidSettings(FatalCrawlError):
    """Job settings out of range (limits below 1, unknown sort)."""


class PageTransientError(CrawlError):
    """Error limited to a single page."""


class PageBlocked(PageTransientError):
    """Target answered with a block status (403/429)."""

    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status} for {url}")
        self.url = url
        self.status = status


class ExtractionError(PageTransientError):
    """Extraction of a page failed."""
