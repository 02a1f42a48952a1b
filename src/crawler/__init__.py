"""
Naver crawl engine

Modules:
- session: browser session and page pool
- navigator: stealth navigation and human-behavior simulation
- extractor: network-first, DOM-fallback record extraction
- pagination: LangGraph pagination state machine
- progress: ordered progress event stream
"""

from .config import CrawlerConfig
from .errors import (
    CapacityExceeded,
    CrawlError,
    ExtractionError,
    FatalCrawlError,
    InvalidSettings,
    InvalidTarget,
    LaunchError,
    PageBlocked,
    PageTransientError,
)
from .extractor import DualExtractor, NetworkCapture, register_network_listener
from .navigator import NavigationOptions, NavigationOutcome, StealthNavigator
from .pagination import PaginationDriver
from .progress import ChannelEvent, EventChannel, ProgressEmitter
from .runner import list_blog_categories, run_crawl
from .session import BrowserSessionManager, CrawlSession, PageHandle
from .site_classifier import SiteUrlClassifier, is_supported_url

__all__ = [
    "BrowserSessionManager",
    "CapacityExceeded",
    "ChannelEvent",
    "CrawlError",
    "CrawlSession",
    "CrawlerConfig",
    "DualExtractor",
    "EventChannel",
    "ExtractionError",
    "FatalCrawlError",
    "InvalidSettings",
    "InvalidTarget",
    "LaunchError",
    "NavigationOptions",
    "NavigationOutcome",
    "NetworkCapture",
    "PageBlocked",
    "PageHandle",
    "PageTransientError",
    "PaginationDriver",
    "ProgressEmitter",
    "SiteUrlClassifier",
    "StealthNavigator",
    "is_supported_url",
    "list_blog_categories",
    "register_network_listener",
    "run_crawl",
]
