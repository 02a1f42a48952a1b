"""
Crawl entry points.
"""

from typing import Any, Dict, List, Optional, Union
import logging

from src.models.crawl import CrawlSettings, ExtractedRecord
from .config import CrawlerConfig
from .errors import InvalidSettings
from .extractor import DualExtractor, frame_documents, parse_blog_categories
from .logging_utils import log_event
from .navigator import NavigationOptions, StealthNavigator
from .pagination import PaginationDriver, StopPredicate
from .progress import ErrorSink, EventChannel, ItemSink, ProgressEmitter, ProgressSink
from .session import BrowserSessionManager


logger = logging.getLogger(__name__)

BLOG_CATEGORY_URL = (
    "https://blog.naver.com/PostList.naver?blogId={blog_id}"
    "&widgetTypeCall=true&noTrackingCode=true&directAccess=true"
)


async def run_crawl(
    target_url: str,
    settings: Optional[Union[CrawlSettings, Dict[str, Any]]] = None,
    progress_sink: Optional[ProgressSink] = None,
    item_sink: Optional[ItemSink] = None,
    error_sink: Optional[ErrorSink] = None,
    stop_predicate: Optional[StopPredicate] = None,
    *,
    config: Optional[CrawlerConfig] = None,
    session_manager: Optional[BrowserSessionManager] = None,
    navigator: Optional[StealthNavigator] = None,
    extractor: Optional[DualExtractor] = None,
    channel: Optional[EventChannel] = None,
) -> List[ExtractedRecord]:
    """
    Run one crawl job to completion

    Args:
        target_url: Naver blog, category or SmartStore URL
        settings: CrawlSettings or a ``{"maxPages", "maxItems", "sort", "filters"}`` mapping
        progress_sink: Receives progress dicts and the terminal dict
        item_sink: Receives each accepted record
        error_sink: Receives page-level error messages
        stop_predicate: Checked once per page; True stops at the page boundary

    Returns:
        Accumulated records

    Raises:
        InvalidTarget: URL is not a recognized shape (no browser is launched)
        InvalidSettings: maxPages or maxItems below 1, or an unknown sort
        LaunchError: Browser could not be started
    """
    config = config or CrawlerConfig.from_env()
    emitter = ProgressEmitter(progress_sink, item_sink, error_sink, channel)
    if not isinstance(settings, CrawlSettings):
        try:
            settings = CrawlSettings.from_dict(
                settings,
                max_pages_limit=config.max_pages_limit,
                default_max_pages=config.default_max_pages,
                default_max_items=config.default_max_items,
            )
        except (TypeError, ValueError) as exc:
            error = InvalidSettings(str(exc))
            emitter.fail(str(error))
            log_event(logger, logging.ERROR, "crawl_rejected", url=target_url, error=str(error))
            raise error from exc

    driver = PaginationDriver(
        session_manager=session_manager or BrowserSessionManager(config),
        navigator=navigator or StealthNavigator(config),
        extractor=extractor or DualExtractor(config),
        emitter=emitter,
        config=config,
        stop_predicate=stop_predicate,
    )
    return await driver.run(target_url, settings)


async def list_blog_categories(
    blog_id: str,
    *,
    config: Optional[CrawlerConfig] = None,
    session_manager: Optional[BrowserSessionManager] = None,
    navigator: Optional[StealthNavigator] = None,
) -> List[Dict[str, Any]]:
    """
    Category tree of a Naver blog

    Returns:
        ``[{"categoryNo", "name", "postCount", "depth"}]``; empty when the
        category list is unavailable
    """
    config = config or CrawlerConfig.from_env()
    session_manager = session_manager or BrowserSessionManager(config)
    navigator = navigator or StealthNavigator(config)

    handle = None
    try:
        session = await session_manager.acquire_session()
        handle = await session_manager.open_page(session)
        await navigator.configure_page(handle.page)
        outcome = await navigator.navigate(
            handle.page,
            BLOG_CATEGORY_URL.format(blog_id=blog_id),
            NavigationOptions(wait_until="networkidle"),
        )
        if outcome.blocked:
            log_event(logger, logging.WARNING, "categories_blocked", blog_id=blog_id, status=outcome.status)
            return []

        for html in await frame_documents(handle.page):
            categories = parse_blog_categories(html)
            if categories:
                log_event(logger, logging.INFO, "categories_listed", blog_id=blog_id, count=len(categories))
                return categories
        return []
    finally:
        if handle is not None:
            await handle.close()
        await session_manager.teardown()
