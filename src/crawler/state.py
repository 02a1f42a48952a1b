"""
State - pagination graph state

State structure and routing helpers for the LangGraph pagination machine.
"""

from typing import TypedDict, Any, Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from src.models.crawl import (
    CrawlRunState,
    CrawlSettings,
    CrawlTarget,
    PageResult,
    UrlShape,
)
from .selector_library import BLOG_POSTS_PER_PAGE


class CrawlGraphState(TypedDict):
    """Pagination graph state

    Live handles (page, capture) travel in the state so the nodes stay free
    of per-job attributes.
    """
    # ===== Input =====
    target_url: str
    settings: CrawlSettings

    # ===== Initialize =====
    target: Optional[CrawlTarget]
    page_handle: Any
    capture: Any

    # ===== Loop =====
    run_state: CrawlRunState
    pending_url: Optional[str]
    last_result: Optional[PageResult]

    # ===== Control =====
    stop_reason: Optional[str]  # stopped/max_items/max_pages/no_results/no_next_control


def create_initial_state(target_url: str, settings: CrawlSettings, run_state: CrawlRunState) -> CrawlGraphState:
    """Initial graph state"""
    return CrawlGraphState(
        target_url=target_url,
        settings=settings,
        target=None,
        page_handle=None,
        capture=None,
        run_state=run_state,
        pending_url=None,
        last_result=None,
        stop_reason=None,
    )


# ===== Helpers =====

def build_page_url(target: CrawlTarget, page_number: int) -> str:
    """URL of ``page_number`` for URL-parameter pagination

    - blog category: ``currentPage=N`` and ``startIndex=(N-1)*5+1``
    - shop listing: ``page=N``
    """
    if page_number <= 1:
        return target.base_url

    parsed = urlparse(target.base_url)
    params = parse_qs(parsed.query, keep_blank_values=True)
    if target.shape == UrlShape.BLOG_CATEGORY:
        params["currentPage"] = [str(page_number)]
        params["startIndex"] = [str((page_number - 1) * BLOG_POSTS_PER_PAGE + 1)]
    else:
        params["page"] = [str(page_number)]
    return urlunparse(parsed._replace(query=urlencode(params, doseq=True)))


def route_after_decide(state: CrawlGraphState) -> str:
    """Route from the decide node

    Returns:
        "complete" - a stop condition holds
        "next_page" - keep paginating
    """
    return "complete" if state.get("stop_reason") else "next_page"


def route_after_next_page(state: CrawlGraphState) -> str:
    """Route from the next-page node

    Returns:
        "complete" - no next page could be reached
        "fetch_page" - the next page is loaded or pending
    """
    return "complete" if state.get("stop_reason") else "fetch_page"
