"""
Pagination state machine tests.

The full driver runs against Playwright fakes; no browser or network.
"""

import asyncio
import random
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import (
    FakePage,
    FakePlaywrightFactory,
    FakeSite,
    RecordingSleep,
    blog_payload,
    category_html,
    review_payload,
)

BLOG_URL = "https://blog.naver.com/testblog"
CATEGORY_URL = "https://blog.naver.com/PostList.naver?blogId=testblog&categoryNo=3"
PRODUCT_URL = "https://smartstore.naver.com/teststore/products/5551234"


class Harness:
    """Wires the real engine components onto a single fake page."""

    def __init__(self, page, stop_predicate=None, launch_error=None, extractor_cls=None, **config_overrides):
        from src.crawler.config import CrawlerConfig
        from src.crawler.extractor import DualExtractor
        from src.crawler.navigator import StealthNavigator
        from src.crawler.progress import ProgressEmitter
        from src.crawler.session import BrowserSessionManager

        self.page = page
        self.config = CrawlerConfig(
            chrome_version="139.0.0.0", payload_wait_ms=1000, payload_poll_ms=500, **config_overrides
        )
        self.sleep = RecordingSleep()
        self.factory = FakePlaywrightFactory(page_factory=lambda: page, launch_error=launch_error)
        self.progress = []
        self.items = []
        self.errors = []
        self.emitter = ProgressEmitter(self.progress.append, self.items.append, self.errors.append)
        self.session_manager = BrowserSessionManager(self.config, playwright_factory=self.factory)
        self.extractor = (extractor_cls or DualExtractor)(self.config, sleep=self.sleep)
        self.navigator = StealthNavigator(self.config, sleep=self.sleep, rng=random.Random(7))
        self.stop_predicate = stop_predicate

    def driver(self):
        from src.crawler.pagination import PaginationDriver

        return PaginationDriver(
            session_manager=self.session_manager,
            navigator=self.navigator,
            extractor=self.extractor,
            emitter=self.emitter,
            config=self.config,
            stop_predicate=self.stop_predicate,
        )

    def run(self, url, max_pages=10, max_items=100, **settings):
        from src.models.crawl import CrawlSettings

        return asyncio.run(self.driver().run(url, CrawlSettings(max_pages=max_pages, max_items=max_items, **settings)))

    @property
    def non_terminal(self):
        return [e for e in self.progress if not e.get("isComplete")]

    @property
    def terminal(self):
        return [e for e in self.progress if e.get("isComplete")]


def blog_sequence(pages):
    """Next-control blog pages, each delivering its posts through the list API."""
    return [
        FakeSite(payloads=[blog_payload(log_nos)], has_next=index < len(pages) - 1)
        for index, log_nos in enumerate(pages)
    ]


def category_routes(pages, statuses=None, errors=None):
    """URL-parameter category pages keyed by ``currentPage``."""
    statuses = statuses or {}
    errors = errors or {}

    def route(url):
        number = int(parse_qs(urlparse(url).query).get("currentPage", ["1"])[0])
        if number in errors:
            return FakeSite(error=errors[number])
        log_nos = pages[number - 1] if number <= len(pages) else []
        return FakeSite(html=category_html(log_nos), status=statuses.get(number, 200))

    return route


def post_ids(start, count=5):
    return list(range(start, start + count))


def test_blog_main_three_pages() -> bool:
    """Three five-post pages: 15 records, 3 progress events, 1 terminal."""
    page = FakePage(sequence=blog_sequence([post_ids(100), post_ids(200), post_ids(300)]))
    harness = Harness(page)

    records = harness.run(BLOG_URL, max_pages=10, max_items=100)

    assert len(records) == 15
    assert len(harness.non_terminal) == 3
    assert len(harness.terminal) == 1
    assert harness.terminal[0]["totalCount"] == 15
    assert harness.progress[-1]["isComplete"] is True
    assert [r.page_number for r in records] == [1] * 5 + [2] * 5 + [3] * 5
    assert [r.item_order for r in records] == list(range(1, 16))
    assert len(harness.items) == 15
    assert page.closed
    assert harness.session_manager.session is None
    return True


def test_blocked_page_is_skipped() -> bool:
    """HTTP 429 on page 2: extended backoff, page skipped, job completes."""
    page = FakePage(routes=category_routes([post_ids(10), post_ids(20), post_ids(30)], statuses={2: 429}))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, max_pages=3)

    assert [r.page_number for r in records] == [1] * 5 + [3] * 5
    assert harness.sleep.between(10, 20)
    assert len(harness.errors) == 1
    assert "429" in harness.errors[0]
    assert len(harness.non_terminal) == 3
    assert harness.terminal[0]["isComplete"] is True
    assert "error" not in harness.terminal[0]
    return True


def test_navigation_exception_is_skipped_after_backoff() -> bool:
    page = FakePage(routes=category_routes(
        [post_ids(10), post_ids(20), post_ids(30)],
        errors={2: TimeoutError("Timeout 60000ms exceeded")},
    ))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, max_pages=3)

    assert len(records) == 10
    assert harness.sleep.between(15, 30)
    assert "Timeout" in harness.errors[0]
    return True


def test_stop_predicate_after_first_page() -> bool:
    page = FakePage(routes=category_routes([post_ids(10), post_ids(20), post_ids(30)]))
    harness = Harness(page, stop_predicate=lambda: True)

    records = harness.run(CATEGORY_URL, max_pages=10)

    assert len(records) == 5
    assert {r.page_number for r in records} == {1}
    assert len(harness.non_terminal) == 1
    assert len(harness.terminal) == 1
    return True


def test_network_payload_skips_dom_extraction() -> bool:
    from src.crawler.extractor import DualExtractor

    class CountingExtractor(DualExtractor):
        dom_calls = 0

        async def extract_from_dom(self, page, kind, run_state):
            CountingExtractor.dom_calls += 1
            return await super().extract_from_dom(page, kind, run_state)

    page = FakePage(sequence=blog_sequence([post_ids(100), post_ids(200)]))
    harness = Harness(page, extractor_cls=CountingExtractor)

    records = harness.run(BLOG_URL)

    assert len(records) == 10
    assert CountingExtractor.dom_calls == 0
    return True


def test_invalid_target_acquires_no_browser() -> bool:
    from src.crawler.errors import InvalidTarget

    harness = Harness(FakePage())

    with pytest.raises(InvalidTarget):
        harness.run("https://www.google.com/search?q=naver")

    assert harness.factory.start_calls == 0
    assert len(harness.terminal) == 1
    assert "Invalid target URL" in harness.terminal[0]["error"]
    assert harness.non_terminal == []
    return True


def test_launch_error_fails_job_once() -> bool:
    from src.crawler.errors import LaunchError

    harness = Harness(FakePage(), launch_error=RuntimeError("Executable doesn't exist"))

    with pytest.raises(LaunchError):
        harness.run(BLOG_URL)

    assert len(harness.terminal) == 1
    assert harness.terminal[0]["isComplete"] is True
    assert "Executable" in harness.terminal[0]["error"]
    assert harness.factory.playwrights[0].stop_calls == 1
    return True


def test_full_page_pool_fails_job_and_releases_browser() -> bool:
    from src.crawler.errors import CapacityExceeded

    page = FakePage(routes=category_routes([post_ids(10)]))
    harness = Harness(page, max_concurrent_pages=0)

    with pytest.raises(CapacityExceeded):
        harness.run(CATEGORY_URL)

    assert harness.non_terminal == []
    assert harness.terminal == [{"error": "Maximum concurrent pages limit reached: 0", "isComplete": True}]
    assert harness.session_manager.session is None
    assert harness.factory.start_calls == 1
    assert harness.factory.browsers[0].close_calls == 1
    assert harness.factory.playwrights[0].stop_calls == 1
    assert page.goto_calls == []
    return True


def test_max_items_cutoff_discards_excess() -> bool:
    page = FakePage(routes=category_routes([post_ids(10), post_ids(20), post_ids(30)]))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, max_pages=10, max_items=7)

    assert len(records) == 7
    assert [r.identifier for r in records] == [str(n) for n in post_ids(10) + [20, 21]]
    assert len(harness.non_terminal) == 2
    return True


def test_max_pages_cutoff() -> bool:
    page = FakePage(routes=category_routes([post_ids(10), post_ids(20), post_ids(30)]))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, max_pages=2)

    assert len(records) == 10
    assert len(harness.non_terminal) <= 2
    return True


def test_empty_page_completes() -> bool:
    page = FakePage(routes=category_routes([post_ids(10)]))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, max_pages=10)

    assert len(records) == 5
    assert len(harness.non_terminal) == 2
    return True


def test_category_page_urls() -> bool:
    page = FakePage(routes=category_routes([post_ids(10), post_ids(20)]))
    harness = Harness(page)

    harness.run(CATEGORY_URL, max_pages=3)

    urls = [url for url, _ in page.goto_calls]
    assert urls[0] == CATEGORY_URL
    query = parse_qs(urlparse(urls[1]).query)
    assert query["currentPage"] == ["2"]
    assert query["startIndex"] == ["6"]
    assert page.goto_calls[1][1]["referer"] == CATEGORY_URL
    return True


def test_reversed_pages_reverse_record_blocks() -> bool:
    first, second = post_ids(10), post_ids(50)

    forward = Harness(FakePage(routes=category_routes([first, second]))).run(CATEGORY_URL)
    backward = Harness(FakePage(routes=category_routes([second, first]))).run(CATEGORY_URL)

    forward_ids = [r.identifier for r in forward]
    backward_ids = [r.identifier for r in backward]
    assert forward_ids == backward_ids[5:] + backward_ids[:5]
    return True


def test_filters_apply_before_accumulation() -> bool:
    from src.models.crawl import CrawlFilters

    page = FakePage(routes=category_routes([post_ids(10), post_ids(20)]))
    harness = Harness(page)

    records = harness.run(CATEGORY_URL, filters=CrawlFilters(keywords=("Post 12", "Post 21")))

    assert [r.identifier for r in records] == ["12", "21"]
    assert harness.non_terminal[0]["itemsFound"] == 5
    return True


def test_product_reviews_sort_and_total_pages() -> bool:
    from src.models.crawl import ReviewSort

    page = FakePage(
        sequence=[
            FakeSite(payloads=[review_payload([1, 2, 3], total_pages=2)], has_next=True),
            FakeSite(payloads=[review_payload([4, 5], total_pages=2)]),
        ],
    )
    harness = Harness(page)

    records = harness.run(PRODUCT_URL, sort=ReviewSort.LATEST)

    assert [r.identifier for r in records] == ["1", "2", "3", "4", "5"]
    assert page.sort_clicks == ["최신순"]
    assert harness.non_terminal[0]["totalPages"] == 2
    return True


def test_progress_event_count_bounded_by_max_pages() -> bool:
    pages = [post_ids(n * 10) for n in range(1, 8)]
    for max_pages in (1, 3, 5):
        harness = Harness(FakePage(routes=category_routes(pages)))
        harness.run(CATEGORY_URL, max_pages=max_pages)
        assert len(harness.non_terminal) <= max_pages
        assert len(harness.terminal) == 1
    return True
