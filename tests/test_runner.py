"""
Entry point tests: run_crawl wiring and blog category listing.
"""

import asyncio
import random
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import FakePage, FakePlaywrightFactory, FakeSite, RecordingSleep, category_html

CATEGORY_URL = "https://blog.naver.com/PostList.naver?blogId=testblog&categoryNo=3"

CATEGORY_TREE = (
    '<html><body><ul id="category-list">'
    '<li><a id="category1" href="/PostList.naver?blogId=testblog&categoryNo=1">일상 <span class="num cm-col1">(12)</span></a></li>'
    '<li class="depth2"><a id="category4" href="/PostList.naver?blogId=testblog&categoryNo=4">여행 <span class="num cm-col1">(3)</span></a></li>'
    '</ul></body></html>'
)


def make_components(page):
    from src.crawler.config import CrawlerConfig
    from src.crawler.extractor import DualExtractor
    from src.crawler.navigator import StealthNavigator
    from src.crawler.session import BrowserSessionManager

    config = CrawlerConfig(chrome_version="139.0.0.0", payload_wait_ms=1000, payload_poll_ms=500)
    sleep = RecordingSleep()
    factory = FakePlaywrightFactory(page_factory=lambda: page)
    return {
        "config": config,
        "session_manager": BrowserSessionManager(config, playwright_factory=factory),
        "navigator": StealthNavigator(config, sleep=sleep, rng=random.Random(5)),
        "extractor": DualExtractor(config, sleep=sleep),
    }, factory


def category_route(url):
    number = int(parse_qs(urlparse(url).query).get("currentPage", ["1"])[0])
    return FakeSite(html=category_html(list(range(number * 10, number * 10 + 5))))


def test_run_crawl_accepts_request_shaped_settings() -> bool:
    from src.crawler.runner import run_crawl

    page = FakePage(routes=category_route)
    components, factory = make_components(page)
    progress = []

    records = asyncio.run(run_crawl(
        CATEGORY_URL,
        {"maxPages": 2, "filters": {"excludeKeywords": ["Post 12"]}},
        progress_sink=progress.append,
        **components,
    ))

    assert [r.identifier for r in records] == ["10", "11", "13", "14", "20", "21", "22", "23", "24"]
    assert progress[-1]["isComplete"] is True
    assert len(progress) == 3
    assert factory.browsers[0].close_calls == 1
    return True


def test_list_blog_categories() -> bool:
    from src.crawler.runner import BLOG_CATEGORY_URL, list_blog_categories

    url = BLOG_CATEGORY_URL.format(blog_id="testblog")
    page = FakePage(routes={url: FakeSite(html=CATEGORY_TREE)})
    components, factory = make_components(page)
    components.pop("extractor")

    categories = asyncio.run(list_blog_categories("testblog", **components))

    assert categories == [
        {"categoryNo": 1, "name": "일상", "postCount": 12, "depth": 1},
        {"categoryNo": 4, "name": "여행", "postCount": 3, "depth": 2},
    ]
    assert page.goto_calls[0][1]["wait_until"] == "networkidle"
    assert page.closed
    assert factory.playwrights[0].stop_calls == 1
    return True


def test_list_blog_categories_blocked_returns_empty() -> bool:
    from src.crawler.runner import BLOG_CATEGORY_URL, list_blog_categories

    url = BLOG_CATEGORY_URL.format(blog_id="testblog")
    page = FakePage(routes={url: FakeSite(status=403)})
    components, factory = make_components(page)
    components.pop("extractor")

    assert asyncio.run(list_blog_categories("testblog", **components)) == []
    assert factory.browsers[0].close_calls == 1
    return True


def test_run_crawl_rejects_zero_item_limit() -> bool:
    from src.crawler.errors import FatalCrawlError, InvalidSettings
    from src.crawler.runner import run_crawl

    page = FakePage(routes=category_route)
    components, factory = make_components(page)
    progress = []

    with pytest.raises(InvalidSettings) as excinfo:
        asyncio.run(run_crawl(CATEGORY_URL, {"maxItems": 0, "maxPages": 2}, progress_sink=progress.append, **components))

    raised = excinfo.value
    assert isinstance(raised, FatalCrawlError)
    assert "maxItems must be at least 1" in str(raised)
    assert progress == [{"error": str(raised), "isComplete": True}]
    assert factory.start_calls == 0
    assert page.goto_calls == []
    return True
