"""
Dual Extractor - network payload first, DOM query fallback

Extraction order for one page:
1. Poll the network capture for an intercepted list payload
2. Decode the most recent payload when its envelope is recognized
3. Otherwise parse every frame's HTML with BeautifulSoup and decode the
   first container selector that yields at least one element

An empty result is a valid outcome ("no more content"), not an error.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass
from urllib.parse import unquote_plus
import asyncio
import logging
import json
import math
import re

from bs4 import BeautifulSoup

from src.models.crawl import (
    CrawlRunState,
    ExtractedRecord,
    ExtractionSource,
    PageResult,
    TargetKind,
)
from .config import CrawlerConfig
from .logging_utils import log_event
from .parsing import (
    clean_text,
    normalize_rating,
    normalize_score,
    parse_date,
    parse_int,
    parse_number,
    resolve_url,
)
from .selector_library import (
    BLOG_POSTS_PER_PAGE,
    CATEGORY_TREE_SELECTOR,
    TOTAL_COUNT_SELECTORS,
    SelectorLayout,
    get_layouts,
)


logger = logging.getLogger(__name__)

PayloadMatcher = Union[str, Callable[[str], bool]]
SleepFn = Callable[[float], Awaitable[Any]]

BLOG_POST_URL = "https://blog.naver.com/PostView.naver?blogId={blog_id}&logNo={log_no}"
LOG_NO_PATTERN = re.compile(r"logNo=(\d+)")
POST_PATH_PATTERN = re.compile(r"/[\w-]+/(\d{6,})")
CATEGORY_NO_PATTERN = re.compile(r"categoryNo=(\d+)")

BASE_URLS = {
    TargetKind.REVIEW: "https://smartstore.naver.com/",
    TargetKind.BLOG: "https://blog.naver.com/",
    TargetKind.CATEGORY: "https://blog.naver.com/",
}


class NetworkCapture:
    """Payloads captured by a network listener; extraction consumes the latest."""

    def __init__(self):
        self._payloads: List[Any] = []
        self.received_count = 0

    def push(self, payload: Any) -> None:
        self._payloads.append(payload)
        self.received_count += 1

    @property
    def has_payload(self) -> bool:
        return bool(self._payloads)

    def take_latest(self) -> Optional[Any]:
        """Return the most recent payload and drop the rest."""
        if not self._payloads:
            return None
        latest = self._payloads[-1]
        self._payloads.clear()
        return latest

    def clear(self) -> None:
        self._payloads.clear()


def register_network_listener(
    page: Any,
    matcher: PayloadMatcher,
    on_payload: Callable[[Any], None],
) -> None:
    """
    Attach a ``response`` listener for list API calls

    Must run before navigation: the first page's API response fires during
    page load and is missed by a listener attached afterwards.
    """
    matches = matcher if callable(matcher) else (lambda url: matcher in url)

    async def handle_response(response: Any) -> None:
        url = response.url
        if not matches(url):
            return
        try:
            payload = json.loads(await response.text())
        except Exception as exc:
            log_event(logger, logging.WARNING, "payload_decode_failed", url=url, error=str(exc))
            return
        log_event(logger, logging.DEBUG, "payload_captured", url=url)
        on_payload(payload)

    page.on("response", handle_response)


@dataclass
class DecodeContext:
    """Per-page values threaded through the decoders."""
    page_number: int
    blog_id: Optional[str] = None
    base_url: Optional[str] = None

    @classmethod
    def from_run_state(cls, run_state: CrawlRunState, base_url: Optional[str] = None) -> "DecodeContext":
        return cls(page_number=run_state.current_page, blog_id=run_state.blog_id, base_url=base_url)


# =============================================================================
# Network payload decoding
# =============================================================================

def payload_entries(raw: Any, kind: TargetKind) -> Optional[List[Any]]:
    """List of entries in a recognized envelope, or None."""
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, dict):
        return None
    key = "contents" if kind == TargetKind.REVIEW else "postList"
    entries = raw.get(key)
    return entries if isinstance(entries, list) else None


def payload_total_pages(raw: Any) -> Optional[int]:
    if isinstance(raw, dict):
        total = raw.get("totalPages")
        if isinstance(total, int) and total > 0:
            return total
    return None


def decode_network_payload(raw: Any, kind: TargetKind, run_state: CrawlRunState) -> List[ExtractedRecord]:
    """
    Decode an intercepted list payload

    Malformed entries are skipped one by one; the rest of the page survives.
    """
    entries = payload_entries(raw, kind)
    if not entries:
        return []

    context = DecodeContext.from_run_state(run_state)
    decode = _decode_review_entry if kind == TargetKind.REVIEW else _decode_post_entry
    records = []
    for index, entry in enumerate(entries):
        try:
            record = decode(entry, context, index + 1)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            log_event(logger, logging.DEBUG, "payload_entry_skipped", kind=kind.value, index=index, error=str(exc))
            continue
        if record is not None:
            records.append(record)
    return records


def _decode_post_entry(entry: Dict[str, Any], context: DecodeContext, order: int) -> Optional[ExtractedRecord]:
    log_no = entry["logNo"]
    encoded_title = entry.get("filteredEncodedTitle")
    title = clean_text(unquote_plus(encoded_title)) if encoded_title else clean_text(entry.get("title"))
    add_date = entry.get("addDate")

    return ExtractedRecord(
        identifier=str(log_no),
        title=title,
        url=BLOG_POST_URL.format(blog_id=context.blog_id, log_no=log_no),
        comment_count=parse_int(str(entry["commentCount"])) if entry.get("commentCount") is not None else None,
        published_at=parse_date(str(add_date)) if add_date else None,
        attributes={
            "logNo": str(log_no),
            "blogId": context.blog_id,
            "publishDate": add_date,
            "openType": entry.get("openType"),
            "filteredEncodedTitle": encoded_title,
        },
        page_number=context.page_number,
        item_order=order,
    )


def _decode_review_entry(entry: Dict[str, Any], context: DecodeContext, order: int) -> Optional[ExtractedRecord]:
    review_id = entry["id"]
    attaches = entry.get("reviewAttaches") or []
    image_urls = tuple(a["attachUrl"] for a in attaches if isinstance(a, dict) and a.get("attachUrl"))
    create_date = entry.get("createDate")

    return ExtractedRecord(
        identifier=str(review_id),
        content=clean_text(entry.get("reviewContent")),
        rating=normalize_score(entry.get("reviewScore")),
        author=clean_text(entry.get("writerMemberMaskedId") or entry.get("writerMemberNickname")),
        published_at=parse_date(str(create_date)) if create_date else None,
        image_urls=image_urls,
        attributes={
            "productOption": entry.get("productOptionContent"),
            "reviewType": entry.get("reviewType"),
            "helpCount": entry.get("helpCount"),
        },
        page_number=context.page_number,
        item_order=order,
    )


# =============================================================================
# DOM decoding
# =============================================================================

def _first_match(element: Any, selectors) -> Optional[Any]:
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None:
            return found
    return None


def _field_value(element: Any, layout: SelectorLayout, name: str) -> Optional[str]:
    """Text (or configured attribute) of the first selector matching ``name``."""
    found = _first_match(element, layout.fields.get(name, ()))
    if found is None:
        return None
    attribute = layout.attributes.get(name)
    if attribute:
        return found.get(attribute)
    return clean_text(found.get_text(" "))


def _rating_value(element: Any, layout: SelectorLayout) -> Optional[float]:
    found = _first_match(element, layout.fields.get("rating", ()))
    if found is None:
        return None
    rating = normalize_rating(found.get_text(" "))
    if rating is None:
        rating = normalize_rating(found.get("aria-label"))
    return rating


def _element_identifier(element: Any, layout: SelectorLayout, context: DecodeContext, order: int) -> str:
    for attribute in layout.id_attributes:
        value = element.get(attribute)
        if value:
            return str(value)
    return f"{layout.id_prefix}_{context.page_number}_{order}"


def _image_urls(element: Any, base_url: str) -> tuple:
    urls = []
    for image in element.select("img"):
        src = image.get("src") or image.get("data-src")
        if src and not src.startswith("data:"):
            urls.append(resolve_url(base_url, src))
    return tuple(urls)


def decode_dom_element(
    element: Any,
    kind: TargetKind,
    run_state: CrawlRunState,
    order: int,
    layout: Optional[SelectorLayout] = None,
    base_url: Optional[str] = None,
) -> Optional[ExtractedRecord]:
    """
    Decode one container element with per-field selector fallback chains

    Returns:
        ExtractedRecord, or None when the element carries no usable content
    """
    layout = layout or get_layouts(kind)[0]
    context = DecodeContext.from_run_state(run_state, base_url or BASE_URLS[kind])

    if layout.name == "review":
        return _decode_review_element(element, layout, context, order)
    if layout.name == "product":
        return _decode_product_element(element, layout, context, order)
    return _decode_post_element(element, layout, context, order)


def _decode_review_element(element, layout, context, order) -> Optional[ExtractedRecord]:
    content = _field_value(element, layout, "content")
    if not content:
        return None
    return ExtractedRecord(
        identifier=_element_identifier(element, layout, context, order),
        content=content,
        rating=_rating_value(element, layout),
        author=_field_value(element, layout, "author"),
        published_at=parse_date(_field_value(element, layout, "date")),
        is_verified=True if _first_match(element, layout.fields.get("verified", ())) is not None else None,
        image_urls=_image_urls(element, context.base_url),
        attributes={"productOption": _field_value(element, layout, "option")},
        page_number=context.page_number,
        item_order=order,
    )


def _decode_product_element(element, layout, context, order) -> Optional[ExtractedRecord]:
    title = _field_value(element, layout, "title")
    if not title:
        return None
    return ExtractedRecord(
        identifier=_element_identifier(element, layout, context, order),
        title=title,
        url=resolve_url(context.base_url, _field_value(element, layout, "url")),
        rating=_rating_value(element, layout),
        price=parse_number(_field_value(element, layout, "price")),
        original_price=parse_number(_field_value(element, layout, "original_price")),
        discount=parse_number(_field_value(element, layout, "discount")),
        image_urls=_image_urls(element, context.base_url),
        page_number=context.page_number,
        item_order=order,
    )


def _decode_post_element(element, layout, context, order) -> Optional[ExtractedRecord]:
    href = _field_value(element, layout, "url")
    # Pagination links inside the list table point back to PostList
    if href and "PostList" in href:
        return None

    title = _field_value(element, layout, "title")
    if not title:
        return None

    log_no = element.get("data-log-no")
    if not log_no and href:
        match = LOG_NO_PATTERN.search(href) or POST_PATH_PATTERN.search(href)
        log_no = match.group(1) if match else None

    if log_no and context.blog_id:
        url = BLOG_POST_URL.format(blog_id=context.blog_id, log_no=log_no)
    else:
        url = resolve_url(context.base_url, href)

    return ExtractedRecord(
        identifier=str(log_no) if log_no else f"{layout.id_prefix}_{context.page_number}_{order}",
        title=title,
        url=url,
        comment_count=parse_int(_field_value(element, layout, "comment_count")),
        view_count=parse_int(_field_value(element, layout, "view_count")),
        published_at=parse_date(_field_value(element, layout, "date")),
        attributes={"logNo": log_no, "blogId": context.blog_id},
        page_number=context.page_number,
        item_order=order,
    )


def decode_dom_html(
    html: str,
    kind: TargetKind,
    run_state: CrawlRunState,
    base_url: Optional[str] = None,
) -> List[ExtractedRecord]:
    """
    Decode records from one HTML document

    Each layout's container selectors are tried in priority order; the first
    selector yielding at least one element wins.
    """
    return match_dom_html(html, kind, run_state, base_url)[0]


def match_dom_html(
    html: str,
    kind: TargetKind,
    run_state: CrawlRunState,
    base_url: Optional[str] = None,
) -> Tuple[List[ExtractedRecord], int]:
    """Decoded records and the number of container elements matched."""
    soup = BeautifulSoup(html, "lxml")
    for layout in get_layouts(kind):
        for selector in layout.containers:
            elements = soup.select(selector)
            if not elements:
                continue
            logger.debug("Container selector %s matched %d elements", selector, len(elements))
            records = []
            for element in elements:
                record = decode_dom_element(element, kind, run_state, len(records) + 1, layout, base_url)
                if record is not None:
                    records.append(record)
            return records, len(elements)
    return [], 0


def parse_total_count(html: str) -> Optional[int]:
    """Post count from the blog's category title label."""
    soup = BeautifulSoup(html, "lxml")
    for selector in TOTAL_COUNT_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            count = parse_int(re.sub(r"\D", "", found.get_text()))
            if count:
                return count
    return None


def estimate_total_pages(post_count: Optional[int], max_pages: int) -> int:
    """Blog page estimate: ``ceil(count / 5)`` capped by ``max_pages``."""
    if not post_count:
        return max_pages
    return max(1, min(math.ceil(post_count / BLOG_POSTS_PER_PAGE), max_pages))


def parse_blog_categories(html: str) -> List[Dict[str, Any]]:
    """Category tree entries of a blog's PostList page."""
    soup = BeautifulSoup(html, "lxml")
    categories = []
    for element in soup.select(CATEGORY_TREE_SELECTOR):
        match = CATEGORY_NO_PATTERN.search(element.get("href") or "")
        if not match:
            continue
        category_no = int(match.group(1))
        if category_no <= 0:
            continue

        count_element = element.select_one(".num.cm-col1")
        count_text = count_element.get_text() if count_element is not None else ""
        if count_element is not None:
            count_element.extract()
        name = re.sub(r"\(\d+\)", "", element.get_text(" ")).strip()

        categories.append({
            "categoryNo": category_no,
            "name": clean_text(name) or "",
            "postCount": parse_int(count_text) or 0,
            "depth": 2 if element.find_parent("li", class_="depth2") is not None else 1,
        })
    return categories


# =============================================================================
# Page extraction
# =============================================================================

async def frame_documents(page: Any) -> List[str]:
    """HTML of every frame; blog post lists live inside ``mainFrame``."""
    frames = list(getattr(page, "frames", None) or []) or [page]
    documents = []
    for frame in frames:
        try:
            documents.append(await frame.content())
        except Exception as exc:
            logger.debug("Frame content unavailable: %s", exc)
    return documents


class DualExtractor:
    """
    Per-page record extraction

    ``sleep`` is injectable so the payload poll can run without real waits.
    """

    def __init__(self, config: Optional[CrawlerConfig] = None, sleep: SleepFn = asyncio.sleep):
        self.config = config or CrawlerConfig()
        self._sleep = sleep

    async def wait_for_payload(self, capture: Optional[NetworkCapture]) -> Optional[Any]:
        """Poll ``capture`` until a payload arrives or the wait budget is spent."""
        if capture is None:
            return None
        polls = self.config.payload_max_polls
        for _ in range(polls):
            if capture.has_payload:
                break
            await self._sleep(self.config.payload_poll_ms / 1000)
        return capture.take_latest()

    async def extract_page(
        self,
        page: Any,
        kind: TargetKind,
        run_state: CrawlRunState,
        capture: Optional[NetworkCapture] = None,
    ) -> PageResult:
        """
        Extract one page

        Returns:
            PageResult with source ``network``, ``dom`` or ``none`` (empty)
        """
        page_number = run_state.current_page
        payload = await self.wait_for_payload(capture)

        if payload is not None and payload_entries(payload, kind) is not None:
            records = decode_network_payload(payload, kind, run_state)
            found = len(payload_entries(payload, kind))
            log_event(logger, logging.INFO, "page_extracted", page=page_number, source="network", count=len(records), found=found)
            return PageResult(
                page_number=page_number,
                records=records,
                items_found=found,
                source=ExtractionSource.NETWORK,
                total_pages_hint=payload_total_pages(payload),
            )

        records, found = await self.extract_from_dom(page, kind, run_state)
        source = ExtractionSource.DOM if records else ExtractionSource.NONE
        log_event(logger, logging.INFO, "page_extracted", page=page_number, source=source.value, count=len(records), found=found)
        return PageResult(page_number=page_number, records=records, items_found=found, source=source)

    async def extract_from_dom(
        self,
        page: Any,
        kind: TargetKind,
        run_state: CrawlRunState,
    ) -> Tuple[List[ExtractedRecord], int]:
        """DOM fallback: first frame whose HTML yields records wins.

        Returns:
            (records, number of matched container elements)
        """
        base_url = getattr(page, "url", None) or BASE_URLS[kind]
        found = 0
        for html in await frame_documents(page):
            records, matched = match_dom_html(html, kind, run_state, base_url)
            if records:
                return records, matched
            found = max(found, matched)
        return [], found

    async def read_total_count(self, page: Any) -> Optional[int]:
        """Blog post count from any frame, None when the label is missing."""
        for html in await frame_documents(page):
            count = parse_total_count(html)
            if count:
                return count
        return None
