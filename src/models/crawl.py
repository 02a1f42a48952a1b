"""
Crawl data models.
"""

from typing import Dict, Any, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TargetKind(Enum):
    """Kind of records a target yields."""
    REVIEW = "review"
    BLOG = "blog"
    CATEGORY = "category"


class UrlShape(Enum):
    """Recognized target URL shapes."""
    BLOG_MAIN = "blogMain"
    BLOG_CATEGORY = "blogCategory"
    SHOP_PRODUCT = "shopProduct"
    SHOP_LISTING = "shopListing"


class PaginationMode(Enum):
    """How the next page is reached."""
    URL_PARAM = "url_param"        # mutate a query parameter and navigate
    NEXT_CONTROL = "next_control"  # click the in-page "next" control


class ExtractionSource(Enum):
    """Where the records of a page came from."""
    NETWORK = "network"
    DOM = "dom"
    NONE = "none"


class CrawlPhase(Enum):
    """Pagination state machine phases."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    FETCHING_PAGE = "fetching_page"
    DECIDING = "deciding"
    NEXT_PAGE_NAVIGATION = "next_page_navigation"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewSort(Enum):
    """Review ordering on product pages."""
    RANKING = "ranking"
    LATEST = "latest"
    HIGH_RATING = "high-rating"
    LOW_RATING = "low-rating"


@dataclass(frozen=True)
class CrawlFilters:
    """Record filter predicate applied before accumulation."""
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    keywords: Tuple[str, ...] = ()
    exclude_keywords: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CrawlFilters":
        """Build filters from the nested request shape.

        Accepts ``{"rating": {"min", "max"}, "price": {"min", "max"},
        "keywords": [...], "excludeKeywords": [...]}``.
        """
        if not data:
            return cls()
        rating = data.get("rating") or {}
        price = data.get("price") or {}
        return cls(
            min_rating=rating.get("min"),
            max_rating=rating.get("max"),
            min_price=price.get("min"),
            max_price=price.get("max"),
            keywords=tuple(data.get("keywords") or ()),
            exclude_keywords=tuple(data.get("excludeKeywords") or data.get("exclude_keywords") or ()),
        )

    def matches(self, record: "ExtractedRecord") -> bool:
        """Absent metrics never fail a numeric bound."""
        if record.rating is not None:
            if self.min_rating is not None and record.rating < self.min_rating:
                return False
            if self.max_rating is not None and record.rating > self.max_rating:
                return False
        if record.price is not None:
            if self.min_price is not None and record.price < self.min_price:
                return False
            if self.max_price is not None and record.price > self.max_price:
                return False

        text = f"{record.title or ''} {record.content or ''}".lower()
        if self.keywords and not any(k.lower() in text for k in self.keywords):
            return False
        if self.exclude_keywords and any(k.lower() in text for k in self.exclude_keywords):
            return False
        return True


@dataclass(frozen=True)
class CrawlSettings:
    """Caller supplied job settings."""
    max_pages: int = 10
    max_items: int = 2000
    sort: Optional[ReviewSort] = None
    filters: CrawlFilters = field(default_factory=CrawlFilters)

    def __post_init__(self):
        if self.max_pages < 1:
            raise ValueError(f"maxPages must be at least 1, got {self.max_pages}")
        if self.max_items < 1:
            raise ValueError(f"maxItems must be at least 1, got {self.max_items}")

    @classmethod
    def from_dict(
        cls,
        data: Optional[Dict[str, Any]],
        max_pages_limit: int = 100,
        default_max_pages: int = 10,
        default_max_items: int = 2000,
    ) -> "CrawlSettings":
        """Build settings from a camelCase or snake_case mapping.

        Missing limits take the defaults; limits below 1 raise ValueError.
        """
        data = data or {}
        max_pages = _setting(data, "maxPages", "max_pages", default_max_pages)
        max_items = _setting(data, "maxItems", "max_items", default_max_items)
        sort = data.get("sort")
        return cls(
            max_pages=min(max_pages, max_pages_limit),
            max_items=max_items,
            sort=ReviewSort(sort) if sort else None,
            filters=CrawlFilters.from_dict(data.get("filters")),
        )


def _setting(data: Dict[str, Any], camel: str, snake: str, default: int) -> int:
    value = data.get(camel)
    if value is None:
        value = data.get(snake)
    return default if value is None else int(value)


@dataclass(frozen=True)
class CrawlTarget:
    """Immutable description of one job's target."""
    base_url: str
    shape: UrlShape
    kind: TargetKind
    pagination: PaginationMode
    max_pages: int
    max_items: int
    filters: CrawlFilters = field(default_factory=CrawlFilters)
    sort: Optional[ReviewSort] = None
    blog_id: Optional[str] = None
    category_no: Optional[int] = None
    product_id: Optional[str] = None


@dataclass(frozen=True)
class ExtractedRecord:
    """Single normalized record, produced by either decoder."""
    identifier: str
    title: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    rating: Optional[float] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    discount: Optional[float] = None
    view_count: Optional[int] = None
    comment_count: Optional[int] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    is_verified: Optional[bool] = None
    image_urls: Tuple[str, ...] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)
    page_number: Optional[int] = None
    item_order: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire dictionary."""
        return {
            "itemId": self.identifier,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "rating": self.rating,
            "price": self.price,
            "originalPrice": self.original_price,
            "discount": self.discount,
            "viewCount": self.view_count,
            "commentCount": self.comment_count,
            "author": self.author,
            "publishedAt": self.published_at.isoformat() if self.published_at else None,
            "isVerified": self.is_verified,
            "imageUrls": list(self.image_urls),
            "siteSpecificData": self.attributes,
            "pageNumber": self.page_number,
            "itemOrder": self.item_order,
        }


@dataclass
class PageResult:
    """Outcome of one page visit."""
    page_number: int
    records: List[ExtractedRecord] = field(default_factory=list)
    items_found: int = 0
    source: ExtractionSource = ExtractionSource.NONE
    skipped: bool = False
    error: Optional[str] = None
    total_pages_hint: Optional[int] = None


@dataclass
class ProgressEvent:
    """Non-terminal progress update."""
    current_page: int
    total_pages: int
    items_found: int
    items_crawled: int
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for sinks."""
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "itemsFound": self.items_found,
            "itemsCrawled": self.items_crawled,
            "message": self.message,
        }


@dataclass
class TerminalEvent:
    """The single closing event of a job: success or error, never both."""
    results: Optional[List[ExtractedRecord]] = None
    error: Optional[str] = None
    current_page: int = 0
    total_pages: int = 0
    items_found: int = 0
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for sinks."""
        if self.error is not None:
            return {"error": self.error, "isComplete": True}
        results = self.results or []
        return {
            "isComplete": True,
            "results": [r.to_dict() for r in results],
            "totalCount": len(results),
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "itemsFound": self.items_found,
            "itemsCrawled": len(results),
            "message": self.message,
        }


@dataclass
class CrawlRunState:
    """Mutable accumulator for one job."""
    records: List[ExtractedRecord] = field(default_factory=list)
    current_page: int = 1
    items_found: int = 0
    total_pages: int = 0
    stop_requested: bool = False
    errors: List[str] = field(default_factory=list)
    phase: CrawlPhase = CrawlPhase.IDLE
    blog_id: Optional[str] = None
    started_at: Optional[datetime] = None
