"""
Site Classifier - Naver target URL recognition

Recognizes the URL shapes the crawler can paginate:

1. Blog main (``blog.naver.com/{blogId}``, ``PostList.naver?blogId=``, post URLs)
2. Blog category (``blogId`` + ``categoryNo`` query)
3. SmartStore / brand store product pages (reviews)
4. SmartStore / brand store listings
"""

from typing import Dict, Optional, Tuple
from dataclasses import dataclass
from urllib.parse import urlparse, parse_qs
import re

from src.models.crawl import (
    CrawlSettings,
    CrawlTarget,
    PaginationMode,
    TargetKind,
    UrlShape,
)
from .errors import InvalidTarget


BLOG_HOSTS = ("blog.naver.com", "m.blog.naver.com")
SHOP_HOSTS = ("smartstore.naver.com", "m.smartstore.naver.com", "brand.naver.com")

PRODUCT_PATH = re.compile(r"/products/(\d+)")


@dataclass(frozen=True)
class ClassifiedUrl:
    """Result of URL classification."""
    url: str
    shape: UrlShape
    blog_id: Optional[str] = None
    category_no: Optional[int] = None
    product_id: Optional[str] = None


class SiteUrlClassifier:
    """
    Naver URL classifier

    Pure functions over the URL string, no network access.
    """

    SHAPE_KIND: Dict[UrlShape, Tuple[TargetKind, PaginationMode]] = {
        UrlShape.BLOG_MAIN: (TargetKind.BLOG, PaginationMode.NEXT_CONTROL),
        UrlShape.BLOG_CATEGORY: (TargetKind.CATEGORY, PaginationMode.URL_PARAM),
        UrlShape.SHOP_PRODUCT: (TargetKind.REVIEW, PaginationMode.NEXT_CONTROL),
        UrlShape.SHOP_LISTING: (TargetKind.REVIEW, PaginationMode.URL_PARAM),
    }

    @classmethod
    def classify(cls, url: str) -> Optional[ClassifiedUrl]:
        """
        Classify a URL

        Args:
            url: Caller supplied target URL

        Returns:
            ClassifiedUrl, or None when the URL is not a recognized shape
        """
        if not url or not isinstance(url, str):
            return None

        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https"):
            return None

        host = (parsed.hostname or "").lower()
        if host in BLOG_HOSTS:
            return cls._classify_blog(url, parsed)
        if host in SHOP_HOSTS:
            return cls._classify_shop(url, parsed)
        return None

    @classmethod
    def _classify_blog(cls, url: str, parsed) -> Optional[ClassifiedUrl]:
        params = parse_qs(parsed.query)
        blog_id = (params.get("blogId") or [None])[0]

        if blog_id:
            category = (params.get("categoryNo") or [None])[0]
            if category:
                try:
                    category_no = int(category)
                except ValueError:
                    return None
                return ClassifiedUrl(url, UrlShape.BLOG_CATEGORY, blog_id=blog_id, category_no=category_no)
            return ClassifiedUrl(url, UrlShape.BLOG_MAIN, blog_id=blog_id)

        parts = [p for p in parsed.path.split("/") if p]
        if not parts or parts[0].endswith(".naver"):
            return None

        # Post URLs (/{blogId}/{logNo}) are crawled through their blog's post list
        return ClassifiedUrl(url, UrlShape.BLOG_MAIN, blog_id=parts[0])

    @classmethod
    def _classify_shop(cls, url: str, parsed) -> Optional[ClassifiedUrl]:
        parts = [p for p in parsed.path.split("/") if p]
        if not parts:
            return None

        match = PRODUCT_PATH.search(parsed.path)
        if match:
            return ClassifiedUrl(url, UrlShape.SHOP_PRODUCT, product_id=match.group(1))
        return ClassifiedUrl(url, UrlShape.SHOP_LISTING)

    @classmethod
    def build_target(cls, url: str, settings: CrawlSettings) -> CrawlTarget:
        """
        Build the immutable job target

        Raises:
            InvalidTarget: URL is not a recognized shape
        """
        classified = cls.classify(url)
        if classified is None:
            raise InvalidTarget(url, "unrecognized Naver URL shape")

        kind, pagination = cls.SHAPE_KIND[classified.shape]
        return CrawlTarget(
            base_url=classified.url,
            shape=classified.shape,
            kind=kind,
            pagination=pagination,
            max_pages=settings.max_pages,
            max_items=settings.max_items,
            filters=settings.filters,
            sort=settings.sort,
            blog_id=classified.blog_id,
            category_no=classified.category_no,
            product_id=classified.product_id,
        )


def is_supported_url(url: str) -> bool:
    """True when the URL is a recognized target shape."""
    return SiteUrlClassifier.classify(url) is not None
