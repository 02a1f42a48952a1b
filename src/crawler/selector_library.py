"""
Selector Library - data-driven selector tables per target kind

Every field maps to an ordered list of CSS selectors evaluated first-match-wins.
Supporting a new site layout means adding a table entry, not a branch.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

from src.models.crawl import TargetKind, UrlShape


@dataclass(frozen=True)
class SelectorLayout:
    """One page layout of a target kind."""
    name: str
    containers: Tuple[str, ...]
    fields: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)  # field -> attribute read instead of text
    id_attributes: Tuple[str, ...] = ()
    id_prefix: str = "item"


REVIEW_LAYOUT = SelectorLayout(
    name="review",
    containers=(
        "li[data-shp-area='revlist.review']",
        "li[data-shp-contents-type='review']",
        "#REVIEW ul li[data-shp-contents-id]",
        ".review_list_item",
        ".reviewItems",
        "[data-testid='review-item']",
        ".review-item",
    ),
    fields={
        "content": (".review-content", ".review-text", ".content", ".review_content"),
        "rating": (".rating", ".star-rating", ".review-rating", "em"),
        "author": (".reviewer", ".review-author", ".user-name", "strong"),
        "date": (".review-date", ".date", ".created-at"),
        "option": (".review-option", ".product-option", ".option"),
        "verified": (".verified", ".confirmed", ".purchased"),
    },
    id_attributes=("data-shp-contents-id", "data-review-id", "id"),
    id_prefix="review",
)

PRODUCT_LAYOUT = SelectorLayout(
    name="product",
    containers=(
        ".product_list_item",
        ".productItems",
        "[data-testid='product-item']",
        ".product-item",
    ),
    fields={
        "title": (".product-title", ".title", ".name", "h3", "h4"),
        "price": (".price", ".current-price", ".sale-price"),
        "original_price": (".original-price", ".before-price", ".regular-price"),
        "discount": (".discount", ".sale-rate"),
        "rating": (".rating", ".star-rating"),
        "url": ("a[href]",),
    },
    attributes={"url": "href"},
    id_attributes=("data-product-id", "data-id"),
    id_prefix="product",
)

BLOG_POST_LAYOUT = SelectorLayout(
    name="blog_post_list",
    containers=(
        "#postBottomTitleListBody tr",
        "#postBottomTitleListBody li",
        ".blog2_postlist .item",
    ),
    fields={
        "title": (".title a", ".title", "a"),
        "url": ("a.pcol2[href]", ".title a[href]", "a[href]"),
        "comment_count": (".meta_data .num.pcol3", ".num.pcol3", ".comment_count"),
        "date": (".date", ".meta_data .date"),
    },
    attributes={"url": "href"},
    id_attributes=("data-log-no",),
    id_prefix="post",
)

CATEGORY_POST_LAYOUT = SelectorLayout(
    name="category_post_list",
    containers=(
        "#postBottomTitleListBody tr",
        "#listTopForm tbody tr",
        "#PostThumbnailAlbumViewArea li",
        ".blog2_categorylist li",
    ),
    fields={
        "title": (".title a", ".title", ".ell a", "a"),
        "url": ("a.pcol2[href]", ".title a[href]", "a[href]"),
        "comment_count": (".meta_data .num.pcol3", ".num.pcol3", ".comment_count"),
        "view_count": (".view_count", ".num.pcol2"),
        "date": (".date", ".meta_data .date"),
    },
    attributes={"url": "href"},
    id_attributes=("data-log-no",),
    id_prefix="post",
)

LAYOUTS: Dict[TargetKind, Tuple[SelectorLayout, ...]] = {
    TargetKind.REVIEW: (REVIEW_LAYOUT, PRODUCT_LAYOUT),
    TargetKind.BLOG: (BLOG_POST_LAYOUT,),
    TargetKind.CATEGORY: (CATEGORY_POST_LAYOUT,),
}

# In-page API responses carrying list data, matched by URL substring
API_MATCHERS: Dict[UrlShape, Optional[str]] = {
    UrlShape.BLOG_MAIN: "PostViewBottomTitleListAsync.naver",
    UrlShape.BLOG_CATEGORY: None,
    UrlShape.SHOP_PRODUCT: "/contents/reviews/query-pages",
    UrlShape.SHOP_LISTING: None,
}

# "{page}" is replaced by the page number being navigated to
NEXT_CONTROLS: Dict[UrlShape, Tuple[str, ...]] = {
    UrlShape.BLOG_MAIN: (
        "#postBottomTitleListNavigation .next.pcol2._next_category",
    ),
    UrlShape.SHOP_PRODUCT: (
        "a[data-shp-area='revlist.pgn'][data-shp-contents-id='{page}']",
        "a[data-shp-area='revlist.pgn']:has-text('{page}')",
        "a[data-shp-area='revlist.pgn']:has-text('다음')",
    ),
}

TOTAL_COUNT_SELECTORS: Tuple[str, ...] = (".category_title.pcol2",)

BLOG_POSTS_PER_PAGE = 5

CATEGORY_TREE_SELECTOR = '#category-list a[id^="category"]'


def get_layouts(kind: TargetKind) -> Tuple[SelectorLayout, ...]:
    """Layouts for a target kind, in priority order."""
    return LAYOUTS.get(kind, ())


def get_next_controls(shape: UrlShape, page_number: int) -> List[str]:
    """Next-control selectors for navigating to ``page_number``."""
    return [s.replace("{page}", str(page_number)) for s in NEXT_CONTROLS.get(shape, ())]
