"""
Request and response schemas for the crawl API.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class RangeFilter(BaseModel):
    """Inclusive numeric bounds; either side may be omitted."""

    min: Optional[float] = None
    max: Optional[float] = None


class CrawlFiltersRequest(BaseModel):
    rating: Optional[RangeFilter] = None
    price: Optional[RangeFilter] = None
    keywords: List[str] = Field(default_factory=list)
    excludeKeywords: List[str] = Field(default_factory=list)


class CrawlRequest(BaseModel):
    """
    Body of ``POST /crawl/stream``.
    """

    url: str = Field(..., min_length=1)
    maxPages: Optional[int] = Field(None, ge=1)
    maxItems: Optional[int] = Field(None, ge=1)
    sort: Optional[Literal["ranking", "latest", "high-rating", "low-rating"]] = None
    filters: Optional[CrawlFiltersRequest] = None

    def to_settings(self) -> Dict[str, Any]:
        """Settings mapping accepted by ``CrawlSettings.from_dict``."""
        return self.model_dump(exclude={"url"}, exclude_none=True)


class StopJobResponse(BaseModel):
    jobId: str
    stopped: bool


class BlogCategoryResponse(BaseModel):
    categoryNo: int = Field(..., gt=0)
    name: str
    postCount: int = Field(0, ge=0)
    depth: int = Field(1, ge=1)
