"""Scraping session, payment and analysis request schemas."""

from typing import Literal

from pydantic import Field

from easyscrapy.constants import (
    DEFAULT_COMMENTS_PER_POST,
    DEFAULT_POSTS_PER_PAGE,
    DEFAULT_RESULTS_LIMIT,
    MAX_RESULTS_LIMIT,
)
from .base import CamelModel


class ScrapeRequest(CamelModel):
    url: str | None = Field(None, max_length=1024)
    scrape_type: Literal["marketplace", "facebook_pages"] = "marketplace"
    results_limit: int = DEFAULT_RESULTS_LIMIT
    pack_id: str | None = None

    # Facebook page extraction only
    urls: list[str] | None = None
    extract_info: bool = True
    extract_posts: bool = True
    extract_comments: bool = False
    posts_limit: int = Field(DEFAULT_POSTS_PER_PAGE, ge=1, le=MAX_RESULTS_LIMIT)
    comments_limit: int = Field(DEFAULT_COMMENTS_PER_POST, ge=1, le=MAX_RESULTS_LIMIT)
    date_from: str | None = None
    date_to: str | None = None
    incremental_mode: bool = False

    def page_urls(self) -> list[str]:
        return list(self.urls or ([self.url] if self.url else []))


class CreatePaymentRequest(CamelModel):
    session_id: str
    pack_id: str


class MvolaInitiateRequest(CamelModel):
    session_id: str
    pack_id: str
    msisdn: str = Field(..., min_length=1, max_length=32)


class AnalysisRequest(CamelModel):
    model_id: str | None = None
    # Facebook pages sessions: which extracted page to audit, the first one by default
    page_url: str | None = Field(default=None, max_length=1024)


class BenchmarkRequest(AnalysisRequest):
    pass
