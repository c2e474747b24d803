"""Credit estimation and admin adjustment schemas.

Counts are not range-checked here; the estimators reject counts below 1.
"""

from typing import Literal

from pydantic import Field

from .base import CamelModel


class MarketplaceEstimateRequest(CamelModel):
    item_count: int


class FacebookPagesEstimateRequest(CamelModel):
    page_count: int
    posts_per_page: int = 50


class AiAnalysisEstimateRequest(CamelModel):
    page_count: int
    posts_per_page: int = 20
    model_id: str | None = None


class BenchmarkEstimateRequest(CamelModel):
    page_count: int
    posts_limit: int = 20
    model_id: str | None = None


class SimpleEstimateRequest(CamelModel):
    service_type: str
    quantity: int


class CreditAdjustRequest(CamelModel):
    amount: float
    reason: str = Field(..., min_length=1, max_length=500)


class AdminUserUpdate(CamelModel):
    role: Literal["user", "admin"] | None = None
    is_active: bool | None = None
