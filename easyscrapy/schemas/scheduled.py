"""Scheduled scrape schemas."""

from typing import Literal

from pydantic import Field

from easyscrapy.constants import MAX_RESULTS_LIMIT
from .base import CamelModel


class NotificationSettings(CamelModel):
    email: bool = True
    only_on_changes: bool = True


class ScheduleCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    scrape_type: Literal["marketplace", "facebook_pages"] = "marketplace"
    target_url: str = Field(..., min_length=1, max_length=1024)
    frequency: Literal["daily", "weekly", "monthly"] = "weekly"
    results_limit: int = Field(20, ge=1, le=MAX_RESULTS_LIMIT)
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)


class SchedulePause(CamelModel):
    paused: bool
