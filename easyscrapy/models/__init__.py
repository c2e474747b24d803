"""SQLAlchemy models for EasyScrapy."""

from .base import Base
from .user import User
from .scraping_session import ScrapeType, ScrapingSession, SessionStatus
from .stored_item import StoredItem
from .payment import Download, MvolaPayment, Payment
from .pack import Pack
from .credit_transaction import CreditTransaction
from .webhook_event import WebhookEvent
from .scheduled_scrape import (
    ScheduledScrape,
    ScheduledScrapeChange,
    ScheduledScrapeExecution,
    ScheduledScrapeNotification,
)
from .page_tracking import FacebookPageTracking, FacebookScrapedPost
from .ai_usage_log import AiUsageLog
from .mention import BrandKeyword, BrandMention

__all__ = [
    "Base",
    "User",
    "ScrapingSession",
    "SessionStatus",
    "ScrapeType",
    "StoredItem",
    "Payment",
    "MvolaPayment",
    "Download",
    "Pack",
    "CreditTransaction",
    "WebhookEvent",
    "ScheduledScrape",
    "ScheduledScrapeExecution",
    "ScheduledScrapeChange",
    "ScheduledScrapeNotification",
    "FacebookPageTracking",
    "FacebookScrapedPost",
    "AiUsageLog",
    "BrandKeyword",
    "BrandMention",
]
