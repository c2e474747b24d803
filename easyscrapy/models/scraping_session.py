"""ScrapingSession model: one extraction job and its payment/download state."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from easyscrapy_cli.utils import now_utc
from .base import Base


class SessionStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ScrapeType(StrEnum):
    MARKETPLACE = "marketplace"
    FACEBOOK_PAGES = "facebook_pages"


class ScrapingSession(Base):
    __tablename__ = "scraping_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    scrape_type: Mapped[str] = mapped_column(String(30), nullable=False, default=ScrapeType.MARKETPLACE)
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    results_limit: Mapped[int] = mapped_column(Integer, default=3)
    page_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)
    extraction_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    sub_runs: Mapped[list | None] = mapped_column(JSON, nullable=True)
    item_counts: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ai_results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatus.PENDING, index=True)
    actor_run_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    dataset_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    is_trial: Mapped[bool] = mapped_column(Boolean, default=False)
    pack_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    preview_items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    has_data: Mapped[bool] = mapped_column(Boolean, default=False)
    download_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    download_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    download_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    user: Mapped["User | None"] = relationship(back_populates="sessions")
    items: Mapped[list["StoredItem"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )
