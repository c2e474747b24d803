"""Scheduled scrape models: automation config, executions, detected changes, notifications."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from easyscrapy_cli.utils import now_utc
from .base import Base


class ScheduledScrape(Base):
    __tablename__ = "scheduled_scrapes"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    scrape_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="weekly")
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    pause_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    notification_settings: Mapped[dict] = mapped_column(JSON, default=dict)
    credits_per_run: Mapped[float] = mapped_column(Float, default=1.0)
    total_credits_spent: Mapped[float] = mapped_column(Float, default=0.0)
    total_runs: Mapped[int] = mapped_column(Integer, default=0)
    successful_runs: Mapped[int] = mapped_column(Integer, default=0)
    failed_runs: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    executions: Mapped[list["ScheduledScrapeExecution"]] = relationship(
        back_populates="scheduled_scrape", cascade="all, delete-orphan", passive_deletes=True
    )
    notifications: Mapped[list["ScheduledScrapeNotification"]] = relationship(
        back_populates="scheduled_scrape", cascade="all, delete-orphan", passive_deletes=True
    )


class ScheduledScrapeExecution(Base):
    __tablename__ = "scheduled_scrape_executions"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    scheduled_scrape_id: Mapped[str] = mapped_column(
        ForeignKey("scheduled_scrapes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    items_scraped: Mapped[int] = mapped_column(Integer, default=0)
    credits_used: Mapped[float] = mapped_column(Float, default=0.0)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    changes_detected: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    scheduled_scrape: Mapped["ScheduledScrape"] = relationship(back_populates="executions")
    changes: Mapped[list["ScheduledScrapeChange"]] = relationship(
        back_populates="execution", cascade="all, delete-orphan", passive_deletes=True
    )


class ScheduledScrapeChange(Base):
    __tablename__ = "scheduled_scrape_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    execution_id: Mapped[str] = mapped_column(
        ForeignKey("scheduled_scrape_executions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    change_type: Mapped[str] = mapped_column(String(50), nullable=False)
    change_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    extra: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    execution: Mapped["ScheduledScrapeExecution"] = relationship(back_populates="changes")


class ScheduledScrapeNotification(Base):
    __tablename__ = "scheduled_scrape_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scheduled_scrape_id: Mapped[str] = mapped_column(
        ForeignKey("scheduled_scrapes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    execution_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    recipient: Mapped[str | None] = mapped_column(String(200), nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    scheduled_scrape: Mapped["ScheduledScrape"] = relationship(back_populates="notifications")
