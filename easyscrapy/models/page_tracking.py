"""Facebook page tracking models: dedup bookkeeping for incremental page re-scrapes."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from easyscrapy_cli.utils import now_utc
from .base import Base


class FacebookPageTracking(Base):
    __tablename__ = "facebook_page_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    page_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    page_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_post_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_post_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_posts_scraped: Mapped[int] = mapped_column(Integer, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    __table_args__ = (
        UniqueConstraint("user_id", "page_url", name="uq_tracking_user_page"),
    )

    posts: Mapped[list["FacebookScrapedPost"]] = relationship(
        back_populates="tracking", cascade="all, delete-orphan", passive_deletes=True
    )


class FacebookScrapedPost(Base):
    __tablename__ = "facebook_scraped_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tracking_id: Mapped[int] = mapped_column(
        ForeignKey("facebook_page_tracking.id", ondelete="CASCADE"), nullable=False, index=True
    )
    post_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    post_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        UniqueConstraint("tracking_id", "post_id", name="uq_scraped_post"),
    )

    tracking: Mapped["FacebookPageTracking"] = relationship(back_populates="posts")
