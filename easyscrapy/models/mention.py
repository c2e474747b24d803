"""Brand monitoring models: watched keywords and the mentions detected in page posts and comments."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from easyscrapy_cli.utils import now_utc
from .base import Base


class BrandKeyword(Base):
    __tablename__ = "brand_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    keyword: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_alerts: Mapped[bool] = mapped_column(Boolean, default=True)
    mentions_count: Mapped[int] = mapped_column(Integer, default=0)
    last_mention_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        UniqueConstraint("user_id", "keyword", name="uq_brand_keyword_user"),
    )


class BrandMention(Base):
    __tablename__ = "brand_mentions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    brand_keywords: Mapped[list] = mapped_column(JSON, default=list)
    mention_type: Mapped[str] = mapped_column(String(20), nullable=False)  # recommendation|question|complaint
    confidence_score: Mapped[float] = mapped_column(Float, default=0.0)
    sentiment: Mapped[str] = mapped_column(String(10), default="neutral")
    sentiment_score: Mapped[float] = mapped_column(Float, default=50.0)
    priority_level: Mapped[str] = mapped_column(String(10), default="medium", index=True)
    suggested_response_time: Mapped[int] = mapped_column(Integer, default=60)  # minutes
    post_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    comment_likes: Mapped[int] = mapped_column(Integer, default=0)
    comment_posted_at: Mapped[str | None] = mapped_column(String(64), nullable=True)
    page_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    post_type: Mapped[str] = mapped_column(String(20), default="post")  # post|comment
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="new", index=True)  # new|resolved
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
