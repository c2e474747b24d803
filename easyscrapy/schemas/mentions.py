"""Brand mention schemas."""

from pydantic import Field

from .base import CamelModel


class KeywordList(CamelModel):
    keywords: list[str] = Field(..., max_length=100)


class KeywordCreate(CamelModel):
    keyword: str = Field(..., min_length=1, max_length=100)
    category: str = Field("custom", max_length=50)
    email_alerts: bool = True


class MentionResolve(CamelModel):
    notes: str | None = Field(default=None, max_length=2000)
