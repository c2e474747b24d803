"""Scraped item schemas."""

from pydantic import Field

from .base import CamelModel


class ItemUpdate(CamelModel):
    is_favorite: bool | None = None
    user_notes: str | None = Field(None, max_length=5000)
