"""Persisted scraped items: chunked inserts, filtered listing, favorites and notes."""

import logging
import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import asc, delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import DEFAULT_PAGE_SIZE, ITEM_INSERT_CHUNK, MAX_PAGE_SIZE
from easyscrapy.models.stored_item import StoredItem
from easyscrapy.services.item_normalizer import ScrapedItem

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": StoredItem.created_at,
    "price": StoredItem.price_amount,
    "title": StoredItem.title,
    "position": StoredItem.position,
}


@dataclass
class ItemFilters:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    search: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    location: str | None = None
    item_type: str | None = None
    is_favorite: bool | None = None
    session_id: str | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


async def save_items(
    db: AsyncSession,
    session_id: str,
    user_id: int | None,
    items: list[ScrapedItem],
    raw_items: list[dict[str, Any]] | None = None,
) -> int:
    """Replace the stored items of a session. Flushes per chunk; the caller commits."""
    await db.execute(delete(StoredItem).where(StoredItem.session_id == session_id))

    for start in range(0, len(items), ITEM_INSERT_CHUNK):
        chunk = items[start:start + ITEM_INSERT_CHUNK]
        db.add_all([
            StoredItem(
                session_id=session_id,
                user_id=user_id,
                item_type=item.item_type,
                external_id=item.external_id,
                title=item.title,
                price=item.price,
                price_amount=item.price_amount,
                currency=item.currency,
                description=item.description,
                location=item.location,
                url=item.url,
                image_url=item.image_url,
                images=list(item.images),
                posted_at=item.posted_at,
                raw_data=raw_items[start + offset] if raw_items else None,
                position=start + offset,
            )
            for offset, item in enumerate(chunk)
        ])
        await db.flush()

    logger.info("Stored %d items for session %s", len(items), session_id)
    return len(items)


async def get_session_items(db: AsyncSession, session_id: str) -> list[StoredItem]:
    result = await db.execute(
        select(StoredItem).where(StoredItem.session_id == session_id).order_by(StoredItem.position)
    )
    return list(result.scalars().all())


async def list_items(db: AsyncSession, user_id: int, filters: ItemFilters) -> dict[str, Any]:
    """Paginated listing of a user's items, shaped as {items, total, page, limit, totalPages}."""
    page = max(1, filters.page)
    limit = max(1, min(filters.limit, MAX_PAGE_SIZE))

    conditions = [StoredItem.user_id == user_id]
    if filters.session_id:
        conditions.append(StoredItem.session_id == filters.session_id)
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(or_(StoredItem.title.ilike(pattern), StoredItem.description.ilike(pattern)))
    if filters.min_price is not None:
        conditions.append(StoredItem.price_amount >= filters.min_price)
    if filters.max_price is not None:
        conditions.append(StoredItem.price_amount <= filters.max_price)
    if filters.location:
        conditions.append(StoredItem.location.ilike(f"%{filters.location}%"))
    if filters.item_type:
        conditions.append(StoredItem.item_type == filters.item_type)
    if filters.is_favorite is not None:
        conditions.append(StoredItem.is_favorite == filters.is_favorite)

    column = SORT_COLUMNS.get(filters.sort_by, StoredItem.created_at)
    order = asc(column) if filters.sort_order == "asc" else desc(column)

    total = await db.scalar(select(func.count(StoredItem.id)).where(*conditions)) or 0
    result = await db.execute(
        select(StoredItem)
        .where(*conditions)
        .order_by(order, StoredItem.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "items": list(result.scalars().all()),
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


async def update_item(
    db: AsyncSession,
    user_id: int,
    item_id: int,
    is_favorite: bool | None = None,
    user_notes: str | None = None,
) -> StoredItem | None:
    result = await db.execute(
        select(StoredItem).where(StoredItem.id == item_id, StoredItem.user_id == user_id)
    )
    item = result.scalar_one_or_none()
    if not item:
        return None
    if is_favorite is not None:
        item.is_favorite = is_favorite
    if user_notes is not None:
        item.user_notes = user_notes
    await db.commit()
    await db.refresh(item)
    return item
