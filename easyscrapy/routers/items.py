"""Scraped item routes: filtered listing, favorites and notes."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from easyscrapy.db.session import get_db
from easyscrapy.models.stored_item import StoredItem
from easyscrapy.models.user import User
from easyscrapy.schemas.items import ItemUpdate
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.item_service import ItemFilters, list_items, update_item

router = APIRouter(prefix="/api/items", tags=["items"])


def item_to_dict(item: StoredItem) -> dict:
    return {
        "id": item.id,
        "sessionId": item.session_id,
        "itemType": item.item_type,
        "externalId": item.external_id,
        "title": item.title,
        "price": item.price,
        "priceAmount": item.price_amount,
        "currency": item.currency,
        "description": item.description,
        "location": item.location,
        "url": item.url,
        "imageUrl": item.image_url,
        "images": item.images or [],
        "postedAt": item.posted_at,
        "isFavorite": item.is_favorite,
        "userNotes": item.user_notes,
        "position": item.position,
        "createdAt": item.created_at.isoformat() if item.created_at else None,
    }


@router.get("")
async def items(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = None,
    min_price: float | None = Query(None, alias="minPrice"),
    max_price: float | None = Query(None, alias="maxPrice"),
    location: str | None = None,
    item_type: str | None = Query(None, alias="itemType"),
    is_favorite: bool | None = Query(None, alias="isFavorite"),
    session_id: str | None = Query(None, alias="sessionId"),
    sort_by: Literal["created_at", "price", "title", "position"] = Query("created_at", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = ItemFilters(
        page=page,
        limit=limit,
        search=search,
        min_price=min_price,
        max_price=max_price,
        location=location,
        item_type=item_type,
        is_favorite=is_favorite,
        session_id=session_id,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = await list_items(db, user.id, filters)
    result["items"] = [item_to_dict(i) for i in result["items"]]
    return result


@router.patch("/{item_id}")
async def patch_item(
    item_id: int,
    body: ItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await update_item(db, user.id, item_id, is_favorite=body.is_favorite, user_notes=body.user_notes)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item_to_dict(item)
