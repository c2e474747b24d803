"""Pack catalog routes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.db.session import get_db
from easyscrapy.models.pack import Pack
from easyscrapy.services.pack_service import get_pack, list_packs

router = APIRouter(prefix="/api/packs", tags=["packs"])


def pack_to_dict(pack: Pack) -> dict:
    return {
        "id": pack.id,
        "name": pack.name,
        "nbDownloads": pack.nb_downloads,
        "price": pack.price,
        "priceEur": pack.price_eur,
        "currency": pack.currency,
        "priceLabel": pack.price_label,
        "description": pack.description,
        "popular": pack.popular,
    }


@router.get("")
async def packs(db: AsyncSession = Depends(get_db)):
    return {"packs": [pack_to_dict(p) for p in await list_packs(db)]}


@router.get("/{pack_id}")
async def pack(pack_id: str, db: AsyncSession = Depends(get_db)):
    found = await get_pack(db, pack_id)
    if not found:
        raise HTTPException(status_code=404, detail="Pack not found")
    return pack_to_dict(found)
