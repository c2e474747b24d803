"""Pack catalog: listing and reseeding of the purchasable extraction packs."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.config import get_settings
from easyscrapy.models.pack import Pack

logger = logging.getLogger(__name__)

PACK_DEFINITIONS = [
    {
        "id": "pack-starter",
        "name": "Starter",
        "nb_downloads": 250,
        "price": 115000,
        "price_eur": 2500,
        "price_label": "25 €",
        "description": "250 extractions pour démarrer",
        "popular": False,
    },
    {
        "id": "pack-pro",
        "name": "Pro",
        "nb_downloads": 750,
        "price": 275000,
        "price_eur": 6000,
        "price_label": "60 €",
        "description": "750 extractions pour les professionnels",
        "popular": True,
    },
    {
        "id": "pack-business",
        "name": "Business",
        "nb_downloads": 2000,
        "price": 550000,
        "price_eur": 12000,
        "price_label": "120 €",
        "description": "2000 extractions pour les équipes",
        "popular": False,
    },
]


async def list_packs(db: AsyncSession) -> list[Pack]:
    result = await db.execute(select(Pack).order_by(Pack.price))
    return list(result.scalars().all())


async def get_pack(db: AsyncSession, pack_id: str) -> Pack | None:
    result = await db.execute(select(Pack).where(Pack.id == pack_id))
    return result.scalar_one_or_none()


async def seed_packs(db: AsyncSession) -> list[Pack]:
    """Delete every pack row, then insert the catalog. Running it twice yields the same rows."""
    price_ids = get_settings().pack_price_ids()

    await db.execute(delete(Pack))
    packs = []
    for definition in PACK_DEFINITIONS:
        eur_price_id, mga_price_id = price_ids.get(definition["id"], ("", ""))
        packs.append(Pack(
            **definition,
            currency="eur",
            stripe_price_id=eur_price_id,
            stripe_price_id_mga=mga_price_id or None,
        ))
    db.add_all(packs)
    await db.commit()

    logger.info("Seeded %d packs", len(packs))
    return packs
