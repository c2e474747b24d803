"""Unit tests for the pack catalog."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.services.pack_service import PACK_DEFINITIONS, get_pack, list_packs, seed_packs


@pytest.mark.unit
class TestPacks:
    async def test_seed_is_idempotent(self, db: AsyncSession) -> None:
        await seed_packs(db)
        await seed_packs(db)
        packs = await list_packs(db)
        assert [p.id for p in packs] == ["pack-starter", "pack-pro", "pack-business"]
        assert len(packs) == len(PACK_DEFINITIONS)

    async def test_pack_fields(self, db: AsyncSession) -> None:
        await seed_packs(db)
        pro = await get_pack(db, "pack-pro")
        assert pro.nb_downloads == 750
        assert pro.price_eur == 6000
        assert pro.popular is True
        assert pro.stripe_price_id == ""
        assert await get_pack(db, "pack-unknown") is None
