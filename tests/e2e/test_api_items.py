"""End-to-end tests for the scraped item listing, favorites and notes."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers, make_session, make_user
from easyscrapy.models import User


@pytest.mark.e2e
class TestItems:
    async def test_requires_auth(self, client: AsyncClient) -> None:
        assert (await client.get("/api/items")).status_code == 401

    async def test_listing_and_filters(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, total_items=3)
        headers = auth_headers(user)

        everything = (await client.get("/api/items", headers=headers)).json()
        assert everything["total"] == 3
        assert everything["totalPages"] == 1

        cheap = (await client.get("/api/items?maxPrice=2000&sortBy=price&sortOrder=asc", headers=headers)).json()
        assert [i["priceAmount"] for i in cheap["items"]] == [1000.0, 2000.0]

        searched = (await client.get("/api/items?search=annonce 2", headers=headers)).json()
        assert [i["title"] for i in searched["items"]] == ["Annonce 2"]

        paged = (await client.get("/api/items?limit=2&page=2&sortBy=position&sortOrder=asc", headers=headers)).json()
        assert [i["position"] for i in paged["items"]] == [2]
        assert paged["totalPages"] == 2

    async def test_items_are_private(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        other = await make_user(db, "other@example.com")
        assert (await client.get("/api/items", headers=auth_headers(other))).json()["total"] == 0

    async def test_favorite_and_notes(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        headers = auth_headers(user)
        item_id = (await client.get("/api/items", headers=headers)).json()["items"][0]["id"]

        resp = await client.patch(
            f"/api/items/{item_id}", json={"isFavorite": True, "userNotes": "Rappeler le vendeur"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["isFavorite"] is True
        assert resp.json()["userNotes"] == "Rappeler le vendeur"

        favorites = (await client.get("/api/items?isFavorite=true", headers=headers)).json()
        assert [i["id"] for i in favorites["items"]] == [item_id]

        notes_only = await client.patch(f"/api/items/{item_id}", json={"userNotes": "Vendu"}, headers=headers)
        assert notes_only.json()["isFavorite"] is True

    async def test_cannot_patch_foreign_item(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        item_id = (await client.get("/api/items", headers=auth_headers(user))).json()["items"][0]["id"]
        other = await make_user(db, "other@example.com")
        resp = await client.patch(f"/api/items/{item_id}", json={"isFavorite": True}, headers=auth_headers(other))
        assert resp.status_code == 404
