"""End-to-end tests for cost estimates, the pack catalog, credits and health."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers, make_user
from easyscrapy.models import User


@pytest.mark.e2e
class TestEstimates:
    async def test_marketplace_anonymous(self, client: AsyncClient) -> None:
        resp = await client.post("/api/estimate/marketplace", json={"itemCount": 10})
        assert resp.status_code == 200
        data = resp.json()
        assert data["totalCost"] == 5.0
        assert data["hasEnough"] is False
        assert data["shortfall"] == 5.0
        assert data["breakdown"][0]["quantity"] == 10

    async def test_marketplace_with_balance(self, client: AsyncClient, db: AsyncSession) -> None:
        rich = await make_user(db, "rich@example.com", credits=12.0)
        data = (await client.post(
            "/api/estimate/marketplace", json={"itemCount": 10}, headers=auth_headers(rich)
        )).json()
        assert data["hasEnough"] is True
        assert data["balanceAfter"] == 7.0

    async def test_zero_count_is_rejected(self, client: AsyncClient) -> None:
        resp = await client.post("/api/estimate/marketplace", json={"itemCount": 0})
        assert resp.status_code == 400

    async def test_ai_analysis_multiplier(self, client: AsyncClient) -> None:
        base = (await client.post("/api/estimate/ai-analysis", json={"pageCount": 1, "postsPerPage": 20})).json()
        pro = (await client.post(
            "/api/estimate/ai-analysis",
            json={"pageCount": 1, "postsPerPage": 20, "modelId": "google/gemini-2.5-pro"},
        )).json()
        assert base["totalCost"] == 3.0
        assert pro["totalCost"] == 9.0

    async def test_unknown_simple_service(self, client: AsyncClient) -> None:
        resp = await client.post("/api/estimate/simple", json={"serviceType": "tiktok", "quantity": 3})
        assert resp.status_code == 400

    async def test_models(self, client: AsyncClient) -> None:
        data = (await client.get("/api/estimate/models")).json()
        assert data["default"] == "google/gemini-2.5-flash"
        assert data["default"] in [m["id"] for m in data["models"]]


@pytest.mark.e2e
class TestCatalogAndCredits:
    async def test_health(self, client: AsyncClient) -> None:
        assert (await client.get("/health")).json() == {"status": "ok"}

    async def test_packs(self, client: AsyncClient, packs) -> None:
        data = (await client.get("/api/packs")).json()
        assert [p["id"] for p in data["packs"]] == ["pack-starter", "pack-pro", "pack-business"]
        assert (await client.get("/api/packs/pack-pro")).json()["nbDownloads"] == 750
        assert (await client.get("/api/packs/pack-nope")).status_code == 404

    async def test_balance_and_history(self, client: AsyncClient, user: User, admin: User) -> None:
        await client.post(
            f"/api/admin/users/{user.id}/credits", json={"amount": 8, "reason": "Bienvenue"},
            headers=auth_headers(admin),
        )
        balance = (await client.get("/api/credits/balance", headers=auth_headers(user))).json()
        assert balance["balance"] == 8.0

        history = (await client.get("/api/credits/history", headers=auth_headers(user))).json()
        assert history["total"] == 1
        assert history["transactions"][0]["amount"] == 8.0
        assert history["transactions"][0]["balanceAfter"] == 8.0
