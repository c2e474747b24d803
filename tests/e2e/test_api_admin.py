"""End-to-end tests for the admin endpoints and their two access paths."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers, make_session
from easyscrapy.models import User
from easyscrapy.services import credit_service

API_KEY = {"X-API-Key": "test-admin-key"}


@pytest.mark.e2e
class TestAdminAccess:
    async def test_anonymous_is_rejected(self, client: AsyncClient) -> None:
        assert (await client.get("/api/admin/stats")).status_code == 401

    async def test_regular_user_is_forbidden(self, client: AsyncClient, user: User) -> None:
        assert (await client.get("/api/admin/stats", headers=auth_headers(user))).status_code == 403

    async def test_wrong_api_key(self, client: AsyncClient) -> None:
        assert (await client.get("/api/admin/stats", headers={"X-API-Key": "nope"})).status_code == 401

    async def test_api_key_and_admin_user(self, client: AsyncClient, admin: User) -> None:
        assert (await client.get("/api/admin/stats", headers=API_KEY)).status_code == 200
        assert (await client.get("/api/admin/stats", headers=auth_headers(admin))).status_code == 200


@pytest.mark.e2e
class TestAdminOperations:
    async def test_stats(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token="t" * 40)
        stats = (await client.get("/api/admin/stats", headers=API_KEY)).json()
        assert stats["sessions"]["total"] == 1
        assert stats["sessions"]["paid"] == 1
        assert stats["users"]["total"] == 1

    async def test_adjust_credits(self, client: AsyncClient, db: AsyncSession, user: User, admin: User) -> None:
        resp = await client.post(
            f"/api/admin/users/{user.id}/credits",
            json={"amount": 25, "reason": "Geste commercial"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["balance"] == 25.0
        assert resp.json()["transaction"]["transactionType"] == "admin_adjustment"
        assert await credit_service.get_balance(db, user.id) == 25.0

        overdraw = await client.post(
            f"/api/admin/users/{user.id}/credits", json={"amount": -100, "reason": "Correction"}, headers=API_KEY
        )
        assert overdraw.status_code == 400
        assert await credit_service.get_balance(db, user.id) == 25.0

    async def test_adjust_unknown_user(self, client: AsyncClient) -> None:
        resp = await client.post("/api/admin/users/9999/credits", json={"amount": 5, "reason": "x"}, headers=API_KEY)
        assert resp.status_code == 404

    async def test_user_search_and_update(self, client: AsyncClient, user: User, admin: User) -> None:
        found = (await client.get("/api/admin/users?search=user@", headers=API_KEY)).json()
        assert [u["email"] for u in found["users"]] == [user.email]

        resp = await client.patch(f"/api/admin/users/{user.id}", json={"isActive": False}, headers=API_KEY)
        assert resp.status_code == 200
        assert resp.json()["isActive"] is False
        assert (await client.get("/api/auth/me", headers=auth_headers(user))).status_code == 401

    async def test_session_search(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        await make_session(db, user, session_id="sess_paid", is_paid=True, download_token="t" * 40)

        unpaid = (await client.get("/api/admin/sessions?isPaid=false", headers=API_KEY)).json()
        assert [s["id"] for s in unpaid["sessions"]] == ["sess_test"]
        detail = await client.get("/api/admin/sessions/sess_paid", headers=API_KEY)
        assert detail.json()["userId"] == user.id
        assert (await client.get("/api/admin/sessions/sess_nope", headers=API_KEY)).status_code == 404
