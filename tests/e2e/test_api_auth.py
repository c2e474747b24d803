"""End-to-end tests for signup, login and the account endpoints."""

import pytest
from httpx import AsyncClient

from conftest import TEST_PASSWORD, auth_headers
from easyscrapy.config import get_settings
from easyscrapy.models import User


@pytest.mark.e2e
class TestRegister:
    async def test_register_grants_trial_and_returns_token(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/auth/register",
            json={"email": "Nouveau@Example.com", "password": "motdepasse123", "name": "Rivo"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["user"]["email"] == "nouveau@example.com"
        assert data["user"]["creditsBalance"] == 4.0
        assert data["user"]["emailVerified"] is False
        assert data["token"]

        client.cookies.clear()
        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["name"] == "Rivo"

    async def test_duplicate_email(self, client: AsyncClient, user: User) -> None:
        resp = await client.post("/api/auth/register", json={"email": user.email, "password": "motdepasse123"})
        assert resp.status_code == 409

    async def test_trial_once_per_ip_behind_proxy(self, client: AsyncClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "trusted_proxy_ips", "127.0.0.1")
        headers = {"X-Forwarded-For": "41.188.10.20"}
        first = await client.post(
            "/api/auth/register", json={"email": "a@example.com", "password": "motdepasse123"}, headers=headers
        )
        second = await client.post(
            "/api/auth/register", json={"email": "b@example.com", "password": "motdepasse123"}, headers=headers
        )
        assert first.json()["user"]["creditsBalance"] == 4.0
        assert second.status_code == 201
        assert second.json()["user"]["creditsBalance"] == 0.0

        other_client = await client.post(
            "/api/auth/register", json={"email": "c@example.com", "password": "motdepasse123"},
            headers={"X-Forwarded-For": "41.188.10.99, 127.0.0.1"},
        )
        assert other_client.json()["user"]["creditsBalance"] == 4.0

    async def test_forwarded_header_ignored_without_trusted_proxy(self, client: AsyncClient) -> None:
        headers = {"X-Forwarded-For": "41.188.10.20"}
        first = await client.post(
            "/api/auth/register", json={"email": "a@example.com", "password": "motdepasse123"}, headers=headers
        )
        second = await client.post(
            "/api/auth/register", json={"email": "b@example.com", "password": "motdepasse123"}, headers=headers
        )
        # Both signups are attributed to the local peer, which is exempt from the one-trial-per-IP rule
        assert first.json()["user"]["creditsBalance"] == 4.0
        assert second.json()["user"]["creditsBalance"] == 4.0

    async def test_validation(self, client: AsyncClient) -> None:
        short = await client.post("/api/auth/register", json={"email": "c@example.com", "password": "court"})
        assert short.status_code == 422
        bad_email = await client.post("/api/auth/register", json={"email": "pas-un-email", "password": "motdepasse123"})
        assert bad_email.status_code == 422


@pytest.mark.e2e
class TestLogin:
    async def test_login(self, client: AsyncClient, user: User) -> None:
        resp = await client.post("/api/auth/login", json={"email": user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user.id
        assert resp.json()["token"]
        assert "easyscrapy_session=" in resp.headers["set-cookie"]
        assert "httponly" in resp.headers["set-cookie"].lower()

    async def test_wrong_password(self, client: AsyncClient, user: User) -> None:
        resp = await client.post("/api/auth/login", json={"email": user.email, "password": "mauvais-mdp"})
        assert resp.status_code == 401

    async def test_me_requires_auth(self, client: AsyncClient) -> None:
        assert (await client.get("/api/auth/me")).status_code == 401
        garbage = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert garbage.status_code == 401

    async def test_me_with_bearer(self, client: AsyncClient, user: User) -> None:
        resp = await client.get("/api/auth/me", headers=auth_headers(user))
        assert resp.json()["email"] == user.email

    async def test_forgot_password_does_not_leak_accounts(self, client: AsyncClient, user: User) -> None:
        known = await client.post("/api/auth/forgot-password", json={"email": user.email})
        unknown = await client.post("/api/auth/forgot-password", json={"email": "inconnu@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"success": True}

    async def test_reset_with_bad_token(self, client: AsyncClient) -> None:
        resp = await client.post("/api/auth/reset-password", json={"token": "nope", "newPassword": "nouveau-mdp-1"})
        assert resp.status_code == 400
