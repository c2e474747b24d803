"""End-to-end tests for session listing, the paid download gate and credit unlock."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers, make_session, make_user
from easyscrapy.models import Download, SessionStatus, User
from easyscrapy.services import credit_service

TOKEN = "t" * 40


def _download(session_id: str, token: str | None = TOKEN, fmt: str = "csv") -> str:
    url = f"/api/sessions/{session_id}/download?format={fmt}"
    return f"{url}&token={token}" if token else url


@pytest.mark.e2e
class TestDownloadGate:
    async def test_unknown_session(self, client: AsyncClient) -> None:
        assert (await client.get(_download("sess_missing"))).status_code == 404

    async def test_wrong_or_missing_token(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        assert (await client.get(_download("sess_test", token="x" * 40))).status_code == 403
        assert (await client.get(_download("sess_test", token=None))).status_code == 403

    async def test_unpaid(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=False, download_token=TOKEN)
        assert (await client.get(_download("sess_test"))).status_code == 402

    async def test_not_completed(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, status=SessionStatus.RUNNING, is_paid=True, download_token=TOKEN)
        assert (await client.get(_download("sess_test"))).status_code == 409

    async def test_expired(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN, expires_in_days=-1)
        assert (await client.get(_download("sess_test"))).status_code == 410

    async def test_bad_format(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        assert (await client.get(_download("sess_test", fmt="pdf"))).status_code == 400

    async def test_csv_download(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        resp = await client.get(_download("sess_test"))

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="EasyScrapy_sess_test.csv"' in resp.headers["content-disposition"]
        text = resp.content.decode("utf-8-sig")
        assert "Annonce 0" in text
        assert "Annonce 1" in text
        assert await db.scalar(select(func.count(Download.id))) == 1

    async def test_token_header(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        resp = await client.get(
            _download("sess_test", token=None, fmt="excel"), headers={"x-session-token": TOKEN}
        )
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].endswith('.xlsx"')


@pytest.mark.e2e
class TestUnlock:
    async def test_insufficient_credits(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        resp = await client.post("/api/sessions/sess_test/unlock", headers=auth_headers(user))
        assert resp.status_code == 402

    async def test_unlock_then_conflict(self, client: AsyncClient, db: AsyncSession) -> None:
        rich = await make_user(db, "rich@example.com", credits=10.0)
        await make_session(db, rich)

        resp = await client.post("/api/sessions/sess_test/unlock", headers=auth_headers(rich))
        assert resp.status_code == 200
        data = resp.json()
        assert data["creditsCharged"] == 1.0
        assert len(data["downloadToken"]) == 40
        assert await credit_service.get_balance(db, rich.id) == 9.0

        download = await client.get(_download("sess_test", token=data["downloadToken"]))
        assert download.status_code == 200

        again = await client.post("/api/sessions/sess_test/unlock", headers=auth_headers(rich))
        assert again.status_code == 409
        assert await credit_service.get_balance(db, rich.id) == 9.0

    async def test_running_session_cannot_be_unlocked(self, client: AsyncClient, db: AsyncSession) -> None:
        rich = await make_user(db, "rich@example.com", credits=10.0)
        await make_session(db, rich, status=SessionStatus.RUNNING)
        resp = await client.post("/api/sessions/sess_test/unlock", headers=auth_headers(rich))
        assert resp.status_code == 409

    async def test_other_users_session(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        other = await make_user(db, "other@example.com", credits=10.0)
        resp = await client.post("/api/sessions/sess_test/unlock", headers=auth_headers(other))
        assert resp.status_code == 404


@pytest.mark.e2e
class TestSessionListing:
    async def test_list_and_detail(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        await make_session(db, None, session_id="sess_anonymous")

        listing = await client.get("/api/sessions", headers=auth_headers(user))
        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert listing.json()["sessions"][0]["id"] == "sess_test"

        detail = await client.get("/api/sessions/sess_test", headers=auth_headers(user))
        assert detail.json()["unlockCost"] == 1.0
        assert detail.json()["downloadUrl"] is None

    async def test_detail_is_private(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        other = await make_user(db, "other@example.com")
        resp = await client.get("/api/sessions/sess_test", headers=auth_headers(other))
        assert resp.status_code == 404

    async def test_verify_payment(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        resp = await client.get("/api/sessions/sess_test/verify-payment")
        assert resp.status_code == 200
        assert resp.json()["isPaid"] is True


@pytest.mark.e2e
class TestBenchmarkRoute:
    async def test_unknown_session(self, client: AsyncClient, user: User) -> None:
        resp = await client.post("/api/sessions/sess_missing/benchmark", headers=auth_headers(user))
        assert resp.status_code == 404

    async def test_requires_paid_session(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user)
        resp = await client.post("/api/sessions/sess_test/benchmark", headers=auth_headers(user))
        assert resp.status_code == 402

    async def test_marketplace_session_is_rejected(self, client: AsyncClient, db: AsyncSession, user: User) -> None:
        await make_session(db, user, is_paid=True, download_token=TOKEN)
        resp = await client.post(
            "/api/sessions/sess_test/benchmark", json={"modelId": None}, headers=auth_headers(user)
        )
        assert resp.status_code == 400
        assert "pages Facebook" in resp.json()["detail"]
