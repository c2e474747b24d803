"""End-to-end tests for the scheduled scrape endpoints."""

import pytest
from httpx import AsyncClient

from conftest import MARKETPLACE_URL, auth_headers, make_user
from easyscrapy.models import User

BASE = "/api/scheduled-scrapes"


def _body(**overrides) -> dict:
    return {"name": "Vélos Tana", "targetUrl": MARKETPLACE_URL, "frequency": "daily", **overrides}


@pytest.mark.e2e
class TestScheduledScrapes:
    async def test_lifecycle(self, client: AsyncClient, user: User) -> None:
        headers = auth_headers(user)

        created = await client.post(BASE, json=_body(resultsLimit=10), headers=headers)
        assert created.status_code == 201
        schedule = created.json()
        assert schedule["creditsPerRun"] == 5.0
        assert schedule["notificationSettings"] == {"email": True, "onlyOnChanges": True}
        assert schedule["isPaused"] is False

        listing = (await client.get(BASE, headers=headers)).json()
        assert [s["id"] for s in listing["schedules"]] == [schedule["id"]]

        detail = (await client.get(f"{BASE}/{schedule['id']}", headers=headers)).json()
        assert detail["executions"] == []

        paused = await client.patch(f"{BASE}/{schedule['id']}/pause", json={"paused": True}, headers=headers)
        assert paused.json()["isPaused"] is True
        assert paused.json()["pauseReason"] == "user"

        resumed = await client.patch(f"{BASE}/{schedule['id']}/pause", json={"paused": False}, headers=headers)
        assert resumed.json()["isPaused"] is False

        assert (await client.delete(f"{BASE}/{schedule['id']}", headers=headers)).status_code == 204
        assert (await client.get(f"{BASE}/{schedule['id']}", headers=headers)).status_code == 404

    async def test_validation(self, client: AsyncClient, user: User) -> None:
        headers = auth_headers(user)
        bad_url = await client.post(BASE, json=_body(targetUrl="https://example.com/shop"), headers=headers)
        assert bad_url.status_code == 400
        bad_frequency = await client.post(BASE, json=_body(frequency="hourly"), headers=headers)
        assert bad_frequency.status_code == 422

    async def test_schedules_are_private(self, client: AsyncClient, db, user: User) -> None:
        schedule_id = (await client.post(BASE, json=_body(), headers=auth_headers(user))).json()["id"]
        other = await make_user(db, "other@example.com")
        resp = await client.delete(f"{BASE}/{schedule_id}", headers=auth_headers(other))
        assert resp.status_code == 404

    async def test_requires_auth(self, client: AsyncClient) -> None:
        assert (await client.post(BASE, json=_body())).status_code == 401
