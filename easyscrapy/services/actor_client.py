"""Apify actor platform client: start runs, poll status, read datasets."""

import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from easyscrapy.config import get_settings
from easyscrapy.constants import (
    ACTOR_DATASET_TIMEOUT,
    ACTOR_EXPECTED_RUN_SECONDS,
    ACTOR_ITEMS_LIMIT,
    ACTOR_RUN_MEMORY_MB,
    ACTOR_START_TIMEOUT,
    ACTOR_WAIT_FOR_FINISH,
    ACTOR_WEBHOOK_EVENTS,
    PREVIEW_ITEMS_COUNT,
)
from easyscrapy.http_client import get_http_client
from easyscrapy.models.scraping_session import ScrapeType
from easyscrapy_cli.utils import now_utc, parse_timestamp

logger = logging.getLogger(__name__)


class ActorClientError(Exception):
    """Raised when the actor platform rejects a request or is unreachable."""


@dataclass
class ActorRun:
    run_id: str
    dataset_id: str
    status: str


@dataclass
class RunStatus:
    status: str
    progress: int
    dataset_id: str | None = None
    error: str | None = None


class ActorClient:
    """Thin async wrapper over the Apify v2 REST API."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        settings = get_settings()
        self.base_url = settings.apify_base_url.rstrip("/")
        self.token = settings.apify_token
        self.app_url = settings.app_url
        self.webhook_secret = settings.actor_webhook_secret
        self.actor_ids = {ScrapeType.MARKETPLACE: settings.apify_marketplace_actor_id}
        self.page_actor_ids = {
            "info": settings.apify_facebook_page_info_actor_id,
            "posts": settings.apify_facebook_pages_actor_id,
            "comments": settings.apify_facebook_comments_actor_id,
        }
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            raise ActorClientError("APIFY_TOKEN is not configured")
        return {"Authorization": f"Bearer {self.token}"}

    def _build_input(self, url: str, scrape_type: str, count: int) -> dict[str, Any]:
        return {
            "urls": [url],
            "count": count,
            "deepScrape": True,
            "strictFiltering": True,
            "proxy": {"useApifyProxy": True, "apifyProxyGroups": ["RESIDENTIAL"]},
        }

    def _build_page_input(
        self,
        kind: str,
        urls: list[str],
        results_limit: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        run_input: dict[str, Any] = {"startUrls": [{"url": url} for url in urls]}
        if kind == "posts":
            run_input["resultsLimit"] = results_limit
            run_input["captionText"] = True
            if date_from:
                run_input["onlyPostsNewerThan"] = date_from
            if date_to:
                run_input["onlyPostsOlderThan"] = date_to
        elif kind == "comments":
            run_input["resultsLimit"] = results_limit
            run_input["includeNestedComments"] = False
        return run_input

    def _build_webhooks(self, session_id: str, idempotency_key: str | None = None) -> str | None:
        """Ad-hoc run webhooks, base64 encoded as the API expects. Only public https endpoints."""
        if not self.app_url.lower().startswith("https://"):
            logger.warning("Skipping actor webhook registration: app_url %s is not https", self.app_url)
            return None

        webhook: dict[str, Any] = {
            "eventTypes": ACTOR_WEBHOOK_EVENTS,
            "requestUrl": f"{self.app_url.rstrip('/')}/api/scrape/actor-webhook",
            "payloadTemplate": (
                f'{{"sessionId":"{session_id}","resource":{{{{resource}}}},"eventData":{{{{eventData}}}}}}'
            ),
            "idempotencyKey": idempotency_key or session_id,
        }
        if self.webhook_secret:
            webhook["headersTemplate"] = json.dumps({"X-Actor-Webhook-Secret": self.webhook_secret})
        return base64.b64encode(json.dumps([webhook]).encode()).decode()

    async def start_run(self, session_id: str, url: str, scrape_type: str, count: int) -> ActorRun:
        actor_id = self.actor_ids.get(scrape_type)
        if not actor_id:
            raise ActorClientError(f"No actor configured for scrape type {scrape_type}")
        return await self._start(actor_id, session_id, self._build_input(url, scrape_type, count))

    async def start_page_run(
        self,
        session_id: str,
        kind: str,
        urls: list[str],
        *,
        results_limit: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> ActorRun:
        """Start one stage of a page extraction: ``info``, ``posts`` or ``comments``."""
        actor_id = self.page_actor_ids.get(kind)
        if not actor_id:
            raise ActorClientError(f"No actor configured for page run {kind}")
        run_input = self._build_page_input(kind, urls, results_limit, date_from, date_to)
        return await self._start(actor_id, session_id, run_input, idempotency_key=f"{session_id}:{kind}")

    async def _start(
        self, actor_id: str, session_id: str, run_input: dict[str, Any], idempotency_key: str | None = None
    ) -> ActorRun:
        params: dict[str, Any] = {
            "memory": ACTOR_RUN_MEMORY_MB,
            "build": "latest",
            "waitForFinish": ACTOR_WAIT_FOR_FINISH,
        }
        webhooks = self._build_webhooks(session_id, idempotency_key)
        if webhooks:
            params["webhooks"] = webhooks

        try:
            resp = await self.client.post(
                f"{self.base_url}/acts/{actor_id}/runs",
                params=params,
                json=run_input,
                headers=self._headers(),
                timeout=ACTOR_START_TIMEOUT + ACTOR_WAIT_FOR_FINISH,
            )
            resp.raise_for_status()
            data = resp.json().get("data") or {}
        except httpx.HTTPStatusError as e:
            logger.error("Actor start HTTP error: %s - %s", e.response.status_code, e.response.text[:500])
            raise ActorClientError(f"Actor start failed: HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error("Actor start timed out for session %s", session_id)
            raise ActorClientError("Le lancement du scraping a pris trop de temps. Veuillez réessayer.") from e
        except httpx.HTTPError as e:
            logger.error("Actor start error for session %s: %s", session_id, e)
            raise ActorClientError(f"Actor start failed: {e}") from e

        if not data.get("id") or not data.get("defaultDatasetId"):
            raise ActorClientError("Actor platform returned an incomplete run")

        logger.info(
            "Actor run started: session=%s run=%s dataset=%s status=%s",
            session_id, data["id"], data["defaultDatasetId"], data.get("status"),
        )
        return ActorRun(run_id=data["id"], dataset_id=data["defaultDatasetId"], status=data.get("status", "READY"))

    async def get_run_status(self, run_id: str) -> RunStatus:
        """Poll a run. Client failures are reported as status ERROR rather than raised."""
        try:
            resp = await self.client.get(
                f"{self.base_url}/actor-runs/{run_id}",
                headers=self._headers(),
                timeout=ACTOR_DATASET_TIMEOUT,
            )
            resp.raise_for_status()
            data = resp.json().get("data") or {}
        except (httpx.HTTPError, ActorClientError, ValueError) as e:
            logger.error("Failed to poll actor run %s: %s", run_id, e)
            return RunStatus(status="ERROR", progress=0, error=str(e))

        status = data.get("status", "UNKNOWN")
        return RunStatus(
            status=status,
            progress=self._progress(status, data.get("startedAt")),
            dataset_id=data.get("defaultDatasetId"),
        )

    @staticmethod
    def _progress(status: str, started_at: str | None, now: datetime | None = None) -> int:
        if status == "SUCCEEDED":
            return 100
        if status != "RUNNING":
            return 0
        started = parse_timestamp(started_at)
        if not started:
            return 0
        elapsed = ((now or now_utc()) - started).total_seconds()
        return max(0, min(99, int(elapsed / ACTOR_EXPECTED_RUN_SECONDS * 100)))

    async def get_dataset_items(self, dataset_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        params = {"clean": "true", "format": "json", "limit": limit or ACTOR_ITEMS_LIMIT}
        try:
            resp = await self.client.get(
                f"{self.base_url}/datasets/{dataset_id}/items",
                params=params,
                headers=self._headers(),
                timeout=ACTOR_DATASET_TIMEOUT,
            )
            resp.raise_for_status()
            items = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Dataset %s HTTP error: %s - %s", dataset_id, e.response.status_code, e.response.text[:500])
            raise ActorClientError(f"Dataset fetch failed: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Dataset %s fetch error: %s", dataset_id, e)
            raise ActorClientError(f"Dataset fetch failed: {e}") from e

        if not isinstance(items, list):
            raise ActorClientError("Dataset response is not a list")
        return items

    async def get_preview_items(self, dataset_id: str, count: int = PREVIEW_ITEMS_COUNT) -> list[dict[str, Any]]:
        return await self.get_dataset_items(dataset_id, limit=count)

    async def delete_dataset(self, dataset_id: str) -> None:
        try:
            resp = await self.client.delete(
                f"{self.base_url}/datasets/{dataset_id}",
                headers=self._headers(),
                timeout=ACTOR_DATASET_TIMEOUT,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to delete dataset %s: %s", dataset_id, e)
            raise ActorClientError(f"Dataset delete failed: {e}") from e
        logger.info("Dataset %s deleted", dataset_id)


def get_actor_client() -> ActorClient:
    """FastAPI dependency (overridable in tests)."""
    return ActorClient()
