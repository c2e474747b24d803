"""Scrape routes: start a session, poll its status, actor platform webhook."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from easyscrapy.config import get_settings
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession
from easyscrapy.models.user import User
from easyscrapy.schemas.scrape import ScrapeRequest
from easyscrapy.services.actor_client import ActorClient, ActorClientError, get_actor_client
from easyscrapy.services.auth_service import get_optional_user
from easyscrapy.services.scrape_service import (
    ActiveExtractionError,
    InvalidScrapeUrlError,
    PageExtractionOptions,
    ScrapeStartError,
    refresh_session,
    start_page_scrape,
    start_scrape,
)
from easyscrapy.services.session_service import SessionRepository, get_session_repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/scrape", tags=["scrape"])


def _check_owner(session: ScrapingSession | None, user: User | None) -> ScrapingSession:
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if session.user_id is not None and (user is None or user.id != session.user_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("", status_code=201)
async def create_scrape(
    body: ScrapeRequest,
    user: User | None = Depends(get_optional_user),
    repo: SessionRepository = Depends(get_session_repository),
    actor: ActorClient = Depends(get_actor_client),
):
    try:
        if body.scrape_type == ScrapeType.FACEBOOK_PAGES:
            if user is None:
                raise HTTPException(status_code=401, detail="Authentication required")
            session = await start_page_scrape(
                repo, actor,
                user=user,
                urls=body.page_urls(),
                options=PageExtractionOptions(
                    extract_info=body.extract_info,
                    extract_posts=body.extract_posts,
                    extract_comments=body.extract_comments,
                    posts_limit=body.posts_limit,
                    comments_limit=body.comments_limit,
                    date_from=body.date_from,
                    date_to=body.date_to,
                    incremental_mode=body.incremental_mode,
                ),
                pack_id=body.pack_id,
            )
        else:
            session = await start_scrape(
                repo, actor,
                user=user,
                url=body.url or "",
                scrape_type=body.scrape_type,
                results_limit=body.results_limit,
                pack_id=body.pack_id,
            )
    except ActiveExtractionError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "sessionId": e.session_id})
    except InvalidScrapeUrlError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScrapeStartError as e:
        raise HTTPException(status_code=502, detail=f"Could not start scraping: {e}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "sessionId": session.id,
        "status": session.status,
        "actorRunId": session.actor_run_id,
        "datasetId": session.dataset_id,
        "pageUrls": session.page_urls,
        "subRuns": session.sub_runs,
    }


@router.get("/{session_id}/status")
async def scrape_status(
    session_id: str,
    user: User | None = Depends(get_optional_user),
    repo: SessionRepository = Depends(get_session_repository),
    actor: ActorClient = Depends(get_actor_client),
):
    session = _check_owner(await repo.get(session_id), user)
    try:
        run_status = await refresh_session(repo, actor, session)
    except ActorClientError as e:
        raise HTTPException(status_code=502, detail=str(e))
    session = await repo.get(session_id)

    return {
        "sessionId": session.id,
        "status": session.status,
        "runStatus": run_status.status,
        "progress": run_status.progress,
        "previewItems": session.preview_items or [],
        "totalItems": session.total_items,
        "hasData": session.has_data,
        "isPaid": session.is_paid,
        "itemCounts": session.item_counts,
        "subRuns": session.sub_runs,
        "error": session.error_message,
    }


@router.post("/actor-webhook")
async def actor_webhook(
    request: Request,
    secret: str | None = Header(None, alias="x-actor-webhook-secret"),
    repo: SessionRepository = Depends(get_session_repository),
    actor: ActorClient = Depends(get_actor_client),
):
    """Run-finished notification from the actor platform. It only triggers a status poll."""
    expected = get_settings().actor_webhook_secret
    if not expected or not secret or not hmac.compare_digest(secret, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    session = None
    if body.get("sessionId"):
        session = await repo.get(body["sessionId"])
    run_id = (body.get("resource") or {}).get("id")
    if session is None and run_id:
        session = await repo.get_by_run_id(run_id)
    if session is None:
        logger.warning("Actor webhook for unknown session (run=%s)", run_id)
        return {"status": "ignored"}

    run_status = await refresh_session(repo, actor, session)
    logger.info("Actor webhook: session=%s run status=%s", session.id, run_status.status)
    return {"status": "ok", "sessionStatus": session.status}
