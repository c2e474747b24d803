"""Scrape orchestration: start actor runs and reconcile session status with them.

Marketplace sessions own a single actor run. Facebook page sessions fan out
into sub-runs (page info, posts, then comments on the scraped posts) tracked
in ``ScrapingSession.sub_runs``; the session completes once every sub-run has
reached a terminal status.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from easyscrapy.constants import (
    ACTOR_FAILED_STATUSES,
    DEFAULT_COMMENTS_PER_POST,
    DEFAULT_POSTS_PER_PAGE,
    FACEBOOK_PAGE_URL_PATTERN,
    MARKETPLACE_URL_PATTERN,
    MAX_COMMENTED_POSTS,
    MAX_PAGE_URLS,
    MAX_RESULTS_LIMIT,
    PAGE_ITEM_TYPES,
    PREVIEW_ITEMS_COUNT,
)
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.services.actor_client import ActorClient, ActorClientError, ActorRun, RunStatus
from easyscrapy.services.item_normalizer import ScrapedItem, normalize_item, normalize_items
from easyscrapy.services.item_service import save_items
from easyscrapy.services.page_tracking_service import filter_new_posts, normalize_page_url
from easyscrapy.services.session_service import SessionRepository

logger = logging.getLogger(__name__)

_URL_PATTERNS = {
    ScrapeType.MARKETPLACE: re.compile(MARKETPLACE_URL_PATTERN),
    ScrapeType.FACEBOOK_PAGES: re.compile(FACEBOOK_PAGE_URL_PATTERN),
}
ITEM_TYPES = {
    ScrapeType.MARKETPLACE: "marketplace",
    ScrapeType.FACEBOOK_PAGES: "post",
}
_DONE_STATUSES = {"SUCCEEDED", "SKIPPED"} | ACTOR_FAILED_STATUSES


class InvalidScrapeUrlError(ValueError):
    """Raised when the URL does not match the pattern expected for the scrape type."""


class ScrapeStartError(Exception):
    """Raised when the actor run could not be started; the session is already marked failed."""

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        super().__init__(message)


def validate_scrape_url(url: str, scrape_type: str) -> None:
    pattern = _URL_PATTERNS.get(scrape_type)
    if pattern is None:
        raise InvalidScrapeUrlError(f"Unsupported scrape type: {scrape_type}")
    if not url or not pattern.match(url.strip()):
        if scrape_type == ScrapeType.MARKETPLACE:
            raise InvalidScrapeUrlError("URL invalide : une URL Facebook Marketplace est attendue")
        raise InvalidScrapeUrlError("URL invalide : une URL de page Facebook est attendue")


class ActiveExtractionError(Exception):
    """Raised when the user already has a page extraction pending or running."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Une extraction Facebook Pages est déjà en cours.")


@dataclass
class PageExtractionOptions:
    extract_info: bool = True
    extract_posts: bool = True
    extract_comments: bool = False
    posts_limit: int = DEFAULT_POSTS_PER_PAGE
    comments_limit: int = DEFAULT_COMMENTS_PER_POST
    date_from: str | None = None
    date_to: str | None = None
    incremental_mode: bool = False

    def to_config(self) -> dict[str, Any]:
        return {
            "extractInfo": self.extract_info,
            "extractPosts": self.extract_posts,
            "extractComments": self.extract_comments,
            "postsLimit": self.posts_limit,
            "commentsLimit": self.comments_limit,
            "dateFrom": self.date_from,
            "dateTo": self.date_to,
            "incrementalMode": self.incremental_mode,
        }


def _clean_page_urls(urls: list[str]) -> list[str]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for url in urls:
        url = (url or "").strip()
        validate_scrape_url(url, ScrapeType.FACEBOOK_PAGES)
        key = normalize_page_url(url)
        if key not in seen:
            seen.add(key)
            cleaned.append(url)
    if not cleaned:
        raise ValueError("Au moins une URL de page Facebook est requise")
    if len(cleaned) > MAX_PAGE_URLS:
        raise ValueError(f"Maximum {MAX_PAGE_URLS} pages par extraction")
    return cleaned


def _check_page_options(options: PageExtractionOptions) -> None:
    if not (options.extract_info or options.extract_posts):
        raise ValueError("Sélectionnez au moins les informations ou les posts des pages")
    if options.extract_comments and not options.extract_posts:
        raise ValueError("L'extraction des commentaires nécessite l'extraction des posts")
    if options.posts_limit < 1 or options.posts_limit > MAX_RESULTS_LIMIT:
        raise ValueError(f"postsLimit must be between 1 and {MAX_RESULTS_LIMIT}")
    if options.comments_limit < 1 or options.comments_limit > MAX_RESULTS_LIMIT:
        raise ValueError(f"commentsLimit must be between 1 and {MAX_RESULTS_LIMIT}")


def _sub_run(kind: str, run: ActorRun | None = None, error: str | None = None) -> dict[str, Any]:
    if run is None:
        return {"kind": kind, "runId": None, "datasetId": None, "status": "FAILED", "error": error}
    return {"kind": kind, "runId": run.run_id, "datasetId": run.dataset_id, "status": run.status}


async def start_page_scrape(
    repo: SessionRepository,
    actor: ActorClient,
    *,
    user: User,
    urls: list[str],
    options: PageExtractionOptions | None = None,
    pack_id: str | None = None,
    exclusive: bool = True,
) -> ScrapingSession:
    """Create a page extraction session and start its info and posts runs.

    Comments are scraped in a second stage, once the posts run has succeeded
    (see ``refresh_session``). With ``exclusive`` a user can only have one page
    extraction pending or running at a time.
    """
    options = options or PageExtractionOptions()
    page_urls = _clean_page_urls(urls)
    _check_page_options(options)

    if exclusive:
        active = await repo.get_active_page_session(user.id)
        if active is not None:
            raise ActiveExtractionError(active.id)

    session = await repo.create(
        user_id=user.id,
        url=page_urls[0],
        scrape_type=ScrapeType.FACEBOOK_PAGES,
        results_limit=options.posts_limit,
        pack_id=pack_id,
        page_urls=page_urls,
        extraction_config=options.to_config(),
    )

    kinds = [kind for kind, wanted in (("posts", options.extract_posts), ("info", options.extract_info)) if wanted]
    sub_runs: list[dict[str, Any]] = []
    for kind in kinds:
        try:
            run = await actor.start_page_run(
                session.id, kind, page_urls,
                results_limit=options.posts_limit if kind == "posts" else None,
                date_from=options.date_from,
                date_to=options.date_to,
            )
        except ActorClientError as e:
            logger.error("Page %s run failed to start for session %s: %s", kind, session.id, e)
            sub_runs.append(_sub_run(kind, error=str(e)))
            continue
        sub_runs.append(_sub_run(kind, run))

    session.sub_runs = sub_runs
    started = [r for r in sub_runs if r["runId"]]
    if not started:
        message = "; ".join(r["error"] for r in sub_runs if r.get("error"))
        await repo.mark_failed(session, f"Failed to start actor run: {message}")
        raise ScrapeStartError(session.id, message)

    primary = started[0]
    return await repo.mark_running(session, primary["runId"], primary["datasetId"])


async def start_scrape(
    repo: SessionRepository,
    actor: ActorClient,
    *,
    user: User | None,
    url: str,
    scrape_type: str = ScrapeType.MARKETPLACE,
    results_limit: int = 3,
    pack_id: str | None = None,
    is_trial: bool = False,
) -> ScrapingSession:
    """Create a pending session and start its actor run (pending -> running).

    Page scrapes of a single URL are delegated to ``start_page_scrape`` with
    the default extraction options.
    """
    validate_scrape_url(url, scrape_type)
    if results_limit < 1 or results_limit > MAX_RESULTS_LIMIT:
        raise ValueError(f"resultsLimit must be between 1 and {MAX_RESULTS_LIMIT}")
    if scrape_type == ScrapeType.FACEBOOK_PAGES:
        if user is None:
            raise ValueError("Facebook page extraction requires an account")
        return await start_page_scrape(
            repo, actor, user=user, urls=[url], options=PageExtractionOptions(posts_limit=results_limit),
            pack_id=pack_id,
        )

    session = await repo.create(
        user_id=user.id if user else None,
        url=url.strip(),
        scrape_type=scrape_type,
        results_limit=results_limit,
        pack_id=pack_id,
        is_trial=is_trial,
    )

    try:
        run = await actor.start_run(session.id, session.url, scrape_type, results_limit)
    except ActorClientError as e:
        await repo.mark_failed(session, f"Failed to start actor run: {e}")
        raise ScrapeStartError(session.id, str(e)) from e

    return await repo.mark_running(session, run.run_id, run.dataset_id)


async def refresh_session(repo: SessionRepository, actor: ActorClient, session: ScrapingSession) -> RunStatus:
    """Poll the actor run(s) of a running session and apply any terminal transition.

    Returns the observed run status. Sessions that are not running are reported
    from their stored state without contacting the actor platform.
    """
    if session.status != SessionStatus.RUNNING:
        return _stored_status(session)
    if session.sub_runs:
        return await _refresh_page_session(repo, actor, session)
    if not session.actor_run_id:
        await repo.mark_failed(session, "Session has no actor run")
        return _stored_status(session)

    run_status = await actor.get_run_status(session.actor_run_id)

    if run_status.status == "SUCCEEDED":
        await _complete_session(repo, actor, session, run_status)
    elif run_status.status in ACTOR_FAILED_STATUSES:
        # Re-read under lock: a concurrent webhook may already have finished it
        locked = await repo.get(session.id, for_update=True)
        if locked and locked.status == SessionStatus.RUNNING:
            detail = f" ({run_status.error})" if run_status.error else ""
            await repo.mark_failed(locked, f"Actor run ended with status {run_status.status}{detail}")
            await _notify_schedule(repo, locked)
    return run_status


async def _complete_session(
    repo: SessionRepository, actor: ActorClient, session: ScrapingSession, run_status: RunStatus
) -> None:
    locked = await repo.get(session.id, for_update=True)
    if locked is None or locked.status != SessionStatus.RUNNING:
        return
    dataset_id = locked.dataset_id or run_status.dataset_id

    try:
        raw_items = await actor.get_dataset_items(dataset_id)
    except ActorClientError as e:
        await repo.mark_failed(locked, f"Failed to fetch dataset: {e}")
        await _notify_schedule(repo, locked)
        return

    items = normalize_items(raw_items, ITEM_TYPES.get(locked.scrape_type, "marketplace"))
    raw_by_item = [raw for raw in raw_items if isinstance(raw, dict)]
    await save_items(repo.db, locked.id, locked.user_id, items, raw_by_item)
    preview = [item.to_preview() for item in items[:PREVIEW_ITEMS_COUNT]]
    await repo.mark_completed(locked, preview, len(items))
    await _notify_schedule(repo, locked)


def _run_done(run: dict[str, Any]) -> bool:
    return run["status"] in _DONE_STATUSES


async def _refresh_page_session(
    repo: SessionRepository, actor: ActorClient, session: ScrapingSession
) -> RunStatus:
    sub_runs = [dict(run) for run in session.sub_runs or []]
    progress: list[int] = []
    for run in sub_runs:
        if _run_done(run):
            progress.append(100)
            continue
        status = await actor.get_run_status(run["runId"])
        run["status"] = status.status
        if status.dataset_id:
            run["datasetId"] = status.dataset_id
        progress.append(100 if _run_done(run) else status.progress)

    config = session.extraction_config or {}
    kinds = {run["kind"]: run for run in sub_runs}
    posts_run = kinds.get("posts")
    if config.get("extractComments") and "comments" not in kinds and posts_run and posts_run["status"] == "SUCCEEDED":
        comments_run = await _start_comments_run(actor, session, posts_run, int(config.get("commentsLimit") or 0))
        sub_runs.append(comments_run)
        progress.append(100 if _run_done(comments_run) else 0)

    session.sub_runs = sub_runs
    await repo.db.commit()

    if not all(_run_done(run) for run in sub_runs):
        return RunStatus(
            status="RUNNING",
            progress=min(99, sum(progress) // max(1, len(progress))),
            dataset_id=session.dataset_id,
        )
    await _complete_page_session(repo, actor, session)
    return _stored_status(session)


async def _start_comments_run(
    actor: ActorClient, session: ScrapingSession, posts_run: dict[str, Any], comments_limit: int
) -> dict[str, Any]:
    try:
        raw_posts = await actor.get_dataset_items(posts_run["datasetId"])
    except ActorClientError as e:
        return _sub_run("comments", error=str(e))
    post_urls: list[str] = []
    for raw in raw_posts:
        url = (raw.get("url") or raw.get("postUrl")) if isinstance(raw, dict) else None
        if url and url not in post_urls:
            post_urls.append(url)
    if not post_urls:
        return {"kind": "comments", "runId": None, "datasetId": None, "status": "SKIPPED"}

    try:
        run = await actor.start_page_run(
            session.id, "comments", post_urls[:MAX_COMMENTED_POSTS],
            results_limit=comments_limit or DEFAULT_COMMENTS_PER_POST,
        )
    except ActorClientError as e:
        logger.error("Comments run failed to start for session %s: %s", session.id, e)
        return _sub_run("comments", error=str(e))
    logger.info("Comments run started for session %s on %d posts", session.id, min(len(post_urls), MAX_COMMENTED_POSTS))
    return _sub_run("comments", run)


async def _complete_page_session(repo: SessionRepository, actor: ActorClient, session: ScrapingSession) -> None:
    locked = await repo.get(session.id, for_update=True)
    if locked is None or locked.status != SessionStatus.RUNNING:
        return
    succeeded = [run for run in locked.sub_runs or [] if run["status"] == "SUCCEEDED"]
    if not succeeded:
        statuses = ", ".join(f"{run['kind']}={run['status']}" for run in locked.sub_runs or [])
        await repo.mark_failed(locked, f"Actor runs ended without success ({statuses})")
        await _notify_schedule(repo, locked)
        return

    by_kind: dict[str, list[tuple[dict[str, Any], ScrapedItem]]] = {}
    for run in succeeded:
        try:
            raw_items = await actor.get_dataset_items(run["datasetId"])
        except ActorClientError as e:
            await repo.mark_failed(locked, f"Failed to fetch dataset: {e}")
            await _notify_schedule(repo, locked)
            return
        item_type = PAGE_ITEM_TYPES[run["kind"]]
        rows = [raw for raw in raw_items if isinstance(raw, dict)]
        by_kind[run["kind"]] = [(raw, normalize_item(raw, item_type)) for raw in rows]

    if (locked.extraction_config or {}).get("incrementalMode") and locked.user_id and by_kind.get("posts"):
        by_kind["posts"] = await _keep_new_posts(repo, locked, by_kind["posts"])

    pairs = by_kind.get("info", []) + by_kind.get("posts", []) + by_kind.get("comments", [])
    raws = [raw for raw, _ in pairs]
    items = [item for _, item in pairs]
    await save_items(repo.db, locked.id, locked.user_id, items, raws)

    locked.item_counts = {
        "pages": len(locked.page_urls or [locked.url]),
        "pageInfo": len(by_kind.get("info", [])),
        "posts": len(by_kind.get("posts", [])),
        "comments": len(by_kind.get("comments", [])),
    }
    preview_source = [item for _, item in by_kind.get("posts", [])] or items
    preview = [item.to_preview() for item in preview_source[:PREVIEW_ITEMS_COUNT]]
    await repo.mark_completed(locked, preview, len(items))
    await _notify_schedule(repo, locked)


async def _keep_new_posts(
    repo: SessionRepository, session: ScrapingSession, pairs: list[tuple[dict[str, Any], ScrapedItem]]
) -> list[tuple[dict[str, Any], ScrapedItem]]:
    """Drop posts already delivered for the same (user, page) in earlier sessions."""
    page_urls = session.page_urls or [session.url]
    known = {normalize_page_url(url): url for url in page_urls}
    groups: dict[str, list[tuple[dict[str, Any], ScrapedItem]]] = {}
    for raw, item in pairs:
        source = raw.get("facebookUrl") or raw.get("pageUrl") or ""
        page_url = known.get(normalize_page_url(source), page_urls[0])
        groups.setdefault(page_url, []).append((raw, item))

    kept: list[tuple[dict[str, Any], ScrapedItem]] = []
    for page_url, group in groups.items():
        new_items = await filter_new_posts(repo.db, session.user_id, page_url, [item for _, item in group], session.id)
        new_ids = {id(item) for item in new_items}
        kept.extend(pair for pair in group if id(pair[1]) in new_ids)
    return kept


async def _notify_schedule(repo: SessionRepository, session: ScrapingSession) -> None:
    from easyscrapy.services.scheduled_scrape_service import on_session_finished

    await on_session_finished(repo.db, session)


def _stored_status(session: ScrapingSession) -> RunStatus:
    if session.status == SessionStatus.COMPLETED:
        return RunStatus(status="SUCCEEDED", progress=100, dataset_id=session.dataset_id)
    if session.status == SessionStatus.FAILED:
        return RunStatus(status="FAILED", progress=0, dataset_id=session.dataset_id, error=session.error_message)
    return RunStatus(status="READY", progress=0, dataset_id=session.dataset_id)


async def refresh_running_sessions(repo: SessionRepository, actor: ActorClient) -> int:
    """Poll every running session once. Returns how many reached a terminal state."""
    finished = 0
    session_ids = [s.id for s in await repo.list_running()]
    for session_id in session_ids:
        session = await repo.get(session_id)
        if session is None:
            continue
        try:
            await refresh_session(repo, actor, session)
        except Exception:
            logger.error("Failed to refresh session %s", session_id, exc_info=True)
            await repo.db.rollback()
            continue
        if session.status != SessionStatus.RUNNING:
            finished += 1
    logger.info("Refreshed running sessions: %d finished", finished)
    return finished
