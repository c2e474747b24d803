"""Scheduled scrapes: recurring runs driven by the worker cron, with change detection.

Frequencies are fixed intervals (daily, weekly, monthly); there is no cron
expression support. A run is charged from the owner's credits when its
session completes; a schedule whose owner cannot afford the next run is
paused with reason ``insufficient_credits``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from easyscrapy.constants import EXECUTION_ID_PREFIX, SCHEDULE_FREQUENCIES, SCHEDULE_ID_PREFIX
from easyscrapy.models.scheduled_scrape import (
    ScheduledScrape,
    ScheduledScrapeChange,
    ScheduledScrapeExecution,
    ScheduledScrapeNotification,
)
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.services import credit_service
from easyscrapy.services.actor_client import ActorClient
from easyscrapy.services.email_service import send_schedule_changes_email
from easyscrapy.services.estimation_service import estimate_facebook_pages, estimate_marketplace
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.payment_service import PaymentError, unlock_with_credits
from easyscrapy.services.scrape_service import (
    PageExtractionOptions,
    ScrapeStartError,
    start_page_scrape,
    start_scrape,
    validate_scrape_url,
)
from easyscrapy.services.session_service import SessionRepository
from easyscrapy_cli.utils import ensure_aware, generate_id, now_utc

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_RESULTS = 20


class ScheduleError(Exception):
    pass


class ScheduleNotFoundError(ScheduleError):
    pass


def compute_next_run(frequency: str, from_time: datetime | None = None) -> datetime:
    if frequency not in SCHEDULE_FREQUENCIES:
        raise ScheduleError(f"Unsupported frequency: {frequency}")
    return (from_time or now_utc()) + timedelta(days=SCHEDULE_FREQUENCIES[frequency])


def estimate_run_cost(scrape_type: str, results_limit: int) -> float:
    if scrape_type == ScrapeType.FACEBOOK_PAGES:
        return estimate_facebook_pages(1, posts_per_page=results_limit).total_cost
    return estimate_marketplace(results_limit).total_cost


def _results_limit(schedule: ScheduledScrape) -> int:
    return int((schedule.config or {}).get("resultsLimit") or DEFAULT_SCHEDULE_RESULTS)


async def create_schedule(
    db: AsyncSession,
    user: User,
    *,
    name: str,
    scrape_type: str,
    target_url: str,
    frequency: str = "weekly",
    description: str | None = None,
    config: dict | None = None,
    notification_settings: dict | None = None,
) -> ScheduledScrape:
    if frequency not in SCHEDULE_FREQUENCIES:
        raise ScheduleError(f"Unsupported frequency: {frequency}. Use one of {', '.join(SCHEDULE_FREQUENCIES)}")
    validate_scrape_url(target_url, scrape_type)

    config = dict(config or {})
    config.setdefault("resultsLimit", DEFAULT_SCHEDULE_RESULTS)
    schedule = ScheduledScrape(
        id=generate_id(SCHEDULE_ID_PREFIX),
        user_id=user.id,
        name=name,
        description=description,
        scrape_type=scrape_type,
        target_url=target_url.strip(),
        frequency=frequency,
        next_run_at=now_utc(),
        config=config,
        notification_settings=notification_settings or {"email": True, "onlyOnChanges": True},
        credits_per_run=estimate_run_cost(scrape_type, int(config["resultsLimit"])),
    )
    db.add(schedule)
    await db.commit()
    await db.refresh(schedule)
    logger.info("Schedule %s created for user %s (%s)", schedule.id, user.id, frequency)
    return schedule


async def list_schedules(db: AsyncSession, user_id: int) -> list[ScheduledScrape]:
    result = await db.execute(
        select(ScheduledScrape)
        .where(ScheduledScrape.user_id == user_id)
        .order_by(ScheduledScrape.created_at.desc())
    )
    return list(result.scalars().all())


async def get_schedule(db: AsyncSession, user_id: int, schedule_id: str) -> ScheduledScrape:
    result = await db.execute(
        select(ScheduledScrape)
        .where(ScheduledScrape.id == schedule_id, ScheduledScrape.user_id == user_id)
        .options(selectinload(ScheduledScrape.executions))
    )
    schedule = result.scalar_one_or_none()
    if not schedule:
        raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
    return schedule


async def set_paused(db: AsyncSession, user_id: int, schedule_id: str, paused: bool) -> ScheduledScrape:
    schedule = await get_schedule(db, user_id, schedule_id)
    schedule.is_paused = paused
    schedule.pause_reason = "user" if paused else None
    if not paused and (schedule.next_run_at is None or ensure_aware(schedule.next_run_at) < now_utc()):
        schedule.next_run_at = now_utc()
    await db.commit()
    return schedule


async def delete_schedule(db: AsyncSession, user_id: int, schedule_id: str) -> None:
    schedule = await get_schedule(db, user_id, schedule_id)
    await db.delete(schedule)
    await db.commit()
    logger.info("Schedule %s deleted", schedule_id)


async def find_due_schedules(db: AsyncSession, now: datetime | None = None) -> list[str]:
    result = await db.execute(
        select(ScheduledScrape.id).where(
            ScheduledScrape.is_active == True,  # noqa: E712
            ScheduledScrape.is_paused == False,  # noqa: E712
            ScheduledScrape.next_run_at <= (now or now_utc()),
        )
    )
    return list(result.scalars().all())


async def run_scheduled_scrape(
    db: AsyncSession, actor: ActorClient, schedule_id: str
) -> ScheduledScrapeExecution | None:
    """Start one run of a schedule. Returns the execution, or None when skipped."""
    schedule = await db.get(ScheduledScrape, schedule_id)
    if not schedule or not schedule.is_active or schedule.is_paused:
        return None
    user = await db.get(User, schedule.user_id)
    if not user or not user.is_active:
        return None

    if user.credits_balance < schedule.credits_per_run:
        schedule.is_paused = True
        schedule.pause_reason = "insufficient_credits"
        await db.commit()
        logger.warning(
            "Schedule %s paused: balance %s < %s", schedule.id, user.credits_balance, schedule.credits_per_run
        )
        return None

    now = now_utc()
    execution = ScheduledScrapeExecution(
        id=generate_id(EXECUTION_ID_PREFIX),
        scheduled_scrape_id=schedule.id,
        status="running",
    )
    db.add(execution)
    schedule.last_run_at = now
    schedule.next_run_at = compute_next_run(schedule.frequency, now)
    schedule.total_runs = (schedule.total_runs or 0) + 1
    await db.commit()

    repo = SessionRepository(db)
    try:
        session = await _start_run(repo, actor, schedule, user)
    except ScrapeStartError as e:
        execution.session_id = e.session_id
        execution.status = "failed"
        execution.error_message = str(e)
        execution.completed_at = now_utc()
        schedule.failed_runs = (schedule.failed_runs or 0) + 1
        await db.commit()
        logger.error("Scheduled run %s failed to start: %s", execution.id, e)
        return execution

    execution.session_id = session.id
    await db.commit()
    logger.info("Scheduled run %s started session %s", execution.id, session.id)
    return execution


async def _start_run(
    repo: SessionRepository, actor: ActorClient, schedule: ScheduledScrape, user: User
) -> ScrapingSession:
    if schedule.scrape_type == ScrapeType.FACEBOOK_PAGES:
        # Every run stores the full post list; detect_changes diffs consecutive runs
        options = PageExtractionOptions(
            extract_info=False, posts_limit=_results_limit(schedule), incremental_mode=False
        )
        return await start_page_scrape(
            repo, actor, user=user, urls=[schedule.target_url], options=options, exclusive=False
        )
    return await start_scrape(
        repo, actor,
        user=user,
        url=schedule.target_url,
        scrape_type=schedule.scrape_type,
        results_limit=_results_limit(schedule),
    )


def _item_key(item) -> str | None:
    return item.url or item.external_id


def detect_changes(previous_items: list, current_items: list) -> list[dict[str, Any]]:
    """Diff two item lists keyed on url (or external id)."""
    previous = {_item_key(i): i for i in previous_items if _item_key(i)}
    current = {_item_key(i): i for i in current_items if _item_key(i)}

    changes: list[dict[str, Any]] = []
    for key, item in current.items():
        old = previous.get(key)
        if old is None:
            changes.append({
                "change_type": "new_item", "change_category": "listing", "severity": "info",
                "old_value": None, "new_value": item.title, "title": item.title, "url": item.url,
            })
        elif (old.price or "") != (item.price or ""):
            changes.append({
                "change_type": "price_change", "change_category": "price", "severity": "medium",
                "old_value": old.price, "new_value": item.price, "title": item.title, "url": item.url,
            })
    for key, item in previous.items():
        if key not in current:
            changes.append({
                "change_type": "removed_item", "change_category": "listing", "severity": "low",
                "old_value": item.title, "new_value": None, "title": item.title, "url": item.url,
            })
    return changes


async def _previous_completed_execution(
    db: AsyncSession, execution: ScheduledScrapeExecution
) -> ScheduledScrapeExecution | None:
    result = await db.execute(
        select(ScheduledScrapeExecution)
        .where(
            ScheduledScrapeExecution.scheduled_scrape_id == execution.scheduled_scrape_id,
            ScheduledScrapeExecution.status == "completed",
            ScheduledScrapeExecution.id != execution.id,
        )
        .order_by(ScheduledScrapeExecution.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def on_session_finished(db: AsyncSession, session: ScrapingSession) -> None:
    """Close the execution tied to a finished session, if any."""
    result = await db.execute(
        select(ScheduledScrapeExecution).where(
            ScheduledScrapeExecution.session_id == session.id,
            ScheduledScrapeExecution.status == "running",
        )
    )
    execution = result.scalar_one_or_none()
    if execution is None:
        return
    schedule = await db.get(ScheduledScrape, execution.scheduled_scrape_id)
    finished_at = now_utc()
    execution.completed_at = finished_at
    execution.duration_seconds = int((finished_at - ensure_aware(execution.created_at)).total_seconds())

    if session.status == SessionStatus.FAILED:
        execution.status = "failed"
        execution.error_message = session.error_message
        schedule.failed_runs = (schedule.failed_runs or 0) + 1
        await db.commit()
        return

    user = await db.get(User, schedule.user_id)
    try:
        payment = await unlock_with_credits(SessionRepository(db), user, session)
        execution.credits_used = payment.amount
        schedule.total_credits_spent = (schedule.total_credits_spent or 0.0) + payment.amount
    except (credit_service.InsufficientCreditsError, PaymentError) as e:
        logger.warning("Scheduled session %s could not be unlocked: %s", session.id, e)
        schedule.is_paused = True
        schedule.pause_reason = "insufficient_credits"

    current_items = await get_session_items(db, session.id)
    previous = await _previous_completed_execution(db, execution)
    previous_items = await get_session_items(db, previous.session_id) if previous and previous.session_id else []
    changes = detect_changes(previous_items, current_items) if previous else []

    for change in changes:
        db.add(ScheduledScrapeChange(
            execution_id=execution.id,
            change_type=change["change_type"],
            change_category=change["change_category"],
            old_value=change["old_value"],
            new_value=change["new_value"],
            severity=change["severity"],
            extra={"title": change["title"], "url": change["url"]},
        ))

    execution.status = "completed"
    execution.items_scraped = len(current_items)
    execution.changes_detected = _summarize(changes)
    schedule.successful_runs = (schedule.successful_runs or 0) + 1
    await db.commit()

    await _notify(db, schedule, execution, user, changes)


def _summarize(changes: list[dict[str, Any]]) -> dict[str, int]:
    summary = {"new_item": 0, "removed_item": 0, "price_change": 0}
    for change in changes:
        summary[change["change_type"]] = summary.get(change["change_type"], 0) + 1
    summary["total"] = len(changes)
    return summary


async def _notify(
    db: AsyncSession,
    schedule: ScheduledScrape,
    execution: ScheduledScrapeExecution,
    user: User,
    changes: list[dict[str, Any]],
) -> None:
    settings = schedule.notification_settings or {}
    if not settings.get("email", True):
        return
    if settings.get("onlyOnChanges", True) and not changes:
        return

    subject, sent = await send_schedule_changes_email(user.email, schedule.name, changes, execution.items_scraped)
    db.add(ScheduledScrapeNotification(
        scheduled_scrape_id=schedule.id,
        execution_id=execution.id,
        type="changes_detected" if changes else "run_completed",
        channel="email",
        recipient=user.email,
        subject=subject,
        content=f"{len(changes)} change(s)",
        sent=sent,
        error=None if sent else "email not sent",
    ))
    await db.commit()
