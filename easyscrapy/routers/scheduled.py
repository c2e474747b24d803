"""Scheduled scrape routes: create, list, inspect, pause/resume, delete."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.db.session import get_db
from easyscrapy.models.scheduled_scrape import ScheduledScrape, ScheduledScrapeExecution
from easyscrapy.models.user import User
from easyscrapy.schemas.scheduled import ScheduleCreate, SchedulePause
from easyscrapy.services import scheduled_scrape_service as schedules
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.scrape_service import InvalidScrapeUrlError

router = APIRouter(prefix="/api/scheduled-scrapes", tags=["scheduled-scrapes"])


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def schedule_to_dict(schedule: ScheduledScrape) -> dict:
    return {
        "id": schedule.id,
        "name": schedule.name,
        "description": schedule.description,
        "scrapeType": schedule.scrape_type,
        "targetUrl": schedule.target_url,
        "frequency": schedule.frequency,
        "isActive": schedule.is_active,
        "isPaused": schedule.is_paused,
        "pauseReason": schedule.pause_reason,
        "config": schedule.config,
        "notificationSettings": schedule.notification_settings,
        "creditsPerRun": schedule.credits_per_run,
        "totalCreditsSpent": schedule.total_credits_spent,
        "totalRuns": schedule.total_runs,
        "successfulRuns": schedule.successful_runs,
        "failedRuns": schedule.failed_runs,
        "nextRunAt": _iso(schedule.next_run_at),
        "lastRunAt": _iso(schedule.last_run_at),
        "createdAt": _iso(schedule.created_at),
    }


def execution_to_dict(execution: ScheduledScrapeExecution) -> dict:
    return {
        "id": execution.id,
        "sessionId": execution.session_id,
        "status": execution.status,
        "itemsScraped": execution.items_scraped,
        "creditsUsed": execution.credits_used,
        "durationSeconds": execution.duration_seconds,
        "changesDetected": execution.changes_detected,
        "error": execution.error_message,
        "createdAt": _iso(execution.created_at),
        "completedAt": _iso(execution.completed_at),
    }


@router.post("", status_code=201)
async def create(body: ScheduleCreate, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        schedule = await schedules.create_schedule(
            db, user,
            name=body.name,
            description=body.description,
            scrape_type=body.scrape_type,
            target_url=body.target_url,
            frequency=body.frequency,
            config={"resultsLimit": body.results_limit},
            notification_settings=body.notification_settings.model_dump(by_alias=True),
        )
    except (schedules.ScheduleError, InvalidScrapeUrlError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schedule_to_dict(schedule)


@router.get("")
async def list_all(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"schedules": [schedule_to_dict(s) for s in await schedules.list_schedules(db, user.id)]}


@router.get("/{schedule_id}")
async def detail(schedule_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        schedule = await schedules.get_schedule(db, user.id, schedule_id)
    except schedules.ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    executions = sorted(schedule.executions, key=lambda e: e.created_at, reverse=True)
    return {**schedule_to_dict(schedule), "executions": [execution_to_dict(e) for e in executions]}


@router.patch("/{schedule_id}/pause")
async def pause(
    schedule_id: str,
    body: SchedulePause,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await schedules.set_paused(db, user.id, schedule_id, body.paused)
    except schedules.ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return schedule_to_dict(schedule)


@router.delete("/{schedule_id}", status_code=204)
async def delete(schedule_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        await schedules.delete_schedule(db, user.id, schedule_id)
    except schedules.ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
