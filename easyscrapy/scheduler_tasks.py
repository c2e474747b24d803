"""Scheduler tasks: finds work for the worker crons."""

import logging

from arq import ArqRedis

from easyscrapy.db.session import async_session_factory
from easyscrapy.services.scheduled_scrape_service import find_due_schedules

logger = logging.getLogger(__name__)


async def enqueue_due_scheduled_scrapes(ctx: dict) -> int:
    """Enqueue one run job per schedule whose next_run_at has passed.

    Job ids are keyed on the schedule, so a schedule seen by two
    overlapping cron ticks is only enqueued once.
    """
    redis: ArqRedis = ctx.get("redis") or ctx.get("arq_redis")

    async with async_session_factory() as db:
        due = await find_due_schedules(db)

    enqueued = 0
    for schedule_id in due:
        if redis:
            job = await redis.enqueue_job("run_scheduled_scrape_job", schedule_id, _job_id=f"sched-run:{schedule_id}")
            if job is not None:
                enqueued += 1
                logger.info("Enqueued scheduled scrape %s", schedule_id)

    logger.info("Scheduler: %d due schedules, enqueued %d jobs", len(due), enqueued)
    return enqueued
