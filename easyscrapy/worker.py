"""ARQ worker: background job processing."""

import logging

from arq import cron
from arq.connections import RedisSettings

from easyscrapy.config import get_settings
from easyscrapy.constants import ARQ_JOB_TIMEOUT, ARQ_MAX_JOBS

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    from easyscrapy.http_client import init_http_client
    from easyscrapy_cli.utils import setup_logging

    setup_logging(verbose=get_settings().debug)
    await init_http_client()


async def shutdown(ctx: dict) -> None:
    from easyscrapy.http_client import close_http_client

    await close_http_client()


async def run_scheduled_scrape_job(ctx: dict, schedule_id: str) -> None:
    """ARQ job: start one run of a scheduled scrape."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.actor_client import ActorClient
    from easyscrapy.services.scheduled_scrape_service import run_scheduled_scrape

    async with async_session_factory() as db:
        execution = await run_scheduled_scrape(db, ActorClient(), schedule_id)
        if execution:
            logger.info("Scheduled scrape %s: execution %s (%s)", schedule_id, execution.id, execution.status)
        else:
            logger.info("Scheduled scrape %s skipped", schedule_id)


async def refresh_sessions_cron(ctx: dict) -> None:
    """Cron job: every minute, poll actor runs of sessions still running."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.actor_client import ActorClient
    from easyscrapy.services.scrape_service import refresh_running_sessions
    from easyscrapy.services.session_service import SessionRepository

    async with async_session_factory() as db:
        await refresh_running_sessions(SessionRepository(db), ActorClient())


async def scheduled_scrapes_cron(ctx: dict) -> None:
    """Cron job: every 5 minutes, enqueue due scheduled scrapes."""
    from easyscrapy.scheduler_tasks import enqueue_due_scheduled_scrapes

    await enqueue_due_scheduled_scrapes(ctx)


async def expire_trials_cron(ctx: dict) -> None:
    """Cron job: daily, remove unused trial credits past their expiry."""
    from easyscrapy.db.session import async_session_factory
    from easyscrapy.services.credit_service import expire_trial_credits

    async with async_session_factory() as db:
        count = await expire_trial_credits(db)
    logger.info("Trial expiration: %d users affected", count)


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [run_scheduled_scrape_job]
    cron_jobs = [
        cron(refresh_sessions_cron, second=0),  # Every minute
        cron(scheduled_scrapes_cron, minute=set(range(0, 60, 5))),  # Every 5 minutes
        cron(expire_trials_cron, hour=3, minute=0),  # Daily at 03:00 UTC
    ]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

    max_jobs = ARQ_MAX_JOBS
    job_timeout = ARQ_JOB_TIMEOUT
