"""Scraping session repository: the single persistence layer for sessions.

Injected into routes through ``get_session_repository``; services that run
outside a request (worker jobs) build one from their own AsyncSession.
"""

import logging
from typing import Any

from fastapi import Depends
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import DEFAULT_RESULTS_LIMIT, SESSION_ID_PREFIX
from easyscrapy.db.session import get_db
from easyscrapy.models.payment import Payment
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy_cli.utils import generate_id

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.RUNNING, SessionStatus.FAILED},
    SessionStatus.RUNNING: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}


class SessionNotFoundError(Exception):
    pass


class InvalidTransitionError(Exception):
    def __init__(self, session_id: str, current: str, target: str):
        self.session_id = session_id
        self.current = current
        self.target = target
        super().__init__(f"Session {session_id}: cannot go from {current} to {target}")


class SessionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        *,
        user_id: int | None,
        url: str,
        scrape_type: str = ScrapeType.MARKETPLACE,
        results_limit: int = DEFAULT_RESULTS_LIMIT,
        pack_id: str | None = None,
        is_trial: bool = False,
        session_id: str | None = None,
        page_urls: list[str] | None = None,
        extraction_config: dict | None = None,
    ) -> ScrapingSession:
        session = ScrapingSession(
            id=session_id or generate_id(SESSION_ID_PREFIX),
            user_id=user_id,
            url=url,
            scrape_type=scrape_type,
            results_limit=results_limit,
            pack_id=pack_id,
            is_trial=is_trial,
            page_urls=page_urls,
            extraction_config=extraction_config,
            status=SessionStatus.PENDING,
        )
        self.db.add(session)
        await self.db.commit()
        await self.db.refresh(session)
        logger.info("Session created: %s (type=%s, user=%s)", session.id, scrape_type, user_id)
        return session

    async def get(self, session_id: str, *, for_update: bool = False) -> ScrapingSession | None:
        stmt = select(ScrapingSession).where(ScrapingSession.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_user(self, session_id: str, user_id: int) -> ScrapingSession | None:
        result = await self.db.execute(
            select(ScrapingSession).where(
                ScrapingSession.id == session_id, ScrapingSession.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def get_by_run_id(self, actor_run_id: str) -> ScrapingSession | None:
        result = await self.db.execute(
            select(ScrapingSession).where(ScrapingSession.actor_run_id == actor_run_id)
        )
        return result.scalar_one_or_none()

    async def get_active_page_session(self, user_id: int) -> ScrapingSession | None:
        result = await self.db.execute(
            select(ScrapingSession)
            .where(
                ScrapingSession.user_id == user_id,
                ScrapingSession.scrape_type == ScrapeType.FACEBOOK_PAGES,
                ScrapingSession.status.in_([SessionStatus.PENDING, SessionStatus.RUNNING]),
            )
            .order_by(ScrapingSession.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_most_recent_unpaid(self, user_id: int) -> ScrapingSession | None:
        result = await self.db.execute(
            select(ScrapingSession)
            .where(ScrapingSession.user_id == user_id, ScrapingSession.is_paid == False)  # noqa: E712
            .order_by(ScrapingSession.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def update(self, session: ScrapingSession, *, commit: bool = True, **fields: Any) -> ScrapingSession:
        """Set plain columns. Status changes go through the mark_* methods."""
        if "status" in fields:
            raise ValueError("use mark_running/mark_completed/mark_failed to change status")
        for key, value in fields.items():
            if not hasattr(ScrapingSession, key):
                raise AttributeError(f"ScrapingSession has no column {key!r}")
            setattr(session, key, value)
        if commit:
            await self.db.commit()
        return session

    def _transition(self, session: ScrapingSession, target: SessionStatus) -> None:
        current = SessionStatus(session.status)
        if target not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(session.id, current, target)
        session.status = target

    async def mark_running(self, session: ScrapingSession, actor_run_id: str, dataset_id: str) -> ScrapingSession:
        self._transition(session, SessionStatus.RUNNING)
        session.actor_run_id = actor_run_id
        session.dataset_id = dataset_id
        await self.db.commit()
        logger.info("Session %s running (run=%s, dataset=%s)", session.id, actor_run_id, dataset_id)
        return session

    async def mark_completed(
        self, session: ScrapingSession, preview_items: list[dict], total_items: int, *, commit: bool = True
    ) -> ScrapingSession:
        self._transition(session, SessionStatus.COMPLETED)
        session.preview_items = preview_items
        session.total_items = total_items
        session.has_data = total_items > 0
        session.error_message = None
        if commit:
            await self.db.commit()
        logger.info("Session %s completed with %d items", session.id, total_items)
        return session

    async def mark_failed(self, session: ScrapingSession, message: str) -> ScrapingSession:
        self._transition(session, SessionStatus.FAILED)
        session.error_message = message[:1000]
        await self.db.commit()
        logger.warning("Session %s failed: %s", session.id, message)
        return session

    def mark_paid(
        self,
        session: ScrapingSession,
        *,
        payment_method: str,
        payment_intent_id: str | None,
        download_token: str,
        download_url: str,
        download_expires_at,
        pack_id: str | None = None,
    ) -> ScrapingSession:
        """Flip is_paid and attach download credentials. The caller owns the commit."""
        session.is_paid = True
        session.payment_method = payment_method
        session.payment_intent_id = payment_intent_id
        session.download_token = download_token
        session.download_url = download_url
        session.download_expires_at = download_expires_at
        if pack_id:
            session.pack_id = pack_id
        return session

    async def list_running(self) -> list[ScrapingSession]:
        result = await self.db.execute(
            select(ScrapingSession).where(ScrapingSession.status == SessionStatus.RUNNING)
        )
        return list(result.scalars().all())

    async def list_for_user(
        self, user_id: int, *, limit: int = 20, offset: int = 0
    ) -> tuple[list[ScrapingSession], int]:
        result = await self.db.execute(
            select(ScrapingSession)
            .where(ScrapingSession.user_id == user_id)
            .order_by(ScrapingSession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.scalar(
            select(func.count(ScrapingSession.id)).where(ScrapingSession.user_id == user_id)
        )
        return list(result.scalars().all()), int(total or 0)

    async def search(
        self,
        *,
        status: str | None = None,
        is_paid: bool | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[ScrapingSession], int]:
        """Admin search over all sessions."""
        conditions = []
        if status:
            conditions.append(ScrapingSession.status == status)
        if is_paid is not None:
            conditions.append(ScrapingSession.is_paid == is_paid)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(ScrapingSession.id.ilike(pattern), ScrapingSession.url.ilike(pattern))
            )

        result = await self.db.execute(
            select(ScrapingSession)
            .where(*conditions)
            .order_by(ScrapingSession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.scalar(select(func.count(ScrapingSession.id)).where(*conditions))
        return list(result.scalars().all()), int(total or 0)

    async def get_stats(self) -> dict[str, Any]:
        total = await self.db.scalar(select(func.count(ScrapingSession.id))) or 0
        completed = await self.db.scalar(
            select(func.count(ScrapingSession.id)).where(ScrapingSession.status == SessionStatus.COMPLETED)
        ) or 0
        failed = await self.db.scalar(
            select(func.count(ScrapingSession.id)).where(ScrapingSession.status == SessionStatus.FAILED)
        ) or 0
        paid = await self.db.scalar(
            select(func.count(ScrapingSession.id)).where(ScrapingSession.is_paid == True)  # noqa: E712
        ) or 0
        revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0.0)).where(
                Payment.status == "succeeded", Payment.provider == "stripe"
            )
        )

        pack_rows = await self.db.execute(
            select(ScrapingSession.pack_id, func.count(ScrapingSession.id))
            .where(ScrapingSession.is_paid == True)  # noqa: E712
            .group_by(ScrapingSession.pack_id)
        )
        method_rows = await self.db.execute(
            select(ScrapingSession.payment_method, func.count(ScrapingSession.id))
            .where(ScrapingSession.is_paid == True)  # noqa: E712
            .group_by(ScrapingSession.payment_method)
        )

        return {
            "total": total,
            "completed": completed,
            "paid": paid,
            "failed": failed,
            "revenue": round(float(revenue or 0.0), 2),
            "success_rate": round(completed / total * 100, 1) if total else 0.0,
            "pack_stats": {pack or "unknown": count for pack, count in pack_rows.all()},
            "method_stats": {method or "unknown": count for method, count in method_rows.all()},
        }


async def get_session_repository(db: AsyncSession = Depends(get_db)) -> SessionRepository:
    """FastAPI dependency returning a repository bound to the request's DB session."""
    return SessionRepository(db)
