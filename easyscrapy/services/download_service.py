"""Paid download gate: validates access to a session export and records the download."""

import hmac
import logging
from dataclasses import dataclass

from easyscrapy.models.payment import Download
from easyscrapy.models.scraping_session import ScrapingSession, SessionStatus
from easyscrapy.services.actor_client import ActorClient, ActorClientError
from easyscrapy.services.export_service import EXPORT_FORMATS, export_filename, media_type, render_export
from easyscrapy.services.item_normalizer import normalize_items
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.scrape_service import ITEM_TYPES
from easyscrapy.services.session_service import SessionRepository
from easyscrapy_cli.utils import ensure_aware, now_utc

logger = logging.getLogger(__name__)


class DownloadDenied(Exception):
    """Access refused; carries the HTTP status the router should answer with."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


@dataclass
class ExportFile:
    filename: str
    media_type: str
    content: bytes


def check_access(session: ScrapingSession | None, token: str | None, fmt: str) -> ScrapingSession:
    """Apply the download checks in order: exists, token, paid, completed, not expired, format."""
    if session is None:
        raise DownloadDenied(404, "Session not found")
    if not token or not session.download_token or not hmac.compare_digest(token, session.download_token):
        raise DownloadDenied(403, "Invalid download token")
    if not session.is_paid:
        raise DownloadDenied(402, "Payment required")
    if session.status != SessionStatus.COMPLETED:
        raise DownloadDenied(409, "Session is not completed")
    expires_at = ensure_aware(session.download_expires_at)
    if expires_at and expires_at < now_utc():
        raise DownloadDenied(410, "Download link expired")
    if fmt not in EXPORT_FORMATS:
        raise DownloadDenied(400, "Invalid format. Use 'excel' or 'csv'.")
    return session


async def build_export(
    repo: SessionRepository,
    actor: ActorClient,
    session_id: str,
    token: str | None,
    fmt: str,
    *,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> ExportFile:
    session = check_access(await repo.get(session_id), token, fmt)

    items = await get_session_items(repo.db, session.id)
    if not items and session.dataset_id:
        try:
            raw = await actor.get_dataset_items(session.dataset_id)
        except ActorClientError as e:
            raise DownloadDenied(502, f"Could not fetch session data: {e}") from e
        items = normalize_items(raw, ITEM_TYPES.get(session.scrape_type, "marketplace"))

    content = render_export(items, fmt)
    repo.db.add(Download(
        user_id=user_id or session.user_id,
        session_id=session.id,
        format=fmt,
        ip_address=ip_address,
        scraped_url=session.url,
    ))
    await repo.db.commit()
    logger.info("Session %s downloaded as %s (%d items)", session.id, fmt, len(items))

    return ExportFile(
        filename=export_filename(session.id, fmt),
        media_type=media_type(fmt),
        content=content,
    )
