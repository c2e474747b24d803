"""Transactional email via the Resend API, rendered from Jinja2 templates."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import resend
from jinja2 import Environment, FileSystemLoader

from easyscrapy.config import get_settings

logger = logging.getLogger(__name__)

_template_dir = Path(__file__).parent.parent / "templates" / "email"
_jinja_env = Environment(loader=FileSystemLoader(str(_template_dir)), autoescape=True)


def render_email(template_name: str, **context: Any) -> str:
    settings = get_settings()
    template = _jinja_env.get_template(template_name)
    return template.render(app_name=settings.app_name, frontend_url=settings.frontend_url, **context)


async def send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send one email via Resend.

    Returns True on success, False on failure.
    """
    settings = get_settings()
    if not settings.resend_api_key:
        logger.warning("Resend API key not configured, skipping email to %s", to_email)
        return False

    try:
        await asyncio.to_thread(
            resend.Emails.send,
            {
                "from": settings.email_from,
                "to": [to_email],
                "subject": subject,
                "html": html_body,
            },
        )
        logger.info("Email '%s' sent to %s", subject, to_email)
        return True
    except Exception as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return False


async def send_download_email(to_email: str, session_id: str, download_url: str, total_items: int) -> bool:
    html = render_email(
        "download_ready.html",
        session_id=session_id,
        download_url=download_url,
        total_items=total_items,
    )
    return await send_email(to_email, "Vos données EasyScrapy sont prêtes", html)


async def send_mention_alert_email(to_email: str, mentions: list[dict[str, Any]]) -> bool:
    html = render_email("mention_alert.html", mentions=mentions)
    return await send_email(to_email, f"Alerte : {len(mentions)} mention(s) urgente(s)", html)


async def send_verification_email(to_email: str, name: str | None, token: str) -> bool:
    settings = get_settings()
    html = render_email(
        "verify_email.html",
        name=name,
        verify_url=f"{settings.frontend_url}/verify-email?token={token}",
    )
    return await send_email(to_email, "Confirmez votre adresse email", html)


async def send_password_reset_email(to_email: str, name: str | None, token: str) -> bool:
    settings = get_settings()
    html = render_email(
        "reset_password.html",
        name=name,
        reset_url=f"{settings.frontend_url}/reset-password?token={token}",
    )
    return await send_email(to_email, "Réinitialisation de votre mot de passe", html)


async def send_schedule_changes_email(
    to_email: str, schedule_name: str, changes: list[dict[str, Any]], items_scraped: int
) -> tuple[str, bool]:
    """Send the change summary of a scheduled run. Returns (subject, sent)."""
    subject = f"{schedule_name} : {len(changes)} changement(s) détecté(s)"
    html = render_email(
        "schedule_changes.html",
        schedule_name=schedule_name,
        changes=changes,
        items_scraped=items_scraped,
    )
    return subject, await send_email(to_email, subject, html)
