"""User accounts: signup, login, email verification, password reset, dashboard data."""

import logging
import secrets
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.config import get_settings
from easyscrapy.constants import RESET_TOKEN_HOURS, VERIFICATION_TOKEN_HOURS
from easyscrapy.models.payment import Download, MvolaPayment, Payment
from easyscrapy.models.scraping_session import ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.services import credit_service
from easyscrapy.services.auth_service import hash_password, verify_password
from easyscrapy.services.email_service import send_password_reset_email, send_verification_email
from easyscrapy_cli.utils import ensure_aware, now_utc

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"name", "phone_number", "preferred_ai_model", "business_sector", "company_size"}


class AccountError(Exception):
    pass


class EmailTakenError(AccountError):
    pass


class InvalidCredentialsError(AccountError):
    pass


class InvalidTokenError(AccountError):
    pass


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == _normalize_email(email)))
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str | None = None,
    signup_ip: str | None = None,
) -> User:
    """Create an account, grant trial credits when the IP allows it, send the verification mail."""
    if await get_user_by_email(db, email):
        raise EmailTakenError("An account already exists for this email")

    user = User(
        email=_normalize_email(email),
        password_hash=hash_password(password),
        name=name,
        signup_ip=signup_ip,
        preferred_ai_model=get_settings().default_ai_model,
        verification_token=secrets.token_urlsafe(32),
        verification_token_expires_at=now_utc() + timedelta(hours=VERIFICATION_TOKEN_HOURS),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User registered: %s (id=%s)", user.email, user.id)

    try:
        await credit_service.grant_trial_credits(db, user.id, signup_ip)
    except credit_service.TrialAlreadyUsedError:
        logger.info("No trial credits for user %s (IP already used)", user.id)
    await db.refresh(user)

    await send_verification_email(user.email, user.name, user.verification_token)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid email or password")
    user.last_login = now_utc()
    await db.commit()
    return user


async def verify_email(db: AsyncSession, token: str) -> User:
    result = await db.execute(select(User).where(User.verification_token == token))
    user = result.scalar_one_or_none()
    expires_at = ensure_aware(user.verification_token_expires_at) if user else None
    if not user or (expires_at and expires_at < now_utc()):
        raise InvalidTokenError("Invalid or expired verification link")
    user.email_verified_at = now_utc()
    user.verification_token = None
    user.verification_token_expires_at = None
    await db.commit()
    return user


async def request_password_reset(db: AsyncSession, email: str) -> None:
    """Issue a reset token. Silent when the address is unknown."""
    user = await get_user_by_email(db, email)
    if not user or not user.is_active:
        logger.info("Password reset requested for unknown address")
        return
    user.reset_token = secrets.token_urlsafe(32)
    user.reset_token_expires_at = now_utc() + timedelta(hours=RESET_TOKEN_HOURS)
    await db.commit()
    await send_password_reset_email(user.email, user.name, user.reset_token)


async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
    result = await db.execute(select(User).where(User.reset_token == token))
    user = result.scalar_one_or_none()
    expires_at = ensure_aware(user.reset_token_expires_at) if user else None
    if not user or not expires_at or expires_at < now_utc():
        raise InvalidTokenError("Invalid or expired reset link")
    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires_at = None
    await db.commit()
    logger.info("Password reset for user %s", user.id)
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    await db.commit()


async def update_profile(db: AsyncSession, user: User, updates: dict[str, Any]) -> User:
    for key, value in updates.items():
        if key in PROFILE_FIELDS:
            setattr(user, key, value)
    await db.commit()
    await db.refresh(user)
    return user


async def get_dashboard(db: AsyncSession, user: User) -> dict[str, Any]:
    balance = await credit_service.get_balance_breakdown(db, user.id)

    counts = await db.execute(
        select(ScrapingSession.status, func.count(ScrapingSession.id))
        .where(ScrapingSession.user_id == user.id)
        .group_by(ScrapingSession.status)
    )
    by_status = {status: count for status, count in counts.all()}
    paid = await db.scalar(
        select(func.count(ScrapingSession.id)).where(
            ScrapingSession.user_id == user.id, ScrapingSession.is_paid == True  # noqa: E712
        )
    )
    downloads = await db.scalar(select(func.count(Download.id)).where(Download.user_id == user.id))

    recent = await db.execute(
        select(ScrapingSession)
        .where(ScrapingSession.user_id == user.id)
        .order_by(ScrapingSession.created_at.desc())
        .limit(5)
    )
    return {
        "credits": {
            "total": balance.total,
            "trial": balance.trial,
            "purchased": balance.purchased,
            "trialExpiresAt": balance.trial_expires_at.isoformat() if balance.trial_expires_at else None,
        },
        "stats": {
            "totalSessions": sum(by_status.values()),
            "completedSessions": by_status.get(SessionStatus.COMPLETED, 0),
            "failedSessions": by_status.get(SessionStatus.FAILED, 0),
            "paidSessions": int(paid or 0),
            "totalDownloads": int(downloads or 0),
        },
        "recentSessions": [session_summary(s) for s in recent.scalars().all()],
    }


def session_summary(session: ScrapingSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "url": session.url,
        "scrapeType": session.scrape_type,
        "status": session.status,
        "isPaid": session.is_paid,
        "packId": session.pack_id,
        "totalItems": session.total_items,
        "createdAt": session.created_at.isoformat() if session.created_at else None,
    }


async def list_payments(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Stripe, credit and MVola payments in one list, newest first, amounts in MGA."""
    rate = get_settings().eur_to_mga
    result = await db.execute(select(Payment).where(Payment.user_id == user_id))
    merged = []
    for p in result.scalars().all():
        amount_mga = p.amount * rate if p.currency == "eur" else p.amount
        merged.append({
            "id": f"{p.provider}_{p.id}",
            "provider": p.provider,
            "sessionId": p.session_id,
            "packId": p.pack_id,
            "amount": p.amount,
            "currency": p.currency,
            "amountMga": round(amount_mga) if p.currency != "credits" else None,
            "status": p.status,
            "failureMessage": p.failure_message,
            "createdAt": p.created_at,
        })

    result = await db.execute(select(MvolaPayment).where(MvolaPayment.user_id == user_id))
    for m in result.scalars().all():
        merged.append({
            "id": f"mvola_{m.id}",
            "provider": "mvola",
            "sessionId": m.session_id,
            "packId": m.pack_id,
            "amount": m.amount,
            "currency": m.currency,
            "amountMga": round(m.amount),
            "status": m.status,
            "failureMessage": m.status_reason,
            "createdAt": m.created_at,
        })

    merged.sort(key=lambda row: ensure_aware(row["createdAt"]), reverse=True)
    for row in merged:
        row["createdAt"] = row["createdAt"].isoformat() if row["createdAt"] else None
    return merged


async def list_downloads(db: AsyncSession, user_id: int, limit: int = 50) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Download)
        .where(Download.user_id == user_id)
        .order_by(Download.downloaded_at.desc())
        .limit(limit)
    )
    return [
        {
            "id": d.id,
            "sessionId": d.session_id,
            "format": d.format,
            "scrapedUrl": d.scraped_url,
            "downloadedAt": d.downloaded_at.isoformat() if d.downloaded_at else None,
        }
        for d in result.scalars().all()
    ]


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "phoneNumber": user.phone_number,
        "creditsBalance": user.credits_balance,
        "emailVerified": user.email_verified_at is not None,
        "preferredAiModel": user.preferred_ai_model,
        "businessSector": user.business_sector,
        "companySize": user.company_size,
        "isActive": user.is_active,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
