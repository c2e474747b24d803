"""Stripe payments: checkout, verified webhooks, download unlock and credit unlock.

Payment state only changes from a verified Stripe event, a verified MVola
transaction status, or a credit charge by the session owner.
"""

import asyncio
import json
import logging
import secrets
from datetime import timedelta
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.config import get_settings
from easyscrapy.constants import (
    DOWNLOAD_EXPIRY_DAYS,
    DOWNLOAD_TOKEN_BYTES,
    PAYMENT_ERROR_FALLBACK,
    PAYMENT_ERROR_MESSAGES,
)
from easyscrapy.models.payment import Payment
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.models.webhook_event import WebhookEvent
from easyscrapy.services import credit_service
from easyscrapy.services.email_service import send_download_email
from easyscrapy.services.estimation_service import (
    estimate_facebook_pages,
    estimate_marketplace,
    estimate_page_extraction,
)
from easyscrapy.services.pack_service import get_pack
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository
from easyscrapy_cli.utils import now_utc

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    pass


class PackNotFoundError(PaymentError):
    pass


class AlreadyPaidError(PaymentError):
    pass


class SessionNotReadyError(PaymentError):
    pass


class PaymentRequiredError(PaymentError):
    pass


class WebhookSignatureError(PaymentError):
    pass


def init_stripe() -> None:
    """Set the Stripe API key from settings. Call once at startup."""
    settings = get_settings()
    stripe.api_key = settings.stripe_secret_key


def payment_error_message(code: str | None) -> str:
    """French guidance text for a Stripe decline code."""
    return PAYMENT_ERROR_MESSAGES.get(code or "", PAYMENT_ERROR_FALLBACK)


async def create_checkout(
    repo: SessionRepository, user: User, session_id: str, pack_id: str
) -> dict[str, str]:
    """Create a Stripe Checkout Session for unlocking one scraping session."""
    settings = get_settings()
    db = repo.db

    pack = await get_pack(db, pack_id)
    if not pack:
        raise PackNotFoundError(f"Pack {pack_id} not found")

    session = await repo.get(session_id)
    if not session or (session.user_id is not None and session.user_id != user.id):
        raise SessionNotFoundError(f"Session {session_id} not found")
    if session.is_paid:
        raise AlreadyPaidError(f"Session {session_id} is already paid")

    await repo.update(session, user_id=user.id, pack_id=pack.id)

    if pack.stripe_price_id:
        line_items = [{"price": pack.stripe_price_id, "quantity": 1}]
    else:
        line_items = [{
            "price_data": {
                "currency": "eur",
                "product_data": {"name": f"{settings.app_name} {pack.name}", "description": pack.description},
                "unit_amount": pack.price_eur,
            },
            "quantity": 1,
        }]

    checkout = await asyncio.to_thread(
        stripe.checkout.Session.create,
        mode="payment",
        payment_method_types=["card"],
        line_items=line_items,
        client_reference_id=session.id,
        customer_email=user.email,
        metadata={"sessionId": session.id, "userId": str(user.id), "packId": pack.id},
        payment_intent_data={"metadata": {"sessionId": session.id, "packId": pack.id}},
        success_url=f"{settings.frontend_url}/download?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.frontend_url}/pricing",
    )
    logger.info("Checkout created: session=%s pack=%s checkout=%s", session.id, pack.id, checkout.id)
    return {"checkoutId": checkout.id, "url": checkout.url}


def grant_download_access(
    repo: SessionRepository,
    session: ScrapingSession,
    *,
    payment_method: str,
    payment_intent_id: str | None = None,
    pack_id: str | None = None,
) -> ScrapingSession:
    """Mark the session paid and issue a fresh download token. The caller commits."""
    settings = get_settings()
    token = secrets.token_hex(DOWNLOAD_TOKEN_BYTES)
    return repo.mark_paid(
        session,
        payment_method=payment_method,
        payment_intent_id=payment_intent_id,
        download_token=token,
        download_url=f"{settings.frontend_url}/download?session_id={session.id}&token={token}",
        download_expires_at=now_utc() + timedelta(days=DOWNLOAD_EXPIRY_DAYS),
        pack_id=pack_id,
    )


def verify_stripe_signature(payload: bytes, signature: str | None) -> dict[str, Any]:
    """Check the Stripe-Signature header and return the decoded event."""
    settings = get_settings()
    if not signature or not settings.stripe_webhook_secret:
        raise WebhookSignatureError("Missing signature or webhook secret")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature, settings.stripe_webhook_secret
        )
    except UnicodeDecodeError as e:
        raise WebhookSignatureError("Invalid payload encoding") from e
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError("Invalid signature") from e
    try:
        return json.loads(payload)
    except ValueError as e:
        raise WebhookSignatureError("Invalid payload") from e


async def handle_stripe_event(repo: SessionRepository, event: dict[str, Any]) -> str:
    """Apply a verified Stripe event exactly once.

    The event id is recorded in webhook_events before any effect, inside the
    same transaction. A replayed id hits the unique constraint and is reported
    as a duplicate without touching anything else.
    """
    db = repo.db
    event_id = event.get("id")
    event_type = event.get("type", "")
    if not event_id:
        raise PaymentError("Event has no id")

    db.add(WebhookEvent(provider="stripe", event_id=event_id, event_type=event_type))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("Duplicate Stripe event %s ignored", event_id)
        return "duplicate"

    data = (event.get("data") or {}).get("object") or {}
    unlocked: ScrapingSession | None = None
    if event_type == "checkout.session.completed":
        unlocked = await handle_checkout_completed(repo, data)
    elif event_type == "payment_intent.payment_failed":
        await handle_payment_failed(repo, data)
    else:
        logger.debug("Unhandled Stripe event type %s", event_type)

    await db.commit()

    if unlocked is not None:
        user = await db.get(User, unlocked.user_id) if unlocked.user_id else None
        if user:
            await send_download_email(user.email, unlocked.id, unlocked.download_url, unlocked.total_items)
    return "processed"


async def handle_checkout_completed(repo: SessionRepository, data: dict[str, Any]) -> ScrapingSession | None:
    """Unlock the session referenced by a paid checkout. Returns it when newly unlocked."""
    if data.get("payment_status") != "paid":
        logger.info("Checkout %s not paid (%s), ignoring", data.get("id"), data.get("payment_status"))
        return None

    metadata = data.get("metadata") or {}
    session_id = metadata.get("sessionId") or data.get("client_reference_id")
    if not session_id:
        logger.warning("Checkout %s carries no session id", data.get("id"))
        return None

    session = await repo.get(session_id, for_update=True)
    if not session:
        logger.warning("Checkout %s references unknown session %s", data.get("id"), session_id)
        return None
    if session.is_paid:
        logger.info("Session %s already paid, checkout %s ignored", session_id, data.get("id"))
        return None

    db = repo.db
    pack_id = metadata.get("packId") or session.pack_id
    payment_intent_id = data.get("payment_intent") or data.get("id")
    user_id = session.user_id or _int_or_none(metadata.get("userId"))
    pack = await get_pack(db, pack_id) if pack_id else None

    if session.user_id is None and user_id is not None:
        session.user_id = user_id
    grant_download_access(
        repo, session, payment_method="stripe", payment_intent_id=payment_intent_id, pack_id=pack_id
    )
    await _upsert_stripe_payment(
        db,
        payment_intent_id,
        user_id=user_id,
        session_id=session.id,
        pack_id=pack_id,
        stripe_checkout_id=data.get("id"),
        amount=(data.get("amount_total") or 0) / 100,
        currency=(data.get("currency") or "eur").lower(),
        status="succeeded",
        credits_purchased=float(pack.nb_downloads) if pack else 0.0,
        failure_code=None,
        failure_message=None,
    )
    if pack and user_id is not None:
        await credit_service.add_credits(
            db, user_id, float(pack.nb_downloads), "purchase",
            reference_id=payment_intent_id,
            description=f"Achat {pack.name}",
            metadata={"packId": pack.id, "sessionId": session.id},
        )
    await db.flush()
    logger.info("Session %s unlocked by Stripe payment %s", session.id, payment_intent_id)
    return session


async def handle_payment_failed(repo: SessionRepository, data: dict[str, Any]) -> None:
    """Record a failed payment attempt. The session itself is left unchanged."""
    metadata = data.get("metadata") or {}
    error = data.get("last_payment_error") or {}
    code = error.get("decline_code") or error.get("code")
    session_id = metadata.get("sessionId")

    session = await repo.get(session_id) if session_id else None
    existing = await _find_stripe_payment(repo.db, data.get("id"))
    if existing and existing.status == "succeeded":
        logger.info("Payment intent %s already succeeded, failure ignored", data.get("id"))
        return
    await _upsert_stripe_payment(
        repo.db,
        data.get("id"),
        user_id=session.user_id if session else None,
        session_id=session.id if session else None,
        pack_id=metadata.get("packId"),
        amount=(data.get("amount") or 0) / 100,
        currency=(data.get("currency") or "eur").lower(),
        status="failed",
        failure_code=code,
        failure_message=payment_error_message(code),
    )
    logger.warning("Payment failed for session %s: %s", session_id, code)


async def _find_stripe_payment(db: AsyncSession, payment_intent_id: str | None) -> Payment | None:
    if not payment_intent_id:
        return None
    result = await db.execute(
        select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
    )
    return result.scalar_one_or_none()


async def _upsert_stripe_payment(db: AsyncSession, payment_intent_id: str | None, **fields: Any) -> Payment:
    """One payments row per payment intent: a retried card updates the earlier attempt."""
    payment = await _find_stripe_payment(db, payment_intent_id)
    if payment is None:
        payment = Payment(provider="stripe", stripe_payment_intent_id=payment_intent_id)
        db.add(payment)
    for key, value in fields.items():
        setattr(payment, key, value)
    await db.flush()
    return payment


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def verify_payment(repo: SessionRepository, session_id: str) -> dict[str, Any]:
    session = await repo.get(session_id)
    if not session:
        raise SessionNotFoundError(f"Session {session_id} not found")

    error = None
    if not session.is_paid:
        result = await repo.db.execute(
            select(Payment)
            .where(Payment.session_id == session_id, Payment.status == "failed")
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        failed = result.scalar_one_or_none()
        if failed:
            error = {"code": failed.failure_code, "message": failed.failure_message}

    return {
        "isPaid": session.is_paid,
        "packId": session.pack_id,
        "datasetId": session.dataset_id,
        "createdAt": session.created_at.isoformat() if session.created_at else None,
        "downloadUrl": session.download_url if session.is_paid else None,
        "downloadToken": session.download_token if session.is_paid else None,
        "error": error,
    }


def credits_cost_for_session(session: ScrapingSession) -> float:
    count = max(session.total_items or 0, 1)
    if session.scrape_type == ScrapeType.FACEBOOK_PAGES:
        counts = session.item_counts or {}
        if counts:
            return estimate_page_extraction(
                max(int(counts.get("pages") or 0), 1),
                int(counts.get("posts") or 0),
                int(counts.get("comments") or 0),
            ).total_cost
        return estimate_facebook_pages(1, posts_per_page=count).total_cost
    return estimate_marketplace(count).total_cost


async def unlock_with_credits(repo: SessionRepository, user: User, session: ScrapingSession) -> Payment:
    """Pay for a completed session from the user's credit balance.

    Raises InsufficientCreditsError when the balance does not cover the cost.
    """
    if session.user_id != user.id:
        raise SessionNotFoundError(f"Session {session.id} not found")
    if session.is_paid:
        raise AlreadyPaidError(f"Session {session.id} is already paid")
    if session.status != SessionStatus.COMPLETED:
        raise SessionNotReadyError(f"Session {session.id} is not completed")

    db = repo.db
    cost = credits_cost_for_session(session)
    service_type = "facebook_pages" if session.scrape_type == ScrapeType.FACEBOOK_PAGES else "marketplace"
    await credit_service.deduct_credits(
        db, user.id, cost, service_type,
        reference_id=session.id,
        description=f"Déblocage de la session {session.id}",
        metadata={"totalItems": session.total_items},
    )
    payment = Payment(
        provider="credits",
        user_id=user.id,
        session_id=session.id,
        pack_id=session.pack_id,
        amount=cost,
        currency="credits",
        status="succeeded",
    )
    db.add(payment)
    grant_download_access(repo, session, payment_method="credits")
    await db.commit()
    logger.info("Session %s unlocked with %s credits by user %s", session.id, cost, user.id)
    return payment
