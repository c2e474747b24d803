"""Payment routes: Stripe Checkout creation and the Stripe webhook."""

import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from easyscrapy.models.user import User
from easyscrapy.schemas.scrape import CreatePaymentRequest
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.payment_service import (
    AlreadyPaidError,
    PackNotFoundError,
    PaymentError,
    WebhookSignatureError,
    create_checkout,
    handle_stripe_event,
    verify_stripe_signature,
)
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository, get_session_repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.post("/create-payment")
async def create_payment(
    body: CreatePaymentRequest,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    try:
        return await create_checkout(repo, user, body.session_id, body.pack_id)
    except (PackNotFoundError, SessionNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyPaidError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(status_code=502, detail="Payment provider error")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
    repo: SessionRepository = Depends(get_session_repository),
):
    payload = await request.body()
    try:
        event = verify_stripe_signature(payload, stripe_signature)
    except WebhookSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Stripe webhook: %s (%s)", event.get("type"), event.get("id"))
    try:
        status = await handle_stripe_event(repo, event)
    except PaymentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": status}
