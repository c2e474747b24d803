"""MVola routes: initiate a merchant payment, poll it, receive the gateway callback."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from easyscrapy.models.user import User
from easyscrapy.schemas.scrape import MvolaInitiateRequest
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.mvola_service import (
    MvolaClient,
    MvolaError,
    get_mvola_client,
    get_payment_by_correlation,
    initiate_payment,
    parse_callback,
    sync_payment,
)
from easyscrapy.services.payment_service import AlreadyPaidError, PackNotFoundError
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository, get_session_repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/mvola", tags=["mvola"])


def _payment_dict(payment) -> dict:
    return {
        "serverCorrelationId": payment.server_correlation_id,
        "clientTransactionId": payment.client_transaction_id,
        "sessionId": payment.session_id,
        "packId": payment.pack_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
    }


@router.post("/initiate-payment")
async def initiate(
    body: MvolaInitiateRequest,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
    mvola: MvolaClient = Depends(get_mvola_client),
):
    try:
        payment = await initiate_payment(repo, mvola, user, body.session_id, body.pack_id, body.msisdn)
    except (PackNotFoundError, SessionNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyPaidError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MvolaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _payment_dict(payment)


@router.get("/status/{server_correlation_id}")
async def status(
    server_correlation_id: str,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
    mvola: MvolaClient = Depends(get_mvola_client),
):
    payment = await get_payment_by_correlation(repo.db, server_correlation_id)
    if not payment or payment.user_id != user.id:
        raise HTTPException(status_code=404, detail="Payment not found")
    try:
        payment = await sync_payment(repo, mvola, payment)
    except MvolaError as e:
        raise HTTPException(status_code=502, detail=str(e))

    result = _payment_dict(payment)
    if payment.status == "completed" and payment.session_id:
        session = await repo.get(payment.session_id)
        result["downloadUrl"] = session.download_url if session else None
    return result


@router.put("/callback")
async def callback(
    request: Request,
    repo: SessionRepository = Depends(get_session_repository),
    mvola: MvolaClient = Depends(get_mvola_client),
):
    """Gateway notification. Its body is only used to find the payment to re-check."""
    try:
        parsed = parse_callback(await request.json())
    except (ValueError, MvolaError):
        raise HTTPException(status_code=400, detail="Invalid callback body")

    if not parsed.server_correlation_id:
        raise HTTPException(status_code=400, detail="Missing serverCorrelationId")
    payment = await get_payment_by_correlation(repo.db, parsed.server_correlation_id)
    if not payment:
        logger.warning("MVola callback for unknown correlation id %s", parsed.server_correlation_id)
        return {"status": "ignored"}

    try:
        payment = await sync_payment(repo, mvola, payment)
    except MvolaError as e:
        logger.error("MVola callback sync failed for %s: %s", parsed.server_correlation_id, e)
        raise HTTPException(status_code=502, detail="Could not verify transaction")
    return {"status": payment.status}
