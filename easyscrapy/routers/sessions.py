"""Session routes: listing, paid download, credit unlock, payment verification, LLM analysis and benchmark."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import Response

from easyscrapy.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from easyscrapy.models.user import User
from easyscrapy.schemas.scrape import AnalysisRequest, BenchmarkRequest
from easyscrapy.services.actor_client import ActorClient, get_actor_client
from easyscrapy.services.analysis_service import AnalysisError, analyze_session
from easyscrapy.services.auth_service import get_client_ip, get_current_user, get_optional_user
from easyscrapy.services.credit_service import InsufficientCreditsError
from easyscrapy.services.download_service import DownloadDenied, build_export
from easyscrapy.services.estimation_service import EstimationError
from easyscrapy.services.page_analysis_service import PageAnalysisError, benchmark_page
from easyscrapy.services.payment_service import (
    AlreadyPaidError,
    PaymentRequiredError,
    SessionNotReadyError,
    credits_cost_for_session,
    unlock_with_credits,
    verify_payment,
)
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository, get_session_repository
from easyscrapy.services.user_service import session_summary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("")
async def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    sessions, total = await repo.list_for_user(user.id, limit=limit, offset=(page - 1) * limit)
    return {
        "sessions": [session_summary(s) for s in sessions],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get_for_user(session_id, user.id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return {
        **session_summary(session),
        "datasetId": session.dataset_id,
        "previewItems": session.preview_items or [],
        "hasData": session.has_data,
        "paymentMethod": session.payment_method,
        "downloadUrl": session.download_url if session.is_paid else None,
        "downloadExpiresAt": session.download_expires_at.isoformat() if session.download_expires_at else None,
        "unlockCost": credits_cost_for_session(session),
        "error": session.error_message,
    }


@router.get("/{session_id}/download")
async def download(
    session_id: str,
    request: Request,
    format: str = Query("excel"),
    token: str | None = Query(None),
    header_token: str | None = Header(None, alias="x-session-token"),
    user: User | None = Depends(get_optional_user),
    repo: SessionRepository = Depends(get_session_repository),
    actor: ActorClient = Depends(get_actor_client),
):
    try:
        export = await build_export(
            repo, actor, session_id, token or header_token, format,
            user_id=user.id if user else None,
            ip_address=get_client_ip(request),
        )
    except DownloadDenied as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/{session_id}/verify-payment")
async def verify(session_id: str, repo: SessionRepository = Depends(get_session_repository)):
    try:
        return await verify_payment(repo, session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{session_id}/unlock")
async def unlock(
    session_id: str,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get(session_id, for_update=True)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    try:
        payment = await unlock_with_credits(repo, user, session)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyPaidError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SessionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=str(e))

    return {
        "success": True,
        "creditsCharged": payment.amount,
        "downloadUrl": session.download_url,
        "downloadToken": session.download_token,
    }


@router.post("/{session_id}/analysis")
async def analysis(
    session_id: str,
    body: AnalysisRequest | None = None,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    try:
        return await analyze_session(
            repo, user, session, body.model_id if body else None, body.page_url if body else None
        )
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PaymentRequiredError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except (EstimationError, PageAnalysisError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except AnalysisError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/{session_id}/benchmark")
async def benchmark(
    session_id: str,
    body: BenchmarkRequest | None = None,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    try:
        return await benchmark_page(
            repo, user, session, body.model_id if body else None, body.page_url if body else None
        )
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PaymentRequiredError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except (EstimationError, PageAnalysisError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except AnalysisError as e:
        raise HTTPException(status_code=502, detail=str(e))
