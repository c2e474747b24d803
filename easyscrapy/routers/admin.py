"""Admin routes: users, credit adjustments, session search and statistics.

Access: a logged-in admin, or the ``X-API-Key`` header. There is no endpoint
that marks a session paid.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.routers.credits import transaction_to_dict
from easyscrapy.schemas.credits import AdminUserUpdate, CreditAdjustRequest
from easyscrapy.services import admin_service, credit_service
from easyscrapy.services.auth_service import require_admin
from easyscrapy.services.session_service import SessionRepository, get_session_repository
from easyscrapy.services.user_service import session_summary, user_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
async def users(
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: User | None = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    found, total = await admin_service.list_users(db, search=search, limit=limit, offset=(page - 1) * limit)
    return {"users": [user_to_dict(u) for u in found], "total": total, "page": page, "limit": limit}


@router.patch("/users/{user_id}")
async def update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: User | None = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await admin_service.update_user(
            db, user_id,
            role=body.role,
            is_active=body.is_active,
            acting_admin_id=admin.id if admin else None,
        )
    except admin_service.AdminUserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except admin_service.AdminError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return user_to_dict(user)


@router.post("/users/{user_id}/credits")
async def adjust_credits(
    user_id: int,
    body: CreditAdjustRequest,
    admin: User | None = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        tx = await credit_service.admin_adjust_credits(
            db, user_id, body.amount, body.reason, admin_id=admin.id if admin else None
        )
    except credit_service.UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except credit_service.InsufficientCreditsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Admin %s adjusted credits of user %s by %s", admin.id if admin else "api-key", user_id, body.amount)
    return {"transaction": transaction_to_dict(tx), "balance": tx.balance_after}


@router.get("/sessions")
async def sessions(
    status: str | None = None,
    is_paid: bool | None = Query(None, alias="isPaid"),
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: User | None = Depends(require_admin),
    repo: SessionRepository = Depends(get_session_repository),
):
    found, total = await repo.search(
        status=status, is_paid=is_paid, search=search, limit=limit, offset=(page - 1) * limit
    )
    return {
        "sessions": [{**session_summary(s), "userId": s.user_id} for s in found],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/sessions/{session_id}")
async def session_detail(
    session_id: str,
    admin: User | None = Depends(require_admin),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return {
        **session_summary(session),
        "userId": session.user_id,
        "actorRunId": session.actor_run_id,
        "datasetId": session.dataset_id,
        "paymentMethod": session.payment_method,
        "paymentIntentId": session.payment_intent_id,
        "previewItems": session.preview_items or [],
        "downloadExpiresAt": session.download_expires_at.isoformat() if session.download_expires_at else None,
        "error": session.error_message,
    }


@router.get("/stats")
async def stats(admin: User | None = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await admin_service.get_stats(db)
