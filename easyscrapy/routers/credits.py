"""Credit routes: balance, ledger history and cost estimates."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import MAX_PAGE_SIZE
from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.schemas.credits import (
    AiAnalysisEstimateRequest,
    BenchmarkEstimateRequest,
    FacebookPagesEstimateRequest,
    MarketplaceEstimateRequest,
    SimpleEstimateRequest,
)
from easyscrapy.services import credit_service, estimation_service
from easyscrapy.services.auth_service import get_current_user, get_optional_user
from easyscrapy.services.estimation_service import EstimationError

router = APIRouter(prefix="/api/credits", tags=["credits"])
estimate_router = APIRouter(prefix="/api/estimate", tags=["estimate"])


def transaction_to_dict(tx) -> dict:
    return {
        "id": tx.id,
        "amount": tx.amount,
        "balanceAfter": tx.balance_after,
        "transactionType": tx.transaction_type,
        "serviceType": tx.service_type,
        "referenceId": tx.reference_id,
        "status": tx.status,
        "description": tx.description,
        "metadata": tx.extra,
        "createdAt": tx.created_at.isoformat() if tx.created_at else None,
    }


@router.get("/balance")
async def balance(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    breakdown = await credit_service.get_balance_breakdown(db, user.id)
    return {
        "balance": breakdown.total,
        "trialCredits": breakdown.trial,
        "purchasedCredits": breakdown.purchased,
        "trialExpiresAt": breakdown.trial_expires_at.isoformat() if breakdown.trial_expires_at else None,
    }


@router.get("/history")
async def history(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transactions, total = await credit_service.get_credit_history(db, user.id, limit=limit, offset=offset)
    return {
        "transactions": [transaction_to_dict(tx) for tx in transactions],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# --- Estimates ---


def _balance(user: User | None) -> float:
    return float(user.credits_balance) if user else 0.0


def _estimate(fn, *args, **kwargs) -> dict:
    try:
        return fn(*args, **kwargs).to_dict()
    except EstimationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@estimate_router.post("/marketplace")
async def estimate_marketplace(body: MarketplaceEstimateRequest, user: User | None = Depends(get_optional_user)):
    return _estimate(estimation_service.estimate_marketplace, body.item_count, balance=_balance(user))


@estimate_router.post("/facebook-pages")
async def estimate_facebook_pages(
    body: FacebookPagesEstimateRequest, user: User | None = Depends(get_optional_user)
):
    return _estimate(
        estimation_service.estimate_facebook_pages,
        body.page_count, posts_per_page=body.posts_per_page, balance=_balance(user),
    )


@estimate_router.post("/ai-analysis")
async def estimate_ai_analysis(body: AiAnalysisEstimateRequest, user: User | None = Depends(get_optional_user)):
    return _estimate(
        estimation_service.estimate_ai_analysis,
        body.page_count, posts_per_page=body.posts_per_page, model_id=body.model_id, balance=_balance(user),
    )


@estimate_router.post("/benchmark")
async def estimate_benchmark(body: BenchmarkEstimateRequest, user: User | None = Depends(get_optional_user)):
    return _estimate(
        estimation_service.estimate_benchmark,
        body.page_count, posts_limit=body.posts_limit, model_id=body.model_id, balance=_balance(user),
    )


@estimate_router.post("/simple")
async def estimate_simple(body: SimpleEstimateRequest, user: User | None = Depends(get_optional_user)):
    return _estimate(estimation_service.estimate_simple, body.service_type, body.quantity, balance=_balance(user))


@estimate_router.get("/models")
async def models():
    return {"models": estimation_service.list_models(), "default": estimation_service.get_default_model_id()}
