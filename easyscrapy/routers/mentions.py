"""Brand mention routes: watched keywords, session analysis, listing and resolution."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import MAX_PAGE_SIZE
from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.schemas.mentions import KeywordCreate, KeywordList, MentionResolve
from easyscrapy.services import mention_service as mentions
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.credit_service import InsufficientCreditsError
from easyscrapy.services.payment_service import SessionNotReadyError
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository, get_session_repository

router = APIRouter(prefix="/api/mentions", tags=["mentions"])


@router.post("/sessions/{session_id}/analyze")
async def analyze(
    session_id: str,
    user: User = Depends(get_current_user),
    repo: SessionRepository = Depends(get_session_repository),
):
    session = await repo.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    try:
        return await mentions.analyze_session_mentions(repo.db, user, session)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except mentions.MentionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientCreditsError:
        raise HTTPException(status_code=402, detail="Crédits insuffisants pour l'analyse de mentions")


@router.get("")
async def list_all(
    status: Literal["new", "resolved"] | None = None,
    priority: Literal["low", "medium", "high", "urgent"] | None = None,
    type: Literal["recommendation", "question", "complaint"] | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await mentions.list_mentions(
        db, user.id, status=status, priority=priority, mention_type=type, limit=limit, offset=(page - 1) * limit
    )
    return {"mentions": [mentions.mention_to_dict(m) for m in rows], "total": total, "page": page, "limit": limit}


@router.get("/stats")
async def stats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await mentions.mention_stats(db, user.id)


@router.post("/{mention_id}/resolve")
async def resolve(
    mention_id: int,
    body: MentionResolve | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        mention = await mentions.resolve_mention(db, user.id, mention_id, body.notes if body else None)
    except mentions.MentionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return mentions.mention_to_dict(mention)


@router.get("/keywords")
async def list_keywords(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"keywords": [mentions.keyword_to_dict(k) for k in await mentions.list_keywords(db, user.id)]}


@router.post("/keywords")
async def set_keywords(body: KeywordList, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    rows = await mentions.set_keywords(db, user.id, body.keywords)
    return {"keywords": [mentions.keyword_to_dict(k) for k in rows]}


@router.post("/keywords/add", status_code=201)
async def add_keyword(body: KeywordCreate, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        row = await mentions.add_keyword(
            db, user.id, body.keyword, category=body.category, email_alerts=body.email_alerts
        )
    except mentions.MentionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return mentions.keyword_to_dict(row)


@router.delete("/keywords/{keyword_id}", status_code=204)
async def delete_keyword(keyword_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        await mentions.delete_keyword(db, user.id, keyword_id)
    except mentions.KeywordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
