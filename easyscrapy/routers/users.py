"""Account routes: dashboard, payment and download history, profile."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.schemas.auth import ChangePasswordRequest, ProfileUpdate
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.user_service import (
    InvalidCredentialsError,
    change_password,
    get_dashboard,
    list_downloads,
    list_payments,
    update_profile,
    user_to_dict,
)

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/dashboard")
async def dashboard(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_dashboard(db, user)


@router.get("/payments")
async def payments(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"payments": await list_payments(db, user.id)}


@router.get("/downloads")
async def downloads(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"downloads": await list_downloads(db, user.id)}


@router.put("/profile")
async def profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await update_profile(db, user, body.model_dump(exclude_unset=True))
    return user_to_dict(user)


@router.put("/password")
async def password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await change_password(db, user, body.current_password, body.new_password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True}
