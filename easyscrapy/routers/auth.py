"""Auth routes: email/password signup, login, logout, verification, password reset."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenRequest,
)
from easyscrapy.services.auth_service import (
    clear_session_cookie,
    create_jwt,
    get_client_ip,
    get_current_user,
    set_session_cookie,
)
from easyscrapy.services.user_service import (
    EmailTakenError,
    InvalidCredentialsError,
    InvalidTokenError,
    authenticate,
    register_user,
    request_password_reset,
    reset_password,
    user_to_dict,
    verify_email,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _login_response(response: Response, user: User) -> dict:
    token = create_jwt(user.id)
    set_session_cookie(response, token)
    return {"user": user_to_dict(user), "token": token}


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await register_user(
            db, email=body.email, password=body.password, name=body.name, signup_ip=get_client_ip(request)
        )
    except EmailTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _login_response(response, user)


@router.post("/login")
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    try:
        user = await authenticate(db, body.email, body.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    logger.info("User %s logged in", user.id)
    return _login_response(response, user)


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return user_to_dict(user)


@router.post("/verify-email")
async def verify(body: TokenRequest, db: AsyncSession = Depends(get_db)):
    try:
        user = await verify_email(db, body.token)
    except InvalidTokenError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "email": user.email}


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    await request_password_reset(db, body.email)
    # Same answer whether or not the address exists
    return {"success": True}


@router.post("/reset-password")
async def reset(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    try:
        await reset_password(db, body.token, body.new_password)
    except InvalidTokenError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True}
