"""JWT session management, password hashing and the current-user dependencies."""

import hmac
import ipaddress
from datetime import datetime, timedelta, UTC

import jwt
from fastapi import Depends, HTTPException, Request, Response
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.config import get_settings
from easyscrapy.constants import COOKIE_NAME
from easyscrapy.db.session import get_db
from easyscrapy.models.user import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_jwt(user_id: int) -> str:
    """Create a signed JWT for the given user."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(UTC) + timedelta(days=settings.jwt_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def set_session_cookie(response: Response, token: str) -> None:
    """Set the JWT as an HTTP-only cookie on the response."""
    settings = get_settings()
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=settings.jwt_expire_days * 86400,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=COOKIE_NAME, path="/")


def _decode_jwt(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(
        token, settings.jwt_secret, algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )


def _is_trusted_proxy(host: str | None) -> bool:
    if not host:
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(address in network for network in get_settings().trusted_proxy_networks)


def get_client_ip(request: Request) -> str:
    """Peer address, or the X-Forwarded-For client when the peer is a trusted proxy.

    The header is read right to left and the first hop that is not itself a
    trusted proxy wins, so a client cannot spoof its address by prepending entries.
    """
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and _is_trusted_proxy(peer):
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted_proxy(hop):
                return hop
        if hops:
            return hops[0]
    return peer or "unknown"


def _request_token(request: Request) -> str | None:
    """Session cookie first, then an ``Authorization: Bearer`` header."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def _load_active_user(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id, User.is_active == True))  # noqa: E712
    return result.scalar_one_or_none()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: decode the JWT and return the User, or raise 401."""
    token = _request_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = _decode_jwt(token)
        user_id = int(payload["sub"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = await _load_active_user(db, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found or deactivated")
    return user


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like get_current_user but returns None instead of raising 401."""
    token = _request_token(request)
    if not token:
        return None
    try:
        payload = _decode_jwt(token)
        user_id = int(payload["sub"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        return None
    return await _load_active_user(db, user_id)


def _valid_api_key(request: Request) -> bool:
    expected = get_settings().admin_api_key
    provided = request.headers.get("x-api-key")
    return bool(expected and provided and hmac.compare_digest(provided, expected))


async def require_admin(
    request: Request,
    user: User | None = Depends(get_optional_user),
) -> User | None:
    """Admin guard: a logged-in admin, or a request carrying the admin API key.

    Returns the admin user, or None when access was granted by API key.
    """
    if user is not None and user.is_admin:
        return user
    if _valid_api_key(request):
        return None
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    raise HTTPException(status_code=403, detail="Admin access required")
