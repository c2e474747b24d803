"""Back-office queries and user management."""

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.models.credit_transaction import CreditTransaction
from easyscrapy.models.user import User
from easyscrapy.services.session_service import SessionRepository

logger = logging.getLogger(__name__)

ROLES = {"user", "admin"}


class AdminError(Exception):
    pass


class AdminUserNotFoundError(AdminError):
    pass


async def list_users(
    db: AsyncSession, *, search: str | None = None, limit: int = 20, offset: int = 0
) -> tuple[list[User], int]:
    stmt = select(User)
    count_stmt = select(func.count(User.id))
    if search:
        pattern = f"%{search.strip()}%"
        condition = or_(User.email.ilike(pattern), User.name.ilike(pattern))
        stmt = stmt.where(condition)
        count_stmt = count_stmt.where(condition)

    result = await db.execute(stmt.order_by(User.created_at.desc()).limit(limit).offset(offset))
    total = await db.scalar(count_stmt)
    return list(result.scalars().all()), int(total or 0)


async def update_user(
    db: AsyncSession,
    user_id: int,
    *,
    role: str | None = None,
    is_active: bool | None = None,
    acting_admin_id: int | None = None,
) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise AdminUserNotFoundError(f"User {user_id} not found")
    if role is not None:
        if role not in ROLES:
            raise AdminError(f"Invalid role: {role}")
        user.role = role
    if is_active is not None:
        if not is_active and acting_admin_id == user.id:
            raise AdminError("Admins cannot suspend their own account")
        user.is_active = is_active
    await db.commit()
    await db.refresh(user)
    logger.info("User %s updated by admin %s: role=%s active=%s", user_id, acting_admin_id, user.role, user.is_active)
    return user


async def get_stats(db: AsyncSession) -> dict[str, Any]:
    session_stats = await SessionRepository(db).get_stats()
    users_total = await db.scalar(select(func.count(User.id)))
    users_active = await db.scalar(select(func.count(User.id)).where(User.is_active == True))  # noqa: E712
    credits_outstanding = await db.scalar(select(func.coalesce(func.sum(User.credits_balance), 0.0)))
    credits_consumed = await db.scalar(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0.0)).where(
            CreditTransaction.transaction_type == "usage",
            CreditTransaction.status != "refunded",
        )
    )
    return {
        "sessions": session_stats,
        "users": {"total": int(users_total or 0), "active": int(users_active or 0)},
        "credits": {
            "outstanding": round(float(credits_outstanding or 0.0), 2),
            "consumed": round(abs(float(credits_consumed or 0.0)), 2),
        },
    }
