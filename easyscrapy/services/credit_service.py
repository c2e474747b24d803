"""Credit ledger: balance mutations, reservations, trial grants and history.

Every mutation locks the user row, updates ``users.credits_balance`` and
appends one ``credit_transactions`` row whose ``balance_after`` is the new
balance. Functions flush but do not commit unless ``commit=True``; callers that
combine several writes (webhook handlers) commit once at the end.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import (
    LOCAL_IPS,
    TRIAL_CREDITS_BREAKDOWN,
    TRIAL_CREDITS_TOTAL,
    TRIAL_EXPIRATION_DAYS,
)
from easyscrapy.models.credit_transaction import CreditTransaction
from easyscrapy.models.user import User
from easyscrapy_cli.utils import ensure_aware, now_utc

logger = logging.getLogger(__name__)


class CreditError(Exception):
    """Base class for credit ledger errors."""


class UserNotFoundError(CreditError):
    pass


class InsufficientCreditsError(CreditError):
    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: {required} required, {available} available")


class ReservationStateError(CreditError):
    """Raised when confirming/cancelling a transaction that is not reserved."""


class TrialAlreadyUsedError(CreditError):
    pass


@dataclass
class CreditBalance:
    total: float
    trial: float
    purchased: float
    trial_expires_at: datetime | None


def _round(value: float) -> float:
    return round(value + 0.0, 2)


async def _lock_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id).with_for_update())
    user = result.scalar_one_or_none()
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


def _append(
    db: AsyncSession,
    user: User,
    amount: float,
    transaction_type: str,
    *,
    service_type: str | None = None,
    reference_id: str | None = None,
    status: str = "completed",
    description: str | None = None,
    metadata: dict | None = None,
) -> CreditTransaction:
    user.credits_balance = _round(user.credits_balance + amount)
    tx = CreditTransaction(
        user_id=user.id,
        amount=_round(amount),
        balance_after=user.credits_balance,
        transaction_type=transaction_type,
        service_type=service_type,
        reference_id=reference_id,
        status=status,
        description=description,
        extra=metadata,
    )
    db.add(tx)
    return tx


async def get_balance(db: AsyncSession, user_id: int) -> float:
    result = await db.execute(select(User.credits_balance).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return float(balance)


async def get_balance_breakdown(db: AsyncSession, user_id: int) -> CreditBalance:
    """Split the balance into remaining trial credits and purchased credits."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")

    total = float(user.credits_balance)
    trial = await _remaining_trial(db, user) if user.trial_credits_granted else 0.0
    return CreditBalance(
        total=total,
        trial=trial,
        purchased=max(0.0, _round(total - trial)),
        trial_expires_at=ensure_aware(user.trial_credits_expires_at),
    )


async def _remaining_trial(db: AsyncSession, user: User, *, ignore_expiry: bool = False) -> float:
    expires_at = ensure_aware(user.trial_credits_expires_at)
    if not expires_at or (not ignore_expiry and expires_at <= now_utc()):
        return 0.0

    granted = await db.scalar(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0.0)).where(
            CreditTransaction.user_id == user.id,
            CreditTransaction.transaction_type == "trial_grant",
        )
    )
    used = await db.scalar(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0.0)).where(
            CreditTransaction.user_id == user.id,
            CreditTransaction.transaction_type == "usage",
            CreditTransaction.status != "refunded",
            CreditTransaction.created_at <= expires_at,
        )
    )
    remaining = float(granted) - abs(float(used))
    return max(0.0, min(_round(remaining), float(user.credits_balance)))


async def add_credits(
    db: AsyncSession,
    user_id: int,
    amount: float,
    transaction_type: str = "purchase",
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    *,
    commit: bool = False,
) -> CreditTransaction:
    if amount <= 0:
        raise ValueError("amount must be positive")
    user = await _lock_user(db, user_id)
    tx = _append(
        db, user, amount, transaction_type,
        reference_id=reference_id, description=description, metadata=metadata,
    )
    await db.flush()
    logger.info("Credits added: user=%s amount=%s type=%s balance=%s", user_id, amount, transaction_type, user.credits_balance)
    if commit:
        await db.commit()
    return tx


async def deduct_credits(
    db: AsyncSession,
    user_id: int,
    amount: float,
    service_type: str,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    *,
    transaction_type: str = "usage",
    commit: bool = False,
) -> CreditTransaction:
    if amount <= 0:
        raise ValueError("amount must be positive")
    user = await _lock_user(db, user_id)
    if user.credits_balance + 1e-9 < amount:
        raise InsufficientCreditsError(amount, user.credits_balance)
    tx = _append(
        db, user, -amount, transaction_type,
        service_type=service_type, reference_id=reference_id,
        description=description, metadata=metadata,
    )
    await db.flush()
    logger.info("Credits deducted: user=%s amount=%s service=%s balance=%s", user_id, amount, service_type, user.credits_balance)
    if commit:
        await db.commit()
    return tx


async def has_enough_credits(db: AsyncSession, user_id: int, required: float) -> bool:
    return await get_balance(db, user_id) >= required


async def reserve_credits(
    db: AsyncSession,
    user_id: int,
    amount: float,
    service_type: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> CreditTransaction:
    """Hold credits for a pending action; confirm or cancel later."""
    user = await _lock_user(db, user_id)
    if user.credits_balance + 1e-9 < amount:
        raise InsufficientCreditsError(amount, user.credits_balance)
    tx = _append(
        db, user, -amount, "usage",
        service_type=service_type, reference_id=reference_id, status="reserved",
        description=description or f"Reserved for {service_type}",
    )
    await db.commit()
    await db.refresh(tx)
    return tx


async def _get_reserved(db: AsyncSession, transaction_id: int) -> CreditTransaction:
    result = await db.execute(
        select(CreditTransaction).where(CreditTransaction.id == transaction_id).with_for_update()
    )
    tx = result.scalar_one_or_none()
    if not tx:
        raise ReservationStateError(f"Transaction {transaction_id} not found")
    if tx.status != "reserved":
        raise ReservationStateError(f"Transaction {transaction_id} is not in reserved status")
    return tx


async def confirm_reservation(
    db: AsyncSession, transaction_id: int, actual_amount: float | None = None
) -> CreditTransaction:
    """Finalize a reservation, refunding the difference when the actual cost is lower."""
    tx = await _get_reserved(db, transaction_id)
    reserved = abs(tx.amount)

    if actual_amount is not None and actual_amount < reserved:
        difference = _round(reserved - actual_amount)
        user = await _lock_user(db, tx.user_id)
        _append(
            db, user, difference, "refund",
            reference_id=f"refund_{transaction_id}",
            description=f"Refund from transaction {transaction_id}",
            metadata={"original_transaction_id": transaction_id},
        )
        tx.amount = -_round(actual_amount)

    tx.status = "completed"
    await db.commit()
    logger.info("Reservation confirmed: transaction=%s actual_amount=%s", transaction_id, actual_amount)
    return tx


async def cancel_reservation(db: AsyncSession, transaction_id: int) -> CreditTransaction:
    tx = await _get_reserved(db, transaction_id)
    refund = abs(tx.amount)
    user = await _lock_user(db, tx.user_id)
    _append(
        db, user, refund, "refund",
        reference_id=f"cancel_{transaction_id}",
        description=f"Cancelled reservation {transaction_id}",
    )
    tx.status = "refunded"
    await db.commit()
    logger.info("Reservation cancelled: transaction=%s refunded=%s", transaction_id, refund)
    return tx


async def grant_trial_credits(db: AsyncSession, user_id: int, signup_ip: str | None) -> CreditTransaction | None:
    """Grant the one-time trial credits.

    Returns None when the user already received them. Raises
    TrialAlreadyUsedError when another account claimed a trial from the same
    (non-local) IP address.
    """
    signup_ip = signup_ip or "unknown"
    user = await _lock_user(db, user_id)
    if user.trial_credits_granted:
        logger.warning("Trial credits already granted for user %s", user_id)
        return None

    if signup_ip not in LOCAL_IPS:
        result = await db.execute(
            select(User.id).where(
                User.signup_ip == signup_ip,
                User.trial_credits_granted == True,  # noqa: E712
                User.id != user_id,
            ).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.warning("Trial credits denied: duplicate IP %s for user %s", signup_ip, user_id)
            raise TrialAlreadyUsedError("Trial credits already used from this IP address")

    expires_at = now_utc() + timedelta(days=TRIAL_EXPIRATION_DAYS)
    user.trial_credits_granted = True
    user.trial_credits_expires_at = expires_at
    user.signup_ip = signup_ip

    parts = " + ".join(f"{v}cr {k}" for k, v in TRIAL_CREDITS_BREAKDOWN.items())
    tx = _append(
        db, user, TRIAL_CREDITS_TOTAL, "trial_grant",
        reference_id=f"trial_{user_id}",
        description=f"Trial credits: {parts}",
        metadata={**TRIAL_CREDITS_BREAKDOWN, "expires_at": expires_at.isoformat()},
    )
    await db.commit()
    logger.info("Trial credits granted: user=%s amount=%s expires=%s", user_id, TRIAL_CREDITS_TOTAL, expires_at)
    return tx


async def expire_trial_credits(db: AsyncSession) -> int:
    """Remove unused trial credits whose validity ended. Returns the number of users affected."""
    result = await db.execute(
        select(User).where(
            User.trial_credits_granted == True,  # noqa: E712
            User.trial_credits_expires_at < now_utc(),
        )
    )
    expired = 0
    for user in result.scalars().all():
        already = await db.scalar(
            select(func.count(CreditTransaction.id)).where(
                CreditTransaction.user_id == user.id,
                CreditTransaction.transaction_type == "expiration",
            )
        )
        if already:
            continue
        remaining = await _remaining_trial(db, user, ignore_expiry=True)
        if remaining <= 0:
            continue
        await deduct_credits(
            db, user.id, remaining, "marketplace",
            reference_id=f"expire_trial_{user.id}",
            description="Trial credits expired",
            transaction_type="expiration",
        )
        expired += 1
        logger.info("Expired trial credits for user %s: %s credits", user.id, remaining)
    await db.commit()
    return expired


async def admin_adjust_credits(
    db: AsyncSession, user_id: int, amount: float, reason: str, admin_id: int | None = None
) -> CreditTransaction:
    """Change a user's balance by exactly ``amount`` (positive or negative)."""
    if amount == 0:
        raise ValueError("amount must be non-zero")
    user = await _lock_user(db, user_id)
    if user.credits_balance + amount < -1e-9:
        raise InsufficientCreditsError(-amount, user.credits_balance)
    tx = _append(
        db, user, amount, "admin_adjustment",
        reference_id=f"admin_{admin_id}" if admin_id else None,
        description=reason,
        metadata={"admin_id": admin_id} if admin_id else None,
    )
    await db.commit()
    await db.refresh(tx)
    logger.info("Admin credit adjustment: user=%s amount=%s by admin=%s", user_id, amount, admin_id)
    return tx


async def get_credit_history(
    db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0
) -> tuple[list[CreditTransaction], int]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = await db.scalar(
        select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
    )
    return list(result.scalars().all()), int(total or 0)
