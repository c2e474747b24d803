"""Unit tests for the credit ledger."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user
from easyscrapy.constants import TRIAL_CREDITS_TOTAL
from easyscrapy.models import CreditTransaction, User
from easyscrapy.services import credit_service
from easyscrapy_cli.utils import now_utc


async def _transactions(db: AsyncSession, user_id: int) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction).where(CreditTransaction.user_id == user_id).order_by(CreditTransaction.id)
    )
    return list(result.scalars().all())


@pytest.mark.unit
class TestLedger:
    async def test_add_and_deduct_keep_balance_after(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 10, reference_id="pi_1", commit=True)
        tx = await credit_service.deduct_credits(db, user.id, 2.5, "marketplace", reference_id="sess_1", commit=True)

        assert tx.amount == -2.5
        assert tx.balance_after == 7.5
        assert await credit_service.get_balance(db, user.id) == 7.5
        assert [t.balance_after for t in await _transactions(db, user.id)] == [10.0, 7.5]

    async def test_deduct_more_than_balance(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 1, commit=True)
        with pytest.raises(credit_service.InsufficientCreditsError) as exc:
            await credit_service.deduct_credits(db, user.id, 5, "marketplace")
        assert exc.value.required == 5
        assert exc.value.available == 1.0
        assert len(await _transactions(db, user.id)) == 1

    async def test_non_positive_amounts_rejected(self, db: AsyncSession, user: User) -> None:
        with pytest.raises(ValueError):
            await credit_service.add_credits(db, user.id, 0)
        with pytest.raises(ValueError):
            await credit_service.deduct_credits(db, user.id, -1, "marketplace")

    async def test_unknown_user(self, db: AsyncSession) -> None:
        with pytest.raises(credit_service.UserNotFoundError):
            await credit_service.get_balance(db, 9999)


@pytest.mark.unit
class TestReservations:
    async def test_confirm_with_lower_cost_refunds_difference(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 10, commit=True)
        reserved = await credit_service.reserve_credits(db, user.id, 4, "ai_analysis", reference_id="an_1")
        assert await credit_service.get_balance(db, user.id) == 6.0

        confirmed = await credit_service.confirm_reservation(db, reserved.id, actual_amount=3)
        assert confirmed.status == "completed"
        assert confirmed.amount == -3.0
        assert await credit_service.get_balance(db, user.id) == 7.0
        refund = (await _transactions(db, user.id))[-1]
        assert refund.transaction_type == "refund"
        assert refund.amount == 1.0

    async def test_cancel_restores_balance(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 5, commit=True)
        reserved = await credit_service.reserve_credits(db, user.id, 5, "benchmark")
        cancelled = await credit_service.cancel_reservation(db, reserved.id)
        assert cancelled.status == "refunded"
        assert await credit_service.get_balance(db, user.id) == 5.0

    async def test_confirm_twice_fails(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 5, commit=True)
        reserved = await credit_service.reserve_credits(db, user.id, 1, "benchmark")
        await credit_service.confirm_reservation(db, reserved.id)
        with pytest.raises(credit_service.ReservationStateError):
            await credit_service.confirm_reservation(db, reserved.id)


@pytest.mark.unit
class TestTrialCredits:
    async def test_grant_once(self, db: AsyncSession, user: User) -> None:
        tx = await credit_service.grant_trial_credits(db, user.id, "41.188.10.1")
        assert tx.amount == TRIAL_CREDITS_TOTAL
        assert user.trial_credits_granted is True
        assert await credit_service.grant_trial_credits(db, user.id, "41.188.10.1") is None
        assert await credit_service.get_balance(db, user.id) == TRIAL_CREDITS_TOTAL

    async def test_same_public_ip_refused(self, db: AsyncSession, user: User) -> None:
        await credit_service.grant_trial_credits(db, user.id, "41.188.10.1")
        other = await make_user(db, "other@example.com")
        with pytest.raises(credit_service.TrialAlreadyUsedError):
            await credit_service.grant_trial_credits(db, other.id, "41.188.10.1")

    async def test_local_ip_never_refused(self, db: AsyncSession, user: User) -> None:
        await credit_service.grant_trial_credits(db, user.id, "127.0.0.1")
        other = await make_user(db, "other@example.com")
        assert await credit_service.grant_trial_credits(db, other.id, "127.0.0.1") is not None

    async def test_breakdown_splits_trial_and_purchased(self, db: AsyncSession, user: User) -> None:
        await credit_service.grant_trial_credits(db, user.id, "127.0.0.1")
        await credit_service.add_credits(db, user.id, 10, commit=True)
        breakdown = await credit_service.get_balance_breakdown(db, user.id)
        assert breakdown.total == 14.0
        assert breakdown.trial == 4.0
        assert breakdown.purchased == 10.0
        assert breakdown.trial_expires_at is not None

    async def test_expired_trial_is_removed_once(self, db: AsyncSession, user: User) -> None:
        await credit_service.grant_trial_credits(db, user.id, "127.0.0.1")
        await credit_service.add_credits(db, user.id, 10, commit=True)
        user.trial_credits_expires_at = now_utc() - timedelta(days=1)
        await db.commit()

        assert await credit_service.expire_trial_credits(db) == 1
        assert await credit_service.get_balance(db, user.id) == 10.0
        assert await credit_service.expire_trial_credits(db) == 0
        assert await credit_service.get_balance(db, user.id) == 10.0


@pytest.mark.unit
class TestAdminAdjustment:
    async def test_adjustment_writes_exactly_one_row(self, db: AsyncSession, user: User) -> None:
        tx = await credit_service.admin_adjust_credits(db, user.id, 12.5, "Geste commercial", admin_id=1)
        assert tx.transaction_type == "admin_adjustment"
        assert tx.balance_after == 12.5
        count = await db.scalar(
            select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user.id)
        )
        assert count == 1

    async def test_negative_adjustment_cannot_go_below_zero(self, db: AsyncSession, user: User) -> None:
        with pytest.raises(credit_service.InsufficientCreditsError):
            await credit_service.admin_adjust_credits(db, user.id, -1, "Correction")

    async def test_zero_adjustment_rejected(self, db: AsyncSession, user: User) -> None:
        with pytest.raises(ValueError):
            await credit_service.admin_adjust_credits(db, user.id, 0, "Rien")

    async def test_history_newest_first(self, db: AsyncSession, user: User) -> None:
        await credit_service.add_credits(db, user.id, 1, reference_id="a", commit=True)
        await credit_service.add_credits(db, user.id, 2, reference_id="b", commit=True)
        history, total = await credit_service.get_credit_history(db, user.id)
        assert total == 2
        assert [t.reference_id for t in history] == ["b", "a"]
