"""Seed script: creates tables, the pack catalog and the bootstrap admin.

Usage:
    python -m easyscrapy.seed

Reads ADMIN_EMAIL / ADMIN_PASSWORD from the environment or .env.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def ensure_admin(db: AsyncSession, email: str, password: str) -> tuple[int, bool]:
    """Create the admin account, or promote an existing one. Returns (user_id, created)."""
    from easyscrapy.models.user import User
    from easyscrapy.services.auth_service import hash_password
    from easyscrapy_cli.utils import now_utc

    email = email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        user.role = "admin"
        user.is_active = True
        await db.commit()
        return user.id, False

    user = User(
        email=email,
        password_hash=hash_password(password),
        name="Admin",
        role="admin",
        email_verified_at=now_utc(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user.id, True


async def create_tables() -> None:
    from easyscrapy.db.session import engine
    from easyscrapy.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def main():
    # Ensure .env is loaded before importing settings
    from dotenv import load_dotenv
    load_dotenv()

    from easyscrapy.config import get_settings
    from easyscrapy.db.session import async_session_factory, engine
    from easyscrapy.services.pack_service import seed_packs

    settings = get_settings()
    await create_tables()

    async with async_session_factory() as db:
        packs = await seed_packs(db)
        print(f"Seeded {len(packs)} packs: {', '.join(p.id for p in packs)}")

        if settings.admin_email and settings.admin_password:
            user_id, created = await ensure_admin(db, settings.admin_email, settings.admin_password)
            print(f"Admin {'created' if created else 'already exists'} (id={user_id}, {settings.admin_email})")
        else:
            print("ADMIN_EMAIL / ADMIN_PASSWORD not set, skipping admin account")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
