"""Facebook page tracking: skip posts already delivered in earlier sessions."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.models.page_tracking import FacebookPageTracking, FacebookScrapedPost
from easyscrapy.services.item_normalizer import ScrapedItem
from easyscrapy_cli.utils import ensure_aware, now_utc, parse_timestamp

logger = logging.getLogger(__name__)


def normalize_page_url(url: str) -> str:
    return url.split("?")[0].rstrip("/").lower()


async def get_or_create_tracking(db: AsyncSession, user_id: int, page_url: str) -> FacebookPageTracking:
    page_url = normalize_page_url(page_url)
    result = await db.execute(
        select(FacebookPageTracking).where(
            FacebookPageTracking.user_id == user_id,
            FacebookPageTracking.page_url == page_url,
        )
    )
    tracking = result.scalar_one_or_none()
    if tracking is None:
        tracking = FacebookPageTracking(user_id=user_id, page_url=page_url)
        db.add(tracking)
        await db.flush()
    return tracking


async def filter_new_posts(
    db: AsyncSession,
    user_id: int,
    page_url: str,
    items: list[ScrapedItem],
    session_id: str | None = None,
) -> list[ScrapedItem]:
    """Return only the posts not seen before for this (user, page), and record them.

    Posts without an external id cannot be deduplicated and are always kept.
    Flushes but does not commit.
    """
    tracking = await get_or_create_tracking(db, user_id, page_url)

    result = await db.execute(
        select(FacebookScrapedPost.post_id).where(FacebookScrapedPost.tracking_id == tracking.id)
    )
    seen = set(result.scalars().all())

    new_items: list[ScrapedItem] = []
    for item in items:
        if item.external_id and item.external_id in seen:
            continue
        new_items.append(item)
        if not item.external_id:
            continue
        seen.add(item.external_id)
        db.add(FacebookScrapedPost(
            tracking_id=tracking.id,
            post_id=item.external_id,
            post_date=parse_timestamp(item.posted_at),
            session_id=session_id,
        ))

    dated = [(parse_timestamp(i.posted_at), i) for i in new_items if i.external_id]
    dated = [(d, i) for d, i in dated if d is not None]
    if dated:
        latest_date, latest = max(dated, key=lambda pair: pair[0])
        previous = ensure_aware(tracking.last_post_date)
        if previous is None or latest_date > previous:
            tracking.last_post_date = latest_date
            tracking.last_post_id = latest.external_id

    tracking.last_scraped_at = now_utc()
    tracking.total_posts_scraped = (tracking.total_posts_scraped or 0) + len(new_items)
    tracking.total_sessions = (tracking.total_sessions or 0) + 1
    await db.flush()

    logger.info(
        "Page tracking %s: %d scraped, %d new (user=%s)",
        tracking.page_url, len(items), len(new_items), user_id,
    )
    return new_items


async def list_tracked_pages(db: AsyncSession, user_id: int) -> list[FacebookPageTracking]:
    result = await db.execute(
        select(FacebookPageTracking)
        .where(FacebookPageTracking.user_id == user_id)
        .order_by(FacebookPageTracking.last_scraped_at.desc())
    )
    return list(result.scalars().all())
