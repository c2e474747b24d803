"""Facebook page tracking routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.db.session import get_db
from easyscrapy.models.user import User
from easyscrapy.services.auth_service import get_current_user
from easyscrapy.services.page_tracking_service import list_tracked_pages

router = APIRouter(prefix="/api/facebook-pages", tags=["facebook-pages"])


@router.get("/tracking")
async def tracking(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    pages = await list_tracked_pages(db, user.id)
    return {
        "pages": [
            {
                "id": p.id,
                "pageUrl": p.page_url,
                "pageName": p.page_name,
                "lastScrapedAt": p.last_scraped_at.isoformat() if p.last_scraped_at else None,
                "lastPostId": p.last_post_id,
                "lastPostDate": p.last_post_date.isoformat() if p.last_post_date else None,
                "totalPostsScraped": p.total_posts_scraped,
                "totalSessions": p.total_sessions,
            }
            for p in pages
        ]
    }
