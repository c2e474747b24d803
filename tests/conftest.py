"""Shared fixtures: in-memory database, mocked actor platform, app client and users."""

import base64
import os

# Settings are read at import time by easyscrapy.db.session
os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["FERNET_KEY"] = base64.urlsafe_b64encode(b"0" * 32).decode()
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["APIFY_TOKEN"] = "apify-test-token"
os.environ["ACTOR_WEBHOOK_SECRET"] = "actor-hook-secret"
os.environ["RESEND_API_KEY"] = ""

from datetime import timedelta
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from easyscrapy.app import create_app
from easyscrapy.db.session import get_db
from easyscrapy.models import Base, ScrapeType, ScrapingSession, SessionStatus, StoredItem, User
from easyscrapy.services.actor_client import ActorClient, get_actor_client
from easyscrapy.services.auth_service import create_jwt, hash_password
from easyscrapy.services.pack_service import seed_packs
from easyscrapy_cli.utils import now_utc

TEST_PASSWORD = "s3cret-password"

MARKETPLACE_URL = "https://www.facebook.com/marketplace/antananarivo/search?query=velo"
PAGE_URL = "https://www.facebook.com/easyscrapy.page"
OTHER_PAGE_URL = "https://www.facebook.com/concurrent.page"
POSTS_ACTOR = "apify~facebook-posts-scraper"
PAGE_INFO_ACTOR = "apify~facebook-pages-scraper"
COMMENTS_ACTOR = "apify~facebook-comments-scraper"

RAW_LISTINGS = [
    {
        "id": "1001",
        "marketplace_listing_title": "Vélo VTT",
        "listing_price": {"amount": "250000", "currency": "MGA"},
        "location": {"reverse_geocode": {"city": "Antananarivo"}},
        "listingUrl": "https://www.facebook.com/marketplace/item/1001",
        "primary_listing_photo": {"image": {"uri": "https://cdn.example.com/1001.jpg"}},
    },
    {
        "id": "1002",
        "custom_title": "Casque",
        "price": 30,
        "lieu": "Toamasina",
        "url": "https://www.facebook.com/marketplace/item/1002",
    },
]


class FakeApify:
    """In-memory stand-in for the Apify REST API, served through httpx.MockTransport.

    ``items``/``run_status`` apply to every actor unless ``items_by_actor`` or
    ``status_by_actor`` holds an entry for the actor a run was started on.
    """

    def __init__(self):
        self.run_status = "RUNNING"
        self.items: list[dict[str, Any]] = list(RAW_LISTINGS)
        self.items_by_actor: dict[str, list[dict[str, Any]]] = {}
        self.status_by_actor: dict[str, str] = {}
        self.fail_start = False
        self.requests: list[httpx.Request] = []
        self.runs = 0
        self.run_actors: dict[str, str] = {}

    def started(self, actor_id: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == "POST" and r.url.path.endswith(f"/acts/{actor_id}/runs")
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/runs"):
            if self.fail_start:
                return httpx.Response(500, json={"error": {"message": "boom"}})
            self.runs += 1
            self.run_actors[str(self.runs)] = path.split("/acts/", 1)[-1].rsplit("/", 1)[0]
            return httpx.Response(
                201,
                json={"data": {"id": f"run_{self.runs}", "defaultDatasetId": f"ds_{self.runs}", "status": "RUNNING"}},
            )
        if request.method == "GET" and "/actor-runs/" in path:
            run_id = path.rsplit("/", 1)[-1]
            actor_id = self.run_actors.get(run_id[4:])
            status = self.status_by_actor.get(actor_id, self.run_status)
            return httpx.Response(
                200,
                json={"data": {"id": run_id, "status": status, "defaultDatasetId": "ds_" + run_id[4:]}},
            )
        if request.method == "GET" and path.endswith("/items"):
            dataset_id = path.split("/datasets/", 1)[-1].split("/", 1)[0]
            actor_id = self.run_actors.get(dataset_id[3:])
            return httpx.Response(200, json=self.items_by_actor.get(actor_id, self.items))
        if request.method == "DELETE" and "/datasets/" in path:
            return httpx.Response(204)
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_apify() -> FakeApify:
    return FakeApify()


@pytest.fixture
async def actor(fake_apify) -> ActorClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_apify.handler))
    yield ActorClient(client=http)
    await http.aclose()


@pytest.fixture
async def client(session_factory, actor) -> AsyncClient:
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_actor_client] = lambda: actor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def make_user(
    db: AsyncSession, email: str = "user@example.com", *, role: str = "user", credits: float = 0.0
) -> User:
    user = User(
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        name=email.split("@")[0],
        role=role,
        credits_balance=credits,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt(user.id)}"}


async def make_session(
    db: AsyncSession,
    user: User | None,
    *,
    status: str = SessionStatus.COMPLETED,
    is_paid: bool = False,
    total_items: int = 2,
    session_id: str = "sess_test",
    download_token: str | None = None,
    expires_in_days: int = 30,
    with_items: bool = True,
) -> ScrapingSession:
    session = ScrapingSession(
        id=session_id,
        user_id=user.id if user else None,
        url=MARKETPLACE_URL,
        status=status,
        actor_run_id="run_1",
        dataset_id="ds_1",
        is_paid=is_paid,
        total_items=total_items,
        has_data=total_items > 0,
        download_token=download_token,
        download_expires_at=now_utc() + timedelta(days=expires_in_days) if download_token else None,
    )
    db.add(session)
    if with_items:
        for position in range(total_items):
            db.add(StoredItem(
                session_id=session_id,
                user_id=user.id if user else None,
                title=f"Annonce {position}",
                price=f"{(position + 1) * 1000} MGA",
                price_amount=float((position + 1) * 1000),
                description="Très bon état",
                location="Antananarivo",
                url=f"https://www.facebook.com/marketplace/item/{session_id}-{position}",
                external_id=f"{session_id}-{position}",
                images=[],
                position=position,
            ))
    await db.commit()
    await db.refresh(session)
    return session


async def make_page_session(
    db: AsyncSession,
    user: User,
    rows: list[tuple[str, dict[str, Any]]],
    *,
    page_urls: tuple[str, ...] = (PAGE_URL,),
    is_paid: bool = True,
    session_id: str = "sess_pages",
) -> ScrapingSession:
    """Completed Facebook pages session whose stored items carry the given (item_type, raw row) pairs."""
    session = ScrapingSession(
        id=session_id,
        user_id=user.id,
        url=page_urls[0],
        page_urls=list(page_urls),
        scrape_type=ScrapeType.FACEBOOK_PAGES,
        status=SessionStatus.COMPLETED,
        is_paid=is_paid,
        total_items=len(rows),
        has_data=bool(rows),
    )
    db.add(session)
    for position, (item_type, raw) in enumerate(rows):
        db.add(StoredItem(
            session_id=session_id,
            user_id=user.id,
            item_type=item_type,
            title=raw.get("text") or raw.get("title") or "",
            description=raw.get("text"),
            raw_data=raw,
            position=position,
        ))
    await db.commit()
    await db.refresh(session)
    return session


@pytest.fixture
async def user(db) -> User:
    return await make_user(db)


@pytest.fixture
async def admin(db) -> User:
    return await make_user(db, "admin@example.com", role="admin")


@pytest.fixture
async def packs(db):
    return await seed_packs(db)
