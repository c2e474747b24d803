"""Unit tests for scrape orchestration against a mocked actor platform."""

import json

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import (
    COMMENTS_ACTOR,
    MARKETPLACE_URL,
    OTHER_PAGE_URL,
    PAGE_INFO_ACTOR,
    PAGE_URL,
    POSTS_ACTOR,
    FakeApify,
)
from easyscrapy.models import ScrapingSession, SessionStatus, StoredItem, User
from easyscrapy.services.actor_client import ActorClient
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.page_tracking_service import list_tracked_pages, normalize_page_url
from easyscrapy.services.scrape_service import (
    ActiveExtractionError,
    InvalidScrapeUrlError,
    PageExtractionOptions,
    ScrapeStartError,
    refresh_running_sessions,
    refresh_session,
    start_page_scrape,
    start_scrape,
    validate_scrape_url,
)
from easyscrapy.services.session_service import SessionRepository


@pytest.mark.unit
class TestValidateUrl:
    @pytest.mark.parametrize("url", [
        "https://www.facebook.com/marketplace/antananarivo/search?query=velo",
        "https://facebook.com/marketplace/category/vehicles",
    ])
    def test_marketplace_urls(self, url: str) -> None:
        validate_scrape_url(url, "marketplace")

    @pytest.mark.parametrize("url", [
        "http://www.facebook.com/marketplace/antananarivo",
        "https://www.facebook.com/groups/123",
        "https://example.com/marketplace/x",
        "",
    ])
    def test_rejected_marketplace_urls(self, url: str) -> None:
        with pytest.raises(InvalidScrapeUrlError):
            validate_scrape_url(url, "marketplace")

    def test_page_url(self) -> None:
        validate_scrape_url(PAGE_URL, "facebook_pages")
        with pytest.raises(InvalidScrapeUrlError):
            validate_scrape_url("https://twitter.com/easyscrapy", "facebook_pages")

    def test_unknown_type(self) -> None:
        with pytest.raises(InvalidScrapeUrlError):
            validate_scrape_url(MARKETPLACE_URL, "tiktok")


@pytest.mark.unit
class TestStartScrape:
    async def test_start_marks_session_running(self, db: AsyncSession, user: User, actor: ActorClient) -> None:
        session = await start_scrape(SessionRepository(db), actor, user=user, url=MARKETPLACE_URL, results_limit=5)
        assert session.status == SessionStatus.RUNNING
        assert session.actor_run_id == "run_1"
        assert session.dataset_id == "ds_1"
        assert session.user_id == user.id

    async def test_anonymous_session(self, db: AsyncSession, actor: ActorClient) -> None:
        session = await start_scrape(SessionRepository(db), actor, user=None, url=MARKETPLACE_URL)
        assert session.user_id is None
        assert session.results_limit == 3

    async def test_invalid_url_creates_nothing(self, db: AsyncSession, actor: ActorClient) -> None:
        with pytest.raises(InvalidScrapeUrlError):
            await start_scrape(SessionRepository(db), actor, user=None, url="https://example.com")
        assert await db.scalar(select(func.count(ScrapingSession.id))) == 0

    async def test_results_limit_bounds(self, db: AsyncSession, actor: ActorClient) -> None:
        with pytest.raises(ValueError):
            await start_scrape(SessionRepository(db), actor, user=None, url=MARKETPLACE_URL, results_limit=0)

    async def test_actor_failure_marks_session_failed(
        self, db: AsyncSession, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.fail_start = True
        with pytest.raises(ScrapeStartError) as exc:
            await start_scrape(SessionRepository(db), actor, user=None, url=MARKETPLACE_URL)
        session = await SessionRepository(db).get(exc.value.session_id)
        assert session.status == SessionStatus.FAILED
        assert "Failed to start actor run" in session.error_message


@pytest.mark.unit
class TestRefreshSession:
    async def test_still_running(self, db: AsyncSession, user: User, actor: ActorClient) -> None:
        repo = SessionRepository(db)
        session = await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        status = await refresh_session(repo, actor, session)
        assert status.status == "RUNNING"
        assert session.status == SessionStatus.RUNNING

    async def test_success_stores_items_and_preview(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        repo = SessionRepository(db)
        session = await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        fake_apify.run_status = "SUCCEEDED"

        await refresh_session(repo, actor, session)

        assert session.status == SessionStatus.COMPLETED
        assert session.total_items == 2
        assert session.has_data is True
        assert [p["title"] for p in session.preview_items] == ["Vélo VTT", "Casque"]
        items = await get_session_items(db, session.id)
        assert [i.position for i in items] == [0, 1]
        assert items[0].raw_data["id"] == "1001"
        assert items[0].price == "250 000 MGA"

    async def test_terminal_session_is_not_polled_again(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        repo = SessionRepository(db)
        session = await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        fake_apify.run_status = "SUCCEEDED"
        await refresh_session(repo, actor, session)
        polled = len(fake_apify.requests)

        status = await refresh_session(repo, actor, session)
        assert status.status == "SUCCEEDED"
        assert len(fake_apify.requests) == polled

    @pytest.mark.parametrize("run_status", ["FAILED", "ABORTED", "TIMED-OUT"])
    async def test_failed_run(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify, run_status: str
    ) -> None:
        repo = SessionRepository(db)
        session = await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        fake_apify.run_status = run_status
        await refresh_session(repo, actor, session)
        assert session.status == SessionStatus.FAILED
        assert run_status in session.error_message

    async def test_refresh_running_sessions(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        repo = SessionRepository(db)
        await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        await start_scrape(repo, actor, user=user, url=MARKETPLACE_URL)
        fake_apify.run_status = "SUCCEEDED"

        assert await refresh_running_sessions(repo, actor) == 2
        assert await db.scalar(select(func.count(StoredItem.id))) == 4
        assert await refresh_running_sessions(repo, actor) == 0


def _posts(*post_ids: str, page_url: str = PAGE_URL) -> list[dict]:
    return [
        {
            "postId": post_id,
            "text": f"Post {post_id}",
            "url": f"https://www.facebook.com/{post_id}",
            "facebookUrl": page_url,
            "time": "2026-10-01T08:00:00Z",
        }
        for post_id in post_ids
    ]


POSTS_ONLY = PageExtractionOptions(extract_info=False)


@pytest.mark.unit
class TestStartPageScrape:
    async def test_starts_posts_and_info_runs(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        session = await start_page_scrape(
            SessionRepository(db), actor, user=user, urls=[PAGE_URL, OTHER_PAGE_URL, PAGE_URL + "/"]
        )
        assert session.status == SessionStatus.RUNNING
        assert session.scrape_type == "facebook_pages"
        assert session.page_urls == [PAGE_URL, OTHER_PAGE_URL]
        assert [r["kind"] for r in session.sub_runs] == ["posts", "info"]
        assert session.actor_run_id == "run_1"
        assert session.extraction_config["incrementalMode"] is False
        assert session.extraction_config["postsLimit"] == 50

        [posts_request] = fake_apify.started(POSTS_ACTOR)
        body = json.loads(posts_request.content)
        assert body["startUrls"] == [{"url": PAGE_URL}, {"url": OTHER_PAGE_URL}]
        assert body["resultsLimit"] == 50
        assert len(fake_apify.started(PAGE_INFO_ACTOR)) == 1

    async def test_url_count_is_bounded(self, db: AsyncSession, user: User, actor: ActorClient) -> None:
        urls = [f"https://www.facebook.com/page{n}" for n in range(21)]
        with pytest.raises(ValueError):
            await start_page_scrape(SessionRepository(db), actor, user=user, urls=urls)
        with pytest.raises(ValueError):
            await start_page_scrape(SessionRepository(db), actor, user=user, urls=[])
        assert await db.scalar(select(func.count(ScrapingSession.id))) == 0

    async def test_invalid_page_url(self, db: AsyncSession, user: User, actor: ActorClient) -> None:
        with pytest.raises(InvalidScrapeUrlError):
            await start_page_scrape(SessionRepository(db), actor, user=user, urls=[PAGE_URL, "https://example.com/x"])

    @pytest.mark.parametrize("options", [
        PageExtractionOptions(extract_info=False, extract_posts=False),
        PageExtractionOptions(extract_posts=False, extract_comments=True),
        PageExtractionOptions(posts_limit=0),
    ])
    async def test_rejected_options(
        self, db: AsyncSession, user: User, actor: ActorClient, options: PageExtractionOptions
    ) -> None:
        with pytest.raises(ValueError):
            await start_page_scrape(SessionRepository(db), actor, user=user, urls=[PAGE_URL], options=options)

    async def test_one_active_extraction_per_user(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        repo = SessionRepository(db)
        first = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL], options=POSTS_ONLY)

        with pytest.raises(ActiveExtractionError) as exc:
            await start_page_scrape(repo, actor, user=user, urls=[OTHER_PAGE_URL])
        assert exc.value.session_id == first.id
        assert fake_apify.runs == 1

        fake_apify.run_status = "SUCCEEDED"
        fake_apify.items = _posts("p1")
        await refresh_session(repo, actor, first)
        second = await start_page_scrape(repo, actor, user=user, urls=[OTHER_PAGE_URL], options=POSTS_ONLY)
        assert second.status == SessionStatus.RUNNING

    async def test_partial_start_failure_keeps_running(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        calls = 0
        handler = fake_apify.handler

        def flaky(request):
            nonlocal calls
            if request.method == "POST" and PAGE_INFO_ACTOR in request.url.path:
                calls += 1
                return httpx.Response(500, json={"error": {"message": "boom"}})
            return handler(request)

        actor._client = httpx.AsyncClient(transport=httpx.MockTransport(flaky))
        session = await start_page_scrape(SessionRepository(db), actor, user=user, urls=[PAGE_URL])
        await actor._client.aclose()

        assert calls == 1
        assert session.status == SessionStatus.RUNNING
        info = next(r for r in session.sub_runs if r["kind"] == "info")
        assert info["status"] == "FAILED"
        assert info["runId"] is None

    async def test_every_start_failing_fails_session(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.fail_start = True
        with pytest.raises(ScrapeStartError) as exc:
            await start_page_scrape(SessionRepository(db), actor, user=user, urls=[PAGE_URL])
        session = await SessionRepository(db).get(exc.value.session_id)
        assert session.status == SessionStatus.FAILED

    async def test_start_scrape_delegates_single_page(self, db: AsyncSession, user: User, actor: ActorClient) -> None:
        session = await start_scrape(
            SessionRepository(db), actor, user=user, url=PAGE_URL, scrape_type="facebook_pages", results_limit=10
        )
        assert session.page_urls == [PAGE_URL]
        assert session.results_limit == 10
        with pytest.raises(ValueError):
            await start_scrape(SessionRepository(db), actor, user=None, url=PAGE_URL, scrape_type="facebook_pages")


@pytest.mark.unit
class TestRefreshPageSession:
    async def test_stores_info_and_posts(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.items_by_actor = {
            POSTS_ACTOR: _posts("p1", "p2"),
            PAGE_INFO_ACTOR: [{"title": "EasyScrapy", "pageUrl": PAGE_URL, "intro": "Scraping simple"}],
        }
        repo = SessionRepository(db)
        session = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL])

        fake_apify.status_by_actor = {POSTS_ACTOR: "SUCCEEDED"}
        status = await refresh_session(repo, actor, session)
        assert status.status == "RUNNING"
        assert session.status == SessionStatus.RUNNING
        assert [r["status"] for r in session.sub_runs] == ["SUCCEEDED", "RUNNING"]

        fake_apify.run_status = "SUCCEEDED"
        status = await refresh_session(repo, actor, session)
        assert status.status == "SUCCEEDED"
        assert session.status == SessionStatus.COMPLETED
        assert session.total_items == 3
        assert session.item_counts == {"pages": 1, "pageInfo": 1, "posts": 2, "comments": 0}
        assert [p["external_id"] for p in session.preview_items] == ["p1", "p2"]

        items = await get_session_items(db, session.id)
        assert [i.item_type for i in items] == ["page_info", "post", "post"]
        assert items[0].title == "EasyScrapy"
        assert items[0].description == "Scraping simple"

    async def test_comments_stage_runs_after_posts(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.items_by_actor = {
            POSTS_ACTOR: _posts("p1", "p2"),
            COMMENTS_ACTOR: [{
                "id": "c1",
                "text": "Je recommande",
                "profileName": "Rija",
                "commentUrl": "https://www.facebook.com/p1?comment_id=c1",
            }],
        }
        repo = SessionRepository(db)
        options = PageExtractionOptions(extract_info=False, extract_comments=True, comments_limit=5)
        session = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL], options=options)
        assert fake_apify.started(COMMENTS_ACTOR) == []

        fake_apify.run_status = "SUCCEEDED"
        fake_apify.status_by_actor = {COMMENTS_ACTOR: "RUNNING"}
        status = await refresh_session(repo, actor, session)

        assert status.status == "RUNNING"
        [comments_request] = fake_apify.started(COMMENTS_ACTOR)
        body = json.loads(comments_request.content)
        assert body["startUrls"] == [{"url": "https://www.facebook.com/p1"}, {"url": "https://www.facebook.com/p2"}]
        assert body["resultsLimit"] == 5
        assert [r["kind"] for r in session.sub_runs] == ["posts", "comments"]

        fake_apify.status_by_actor = {}
        await refresh_session(repo, actor, session)

        assert len(fake_apify.started(COMMENTS_ACTOR)) == 1
        assert session.status == SessionStatus.COMPLETED
        assert session.item_counts["comments"] == 1
        comment = (await get_session_items(db, session.id))[-1]
        assert comment.item_type == "comment"
        assert comment.title == "Rija"
        assert comment.description == "Je recommande"

    async def test_failed_info_run_keeps_posts(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.items_by_actor = {POSTS_ACTOR: _posts("p1")}
        repo = SessionRepository(db)
        session = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL])
        fake_apify.status_by_actor = {POSTS_ACTOR: "SUCCEEDED", PAGE_INFO_ACTOR: "FAILED"}

        await refresh_session(repo, actor, session)

        assert session.status == SessionStatus.COMPLETED
        assert session.item_counts["posts"] == 1
        assert session.item_counts["pageInfo"] == 0

    async def test_all_runs_failed(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        repo = SessionRepository(db)
        session = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL])
        fake_apify.run_status = "ABORTED"

        await refresh_session(repo, actor, session)

        assert session.status == SessionStatus.FAILED
        assert "posts=ABORTED" in session.error_message

    async def test_default_mode_keeps_every_post(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.items = _posts("p1", "p2")
        fake_apify.run_status = "SUCCEEDED"
        repo = SessionRepository(db)

        first = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL], options=POSTS_ONLY)
        await refresh_session(repo, actor, first)
        fake_apify.items = _posts("p1", "p2", "p3")
        second = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL], options=POSTS_ONLY)
        await refresh_session(repo, actor, second)

        assert first.total_items == 2
        assert second.total_items == 3
        assert [i.external_id for i in await get_session_items(db, second.id)] == ["p1", "p2", "p3"]

    async def test_incremental_mode_skips_known_posts(
        self, db: AsyncSession, user: User, actor: ActorClient, fake_apify: FakeApify
    ) -> None:
        fake_apify.items = _posts("p1", "p2") + _posts("o1", page_url=OTHER_PAGE_URL)
        fake_apify.run_status = "SUCCEEDED"
        repo = SessionRepository(db)
        options = PageExtractionOptions(extract_info=False, incremental_mode=True)

        first = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL, OTHER_PAGE_URL], options=options)
        await refresh_session(repo, actor, first)
        fake_apify.items.append(_posts("p3")[0])
        second = await start_page_scrape(repo, actor, user=user, urls=[PAGE_URL, OTHER_PAGE_URL], options=options)
        await refresh_session(repo, actor, second)

        assert first.total_items == 3
        assert second.total_items == 1
        [item] = await get_session_items(db, second.id)
        assert item.external_id == "p3"
        assert item.item_type == "post"
        assert item.raw_data["text"] == "Post p3"
        tracked = {p.page_url: p.total_posts_scraped for p in await list_tracked_pages(db, user.id)}
        assert tracked == {normalize_page_url(PAGE_URL): 3, normalize_page_url(OTHER_PAGE_URL): 1}
