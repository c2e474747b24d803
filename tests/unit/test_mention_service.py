"""Unit tests for brand keyword management and mention detection in page sessions."""

import json

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import PAGE_URL, make_page_session, make_session, make_user
from easyscrapy.config import get_settings
from easyscrapy.models import BrandMention, CreditTransaction
from easyscrapy.services import analysis_service, credit_service, email_service
from easyscrapy.services import mention_service as mentions
from easyscrapy.services.credit_service import InsufficientCreditsError

PAGE_ROWS = [
    ("page_info", {"title": "EasyScrapy", "facebookUrl": PAGE_URL}),
    ("post", {"postId": "p1", "text": "EasyScrapy lance sa promo", "pageName": "easyscrapy.page", "likes": 12,
              "url": "https://www.facebook.com/easyscrapy.page/posts/p1"}),
    ("post", {"postId": "p2", "text": "Horaires d'ouverture", "pageName": "easyscrapy.page"}),
    ("comment", {"id": "c1", "text": "Arnaque, EasyScrapy ne répond pas !", "profileName": "Hery",
                 "postUrl": "https://www.facebook.com/easyscrapy.page/posts/p1", "likesCount": 3}),
    ("comment", {"id": "c2", "text": "rapido est super", "profileName": "Lova",
                 "postUrl": "https://www.facebook.com/easyscrapy.page/posts/p1"}),
]

URGENT_COMPLAINT = {
    "type": "complaint", "confidence": 90, "sentiment": "negative", "sentimentScore": 5,
    "priority": "urgent", "responseTime": 5, "reasoning": "Client mécontent",
}
OUT_OF_RANGE = {
    "type": "annonce", "confidence": 70, "sentiment": "positive", "sentimentScore": 140,
    "priority": "critique", "responseTime": 7, "reasoning": "Publication de la marque",
}


class FakeClassifier:
    """Answers per text: an urgent complaint, out-of-range values, or an outage."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prompt = json.loads(request.content)["messages"][1]["content"]
        if "Arnaque" in prompt:
            content = json.dumps(URGENT_COMPLAINT)
        elif "promo" in prompt:
            content = f"```json\n{json.dumps(OUT_OF_RANGE)}\n```"
        else:
            return httpx.Response(503, text="upstream down")
        return httpx.Response(200, json={"id": "gen-m", "choices": [{"message": {"content": content}}]})


@pytest.fixture
async def classifier(monkeypatch):
    fake = FakeClassifier()
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    monkeypatch.setattr(analysis_service, "get_http_client", lambda: http)
    monkeypatch.setattr(get_settings(), "openrouter_api_key", "or-test-key")
    yield fake
    await http.aclose()


@pytest.fixture
def alerts(monkeypatch) -> list[tuple[str, list[dict]]]:
    sent = []

    async def fake_alert(to_email, mention_rows):
        sent.append((to_email, mention_rows))
        return True

    monkeypatch.setattr(email_service, "send_mention_alert_email", fake_alert)
    return sent


async def _watching(db: AsyncSession, credits: float = 10.0, email_alerts: bool = True):
    user = await make_user(db, "brand@example.com", credits=credits)
    await mentions.add_keyword(db, user.id, "EasyScrapy", category="brand", email_alerts=email_alerts)
    await mentions.add_keyword(db, user.id, "Rapido", email_alerts=False)
    return user


@pytest.mark.unit
class TestKeywords:
    async def test_set_keywords_replaces_the_list(self, db: AsyncSession) -> None:
        user = await make_user(db, "brand@example.com")
        first = await mentions.set_keywords(db, user.id, ["Alpha", "Beta"])
        beta_id = first[1].id

        active = await mentions.set_keywords(db, user.id, ["beta", "  Gamma  ", "gamma", ""])

        assert [k.keyword for k in active] == ["Beta", "Gamma"]
        assert active[0].id == beta_id

    async def test_add_reactivates_known_keyword(self, db: AsyncSession) -> None:
        user = await make_user(db, "brand@example.com")
        await mentions.set_keywords(db, user.id, ["Alpha"])
        await mentions.set_keywords(db, user.id, [])

        row = await mentions.add_keyword(db, user.id, "alpha", email_alerts=False)

        assert row.keyword == "Alpha"
        assert row.is_active is True
        assert row.email_alerts is False
        assert [k.keyword for k in await mentions.list_keywords(db, user.id)] == ["Alpha"]

    async def test_delete_is_scoped_to_owner(self, db: AsyncSession) -> None:
        owner = await make_user(db, "brand@example.com")
        other = await make_user(db, "other@example.com")
        row = await mentions.add_keyword(db, owner.id, "Alpha")
        with pytest.raises(mentions.KeywordNotFoundError):
            await mentions.delete_keyword(db, other.id, row.id)
        await mentions.delete_keyword(db, owner.id, row.id)
        assert await mentions.list_keywords(db, owner.id) == []


@pytest.mark.unit
class TestClassification:
    def test_keyword_match_is_case_insensitive(self) -> None:
        assert mentions.find_keywords("J'adore RAPIDO", ["Rapido", "EasyScrapy"]) == ["Rapido"]

    @pytest.mark.parametrize("text,mention_type,sentiment,score", [
        ("Je recommande cette boutique", "recommendation", "positive", 75),
        ("Gros problème avec ma commande", "complaint", "negative", 25),
        ("Vous livrez à Toamasina ?", "question", "neutral", 50),
    ])
    def test_heuristic(self, text, mention_type, sentiment, score) -> None:
        result = mentions.heuristic_classification(text, ["X"])
        assert (result["type"], result["sentiment"], result["sentimentScore"]) == (mention_type, sentiment, score)
        assert result["priority"] == "medium"
        assert result["reasoning"] == mentions.HEURISTIC_REASONING

    def test_out_of_range_values_are_coerced(self) -> None:
        result = mentions.coerce_classification(OUT_OF_RANGE, ["EasyScrapy"])
        assert result["type"] == "question"
        assert result["priority"] == "medium"
        assert result["sentiment"] == "positive"
        assert result["sentimentScore"] == 100.0
        assert result["responseTime"] == 60


@pytest.mark.unit
class TestAnalyzeSessionMentions:
    async def test_detects_classifies_and_charges(self, db: AsyncSession, classifier, alerts) -> None:
        user = await _watching(db)
        session = await make_page_session(db, user, PAGE_ROWS)

        result = await mentions.analyze_session_mentions(db, user, session)

        assert result["mentionsFound"] == 3
        assert result["urgentMentions"] == 1
        # 3 mentions x 0.05 + 2 keywords x 0.1, rounded up to the tenth
        assert result["creditsUsed"] == 0.4
        assert await credit_service.get_balance(db, user.id) == 9.6
        assert len(classifier.requests) == 3

        by_text = {m["text"]: m for m in result["mentions"]}
        complaint = by_text["Arnaque, EasyScrapy ne répond pas !"]
        assert complaint["priority"] == "urgent"
        assert complaint["author"] == "Hery"
        assert complaint["likes"] == 3
        assert complaint["postType"] == "comment"

        promo = by_text["EasyScrapy lance sa promo"]
        assert promo["type"] == "question"
        assert promo["author"] == "easyscrapy.page"
        assert promo["postUrl"] == "https://www.facebook.com/easyscrapy.page/posts/p1"

        fallback = by_text["rapido est super"]
        assert fallback["keywords"] == ["Rapido"]
        assert fallback["type"] == "recommendation"
        assert fallback["reasoning"] == mentions.HEURISTIC_REASONING

        counts = {k.keyword: k.mentions_count for k in await mentions.list_keywords(db, user.id)}
        assert counts == {"EasyScrapy": 2, "Rapido": 1}

        tx = (await db.execute(select(CreditTransaction))).scalar_one()
        assert tx.service_type == "mention_analysis"

        assert len(alerts) == 1
        assert alerts[0][0] == "brand@example.com"
        assert [row["author"] for row in alerts[0][1]] == ["Hery"]

    async def test_no_alert_when_disabled(self, db: AsyncSession, classifier, alerts) -> None:
        user = await _watching(db, email_alerts=False)
        session = await make_page_session(db, user, PAGE_ROWS)
        result = await mentions.analyze_session_mentions(db, user, session)
        assert result["urgentMentions"] == 1
        assert alerts == []

    async def test_reanalysis_replaces_session_mentions(self, db: AsyncSession, classifier, alerts) -> None:
        user = await _watching(db)
        session = await make_page_session(db, user, PAGE_ROWS)
        await mentions.analyze_session_mentions(db, user, session)
        await mentions.analyze_session_mentions(db, user, session)

        assert await db.scalar(select(func.count(BrandMention.id))) == 3
        assert await credit_service.get_balance(db, user.id) == 9.2

    async def test_requires_keywords(self, db: AsyncSession, classifier) -> None:
        user = await make_user(db, "brand@example.com", credits=10.0)
        session = await make_page_session(db, user, PAGE_ROWS)
        with pytest.raises(mentions.MentionError, match="Aucun mot-clé configuré"):
            await mentions.analyze_session_mentions(db, user, session)

    async def test_balance_must_cover_keywords(self, db: AsyncSession, classifier) -> None:
        user = await _watching(db, credits=0.1)
        session = await make_page_session(db, user, PAGE_ROWS)
        with pytest.raises(InsufficientCreditsError):
            await mentions.analyze_session_mentions(db, user, session)
        assert classifier.requests == []
        assert await db.scalar(select(func.count(BrandMention.id))) == 0

    async def test_marketplace_session_is_rejected(self, db: AsyncSession, classifier) -> None:
        user = await _watching(db)
        session = await make_session(db, user)
        with pytest.raises(mentions.MentionError):
            await mentions.analyze_session_mentions(db, user, session)


@pytest.mark.unit
class TestMentionListing:
    async def test_stats_filters_and_resolve(self, db: AsyncSession, classifier, alerts) -> None:
        user = await _watching(db)
        session = await make_page_session(db, user, PAGE_ROWS)
        await mentions.analyze_session_mentions(db, user, session)

        stats = await mentions.mention_stats(db, user.id)
        assert stats == {
            "total": 3, "new": 3, "recommendations": 1, "questions": 1, "complaints": 1,
            # (100 + 5 + 75) / 3
            "avgSentiment": 60,
        }

        urgent, total = await mentions.list_mentions(db, user.id, priority="urgent")
        assert total == 1
        resolved = await mentions.resolve_mention(db, user.id, urgent[0].id, "Client rappelé")
        assert resolved.status == "resolved"
        assert resolved.resolution_notes == "Client rappelé"
        assert resolved.resolved_at is not None

        assert (await mentions.mention_stats(db, user.id))["new"] == 2
        _, still_new = await mentions.list_mentions(db, user.id, status="new")
        assert still_new == 2

    async def test_empty_stats(self, db: AsyncSession) -> None:
        user = await make_user(db, "brand@example.com")
        stats = await mentions.mention_stats(db, user.id)
        assert stats["total"] == 0
        assert stats["avgSentiment"] == 50

    async def test_resolve_other_users_mention(self, db: AsyncSession) -> None:
        user = await make_user(db, "brand@example.com")
        with pytest.raises(mentions.MentionNotFoundError):
            await mentions.resolve_mention(db, user.id, 999)
