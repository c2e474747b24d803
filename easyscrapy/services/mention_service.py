"""Brand mention monitoring.

Users watch a list of keywords; analysing a completed Facebook pages session
classifies every post and comment that contains one of them (type, sentiment,
priority, suggested response time) through the LLM, with a word-list
heuristic when the model is unavailable. Urgent mentions trigger an email
alert when one of their keywords has alerts enabled.
"""

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.constants import (
    MENTION_MODEL,
    MENTION_NEGATIVE_WORDS,
    MENTION_POSITIVE_WORDS,
    MENTION_PRIORITIES,
    MENTION_RESPONSE_TIMES,
    MENTION_SENTIMENTS,
    MENTION_TYPES,
)
from easyscrapy.models.mention import BrandKeyword, BrandMention
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.prompts import MENTION_SYSTEM_PROMPT, MENTION_USER_PROMPT
from easyscrapy.services import credit_service, email_service
from easyscrapy.services.analysis_service import AnalysisError, call_openrouter, extract_json
from easyscrapy.services.credit_service import InsufficientCreditsError
from easyscrapy.services.estimation_service import estimate_mentions
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.page_analysis_service import parse_count
from easyscrapy.services.payment_service import SessionNotReadyError
from easyscrapy.services.session_service import SessionNotFoundError
from easyscrapy_cli.utils import now_utc

logger = logging.getLogger(__name__)

NO_KEYWORDS_MESSAGE = "Aucun mot-clé configuré. Veuillez d'abord configurer vos mots-clés de surveillance."
HEURISTIC_REASONING = "Analyse automatique (IA indisponible)"


class MentionError(Exception):
    """Invalid mention request (no keywords, wrong session type)."""


class KeywordNotFoundError(Exception):
    pass


class MentionNotFoundError(Exception):
    pass


# --- keywords ---

def _clean_keyword(keyword: str) -> str:
    return " ".join(keyword.split())[:100]


async def _find_keyword(db: AsyncSession, user_id: int, keyword: str) -> BrandKeyword | None:
    result = await db.execute(
        select(BrandKeyword).where(
            BrandKeyword.user_id == user_id,
            func.lower(BrandKeyword.keyword) == keyword.lower(),
        )
    )
    return result.scalars().first()


async def list_keywords(db: AsyncSession, user_id: int) -> list[BrandKeyword]:
    result = await db.execute(
        select(BrandKeyword)
        .where(BrandKeyword.user_id == user_id, BrandKeyword.is_active == True)  # noqa: E712
        .order_by(BrandKeyword.created_at, BrandKeyword.id)
    )
    return list(result.scalars().all())


async def set_keywords(db: AsyncSession, user_id: int, keywords: list[str]) -> list[BrandKeyword]:
    """Replace the watched list. Known keywords are reactivated, keeping their counters."""
    existing = (await db.execute(select(BrandKeyword).where(BrandKeyword.user_id == user_id))).scalars().all()
    by_lower = {row.keyword.lower(): row for row in existing}
    for row in existing:
        row.is_active = False

    seen = set()
    for keyword in keywords:
        cleaned = _clean_keyword(keyword)
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        row = by_lower.get(cleaned.lower())
        if row is None:
            db.add(BrandKeyword(user_id=user_id, keyword=cleaned, category="custom"))
        else:
            row.is_active = True

    await db.commit()
    logger.info("Keywords set for user %s: %d active", user_id, len(seen))
    return await list_keywords(db, user_id)


async def add_keyword(
    db: AsyncSession, user_id: int, keyword: str, *, category: str = "custom", email_alerts: bool = True
) -> BrandKeyword:
    cleaned = _clean_keyword(keyword)
    if not cleaned:
        raise MentionError("Mot-clé vide")
    row = await _find_keyword(db, user_id, cleaned)
    if row is None:
        row = BrandKeyword(user_id=user_id, keyword=cleaned, category=category, email_alerts=email_alerts)
        db.add(row)
    else:
        row.is_active = True
        row.category = category
        row.email_alerts = email_alerts
    await db.commit()
    await db.refresh(row)
    return row


async def delete_keyword(db: AsyncSession, user_id: int, keyword_id: int) -> None:
    result = await db.execute(
        select(BrandKeyword).where(BrandKeyword.id == keyword_id, BrandKeyword.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise KeywordNotFoundError(f"Keyword {keyword_id} not found")
    await db.delete(row)
    await db.commit()


# --- classification ---

def find_keywords(text: str, keywords: list[str]) -> list[str]:
    lowered = text.lower()
    return [keyword for keyword in keywords if keyword.lower() in lowered]


def heuristic_classification(text: str, keywords: list[str]) -> dict[str, Any]:
    lowered = text.lower()
    if any(word in lowered for word in MENTION_POSITIVE_WORDS):
        mention_type, sentiment, score = "recommendation", "positive", 75
    elif any(word in lowered for word in MENTION_NEGATIVE_WORDS):
        mention_type, sentiment, score = "complaint", "negative", 25
    else:
        mention_type, sentiment, score = "question", "neutral", 50
    return {
        "type": mention_type,
        "confidence": 50,
        "sentiment": sentiment,
        "sentimentScore": score,
        "priority": "medium",
        "responseTime": 60,
        "detectedKeywords": keywords,
        "reasoning": HEURISTIC_REASONING,
    }


def _bounded(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), 100.0)


def coerce_classification(data: dict[str, Any], keywords: list[str]) -> dict[str, Any]:
    """Clamp an LLM classification to the accepted values."""
    response_time = data.get("responseTime")
    return {
        "type": data.get("type") if data.get("type") in MENTION_TYPES else "question",
        "confidence": _bounded(data.get("confidence"), 50.0),
        "sentiment": data.get("sentiment") if data.get("sentiment") in MENTION_SENTIMENTS else "neutral",
        "sentimentScore": _bounded(data.get("sentimentScore"), 50.0),
        "priority": data.get("priority") if data.get("priority") in MENTION_PRIORITIES else "medium",
        "responseTime": response_time if response_time in MENTION_RESPONSE_TIMES else 60,
        "detectedKeywords": keywords,
        "reasoning": str(data.get("reasoning") or "")[:2000],
    }


async def classify_mention(text: str, keywords: list[str], **context: Any) -> dict[str, Any]:
    prompt = MENTION_USER_PROMPT.format(
        keywords=", ".join(keywords),
        text=text[:2000],
        source_type=context.get("source_type", "post"),
        author=context.get("author") or "Inconnu",
        likes=context.get("likes", 0),
        posted_at=context.get("posted_at") or "inconnue",
    )
    try:
        data = await call_openrouter(MENTION_MODEL, MENTION_SYSTEM_PROMPT, prompt)
    except AnalysisError as e:
        logger.warning("Mention classification unavailable, using heuristic: %s", e)
        return heuristic_classification(text, keywords)

    parsed = extract_json(data["_content"])
    if parsed is None:
        logger.warning("Unparsable mention classification, using heuristic")
        return heuristic_classification(text, keywords)
    return coerce_classification(parsed, keywords)


# --- session analysis ---

def _candidates(items: list) -> list[dict[str, Any]]:
    """Posts and comments of a session with the fields a mention keeps."""
    rows = []
    for item in items:
        if item.item_type not in ("post", "comment"):
            continue
        raw = item.raw_data or {}
        text = raw.get("text") or raw.get("message") or item.description or ""
        if not text.strip():
            continue
        is_comment = item.item_type == "comment"
        author = None
        if is_comment:
            author = raw.get("profileName") or (raw.get("author") or {}).get("name")
        rows.append({
            "text": text,
            "post_type": item.item_type,
            "post_url": raw.get("postUrl") or raw.get("url") or raw.get("link") or item.url,
            "author": author or raw.get("pageName") or "",
            "page_name": raw.get("pageName") or "",
            "likes": parse_count(raw.get("likes") or raw.get("likesCount")),
            "posted_at": raw.get("time") or raw.get("date") or item.posted_at,
        })
    return rows


async def analyze_session_mentions(db: AsyncSession, user: User, session: ScrapingSession) -> dict[str, Any]:
    """Detect and classify keyword mentions in a completed pages session, then charge for them.

    Mentions of an earlier analysis of the same session are replaced.
    """
    if session.user_id != user.id:
        raise SessionNotFoundError(f"Session {session.id} not found")
    if session.scrape_type != ScrapeType.FACEBOOK_PAGES:
        raise MentionError("La détection de mentions est réservée aux extractions de pages Facebook")
    if session.status != SessionStatus.COMPLETED:
        raise SessionNotReadyError(f"Session {session.id} is not completed")

    keyword_rows = await list_keywords(db, user.id)
    if not keyword_rows:
        raise MentionError(NO_KEYWORDS_MESSAGE)
    keywords = [row.keyword for row in keyword_rows]

    minimum = estimate_mentions(0, len(keywords)).total_cost
    balance = await credit_service.get_balance(db, user.id)
    if balance < minimum:
        raise InsufficientCreditsError(minimum, balance)

    mentions: list[BrandMention] = []
    for row in _candidates(await get_session_items(db, session.id)):
        matched = find_keywords(row["text"], keywords)
        if not matched:
            continue
        result = await classify_mention(
            row["text"], matched,
            source_type=row["post_type"], author=row["author"], likes=row["likes"], posted_at=row["posted_at"],
        )
        mentions.append(BrandMention(
            user_id=user.id,
            session_id=session.id,
            brand_keywords=matched,
            mention_type=result["type"],
            confidence_score=result["confidence"],
            sentiment=result["sentiment"],
            sentiment_score=result["sentimentScore"],
            priority_level=result["priority"],
            suggested_response_time=result["responseTime"],
            post_url=row["post_url"],
            comment_text=row["text"],
            comment_author=row["author"][:255] or None,
            comment_likes=row["likes"],
            comment_posted_at=row["posted_at"],
            page_name=row["page_name"][:255] or None,
            post_type=row["post_type"],
            reasoning=result["reasoning"],
            status="new",
        ))

    cost = estimate_mentions(len(mentions), len(keywords)).total_cost
    await credit_service.deduct_credits(
        db, user.id, cost, "mention_analysis",
        reference_id=session.id,
        description=f"Analyse de mentions ({len(mentions)} mention(s), {len(keywords)} mot(s)-clé(s))",
        metadata={"mentions": len(mentions), "keywords": len(keywords)},
    )

    await db.execute(delete(BrandMention).where(BrandMention.session_id == session.id))
    db.add_all(mentions)
    now = now_utc()
    for keyword_row in keyword_rows:
        hits = sum(1 for mention in mentions if keyword_row.keyword in mention.brand_keywords)
        if hits:
            keyword_row.mentions_count = (keyword_row.mentions_count or 0) + hits
            keyword_row.last_mention_at = now
    await db.commit()

    urgent = [m for m in mentions if m.priority_level == "urgent"]
    alerted = {row.keyword for row in keyword_rows if row.email_alerts}
    to_alert = [m for m in urgent if alerted.intersection(m.brand_keywords)]
    if to_alert:
        await email_service.send_mention_alert_email(user.email, [
            {
                "author": m.comment_author,
                "page_name": m.page_name,
                "keywords": m.brand_keywords,
                "text": m.comment_text,
                "url": m.post_url,
                "response_time": m.suggested_response_time,
            }
            for m in to_alert
        ])

    logger.info(
        "Mentions analysed: session=%s found=%d urgent=%d credits=%s", session.id, len(mentions), len(urgent), cost
    )
    return {
        "mentionsFound": len(mentions),
        "urgentMentions": len(urgent),
        "creditsUsed": cost,
        "mentions": [mention_to_dict(m) for m in mentions],
    }


# --- listing ---

def _iso(value) -> str | None:
    return value.isoformat() if value else None


def mention_to_dict(mention: BrandMention) -> dict[str, Any]:
    return {
        "id": mention.id,
        "sessionId": mention.session_id,
        "keywords": mention.brand_keywords,
        "type": mention.mention_type,
        "confidence": mention.confidence_score,
        "sentiment": mention.sentiment,
        "sentimentScore": mention.sentiment_score,
        "priority": mention.priority_level,
        "responseTime": mention.suggested_response_time,
        "postUrl": mention.post_url,
        "text": mention.comment_text,
        "author": mention.comment_author,
        "likes": mention.comment_likes,
        "postedAt": mention.comment_posted_at,
        "pageName": mention.page_name,
        "postType": mention.post_type,
        "reasoning": mention.reasoning,
        "status": mention.status,
        "resolvedAt": _iso(mention.resolved_at),
        "notes": mention.resolution_notes,
        "createdAt": _iso(mention.created_at),
    }


def keyword_to_dict(keyword: BrandKeyword) -> dict[str, Any]:
    return {
        "id": keyword.id,
        "keyword": keyword.keyword,
        "category": keyword.category,
        "emailAlerts": keyword.email_alerts,
        "mentionsCount": keyword.mentions_count,
        "lastMentionAt": _iso(keyword.last_mention_at),
    }


async def list_mentions(
    db: AsyncSession,
    user_id: int,
    *,
    status: str | None = None,
    priority: str | None = None,
    mention_type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[BrandMention], int]:
    conditions = [BrandMention.user_id == user_id]
    if status:
        conditions.append(BrandMention.status == status)
    if priority:
        conditions.append(BrandMention.priority_level == priority)
    if mention_type:
        conditions.append(BrandMention.mention_type == mention_type)

    result = await db.execute(
        select(BrandMention)
        .where(*conditions)
        .order_by(BrandMention.created_at.desc(), BrandMention.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = await db.scalar(select(func.count(BrandMention.id)).where(*conditions))
    return list(result.scalars().all()), int(total or 0)


async def mention_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    rows = await db.execute(
        select(BrandMention.mention_type, BrandMention.status, func.count(BrandMention.id))
        .where(BrandMention.user_id == user_id)
        .group_by(BrandMention.mention_type, BrandMention.status)
    )
    by_type = {name: 0 for name in MENTION_TYPES}
    total = new = 0
    for mention_type, status, count in rows.all():
        total += count
        if status == "new":
            new += count
        by_type[mention_type] = by_type.get(mention_type, 0) + count

    avg = await db.scalar(select(func.avg(BrandMention.sentiment_score)).where(BrandMention.user_id == user_id))
    return {
        "total": total,
        "new": new,
        "recommendations": by_type["recommendation"],
        "questions": by_type["question"],
        "complaints": by_type["complaint"],
        "avgSentiment": round(float(avg)) if avg is not None else 50,
    }


async def resolve_mention(db: AsyncSession, user_id: int, mention_id: int, notes: str | None = None) -> BrandMention:
    result = await db.execute(
        select(BrandMention).where(BrandMention.id == mention_id, BrandMention.user_id == user_id)
    )
    mention = result.scalar_one_or_none()
    if mention is None:
        raise MentionNotFoundError(f"Mention {mention_id} not found")
    mention.status = "resolved"
    mention.resolved_at = now_utc()
    mention.resolution_notes = notes
    await db.commit()
    await db.refresh(mention)
    return mention
