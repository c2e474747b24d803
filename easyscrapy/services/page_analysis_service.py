"""Per-page AI audit and sector benchmark of a completed Facebook pages session.

Reports are cached in ``session.ai_results`` under the normalized page URL:
asking again for the same page returns the stored report without a new charge.
When the model reply cannot be parsed, a basic report computed from the post
metrics is stored instead and the credits are still consumed.
"""

import json
import logging
import re
from typing import Any

from easyscrapy.constants import AUDIT_SAMPLE_POSTS
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession
from easyscrapy.models.stored_item import StoredItem
from easyscrapy.models.user import User
from easyscrapy.prompts import (
    BENCHMARK_SYSTEM_PROMPT,
    BENCHMARK_USER_PROMPT,
    PAGE_AUDIT_SYSTEM_PROMPT,
    PAGE_AUDIT_USER_PROMPT,
)
from easyscrapy.services import credit_service
from easyscrapy.services.analysis_service import (
    AnalysisError,
    call_openrouter,
    check_analysable,
    extract_json,
    log_usage,
    resolve_model,
)
from easyscrapy.services.estimation_service import estimate_ai_analysis, estimate_benchmark
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.page_tracking_service import normalize_page_url
from easyscrapy.services.session_service import SessionRepository
from easyscrapy_cli.utils import now_utc

logger = logging.getLogger(__name__)


class PageAnalysisError(ValueError):
    """Raised when the requested page cannot be analysed from this session."""


def parse_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        digits = re.sub(r"\D", "", value)
        return int(digits) if digits else 0
    return 0


def _post_type(raw: dict[str, Any]) -> str:
    if raw.get("isVideo") or raw.get("videoUrl") or raw.get("type") == "video":
        return "video"
    if raw.get("media") or raw.get("imageUrl") or raw.get("type") == "photo":
        return "photo"
    return "text"


def _source_page(raw: dict[str, Any]) -> str:
    return normalize_page_url(raw.get("facebookUrl") or raw.get("pageUrl") or raw.get("inputUrl") or "")


def select_page(
    session: ScrapingSession, items: list[StoredItem], page_url: str | None
) -> tuple[str, dict[str, Any], list[dict[str, Any]]]:
    """Pick one page of the session: its key, its info row and its post rows."""
    page_urls = [normalize_page_url(url) for url in (session.page_urls or [session.url])]
    key = normalize_page_url(page_url) if page_url else page_urls[0]
    if key not in page_urls:
        raise PageAnalysisError(f"La page {page_url} ne fait pas partie de cette extraction")

    info: dict[str, Any] = {}
    posts: list[dict[str, Any]] = []
    for item in items:
        raw = item.raw_data or {}
        # A single-page session owns every row, whatever URL the actor reported
        if len(page_urls) > 1 and _source_page(raw) != key:
            continue
        if item.item_type == "page_info" and not info:
            info = raw
        elif item.item_type == "post":
            posts.append(raw)

    if not posts:
        raise PageAnalysisError("Aucune publication extraite pour cette page")
    return key, info, posts


def page_metrics(info: dict[str, Any], posts: list[dict[str, Any]]) -> dict[str, Any]:
    count = len(posts)
    avg_likes = round(sum(parse_count(p.get("likes")) for p in posts) / count) if count else 0
    avg_comments = round(sum(parse_count(p.get("comments")) for p in posts) / count) if count else 0
    avg_shares = round(sum(parse_count(p.get("shares")) for p in posts) / count) if count else 0
    followers = parse_count(info.get("followers") or info.get("likes"))
    engagement = avg_likes + avg_comments + avg_shares
    categories = info.get("categories")
    return {
        "page_name": info.get("title") or info.get("pageName") or info.get("name") or "",
        "category": ", ".join(categories) if isinstance(categories, list) else (info.get("category") or ""),
        "description": (info.get("intro") or info.get("about") or "")[:500],
        "followers": followers,
        "total_posts": count,
        "avg_likes": avg_likes,
        "avg_comments": avg_comments,
        "avg_shares": avg_shares,
        "engagement_total": engagement,
        "engagement_rate": round(engagement / followers * 100, 2) if followers else 0.0,
    }


def sample_posts(posts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "texte": (post.get("text") or post.get("message") or "")[:200],
            "likes": parse_count(post.get("likes")),
            "comments": parse_count(post.get("comments")),
            "shares": parse_count(post.get("shares")),
            "type": _post_type(post),
            "date": post.get("time") or post.get("date") or "",
        }
        for post in posts[:AUDIT_SAMPLE_POSTS]
    ]


def _post_summary(post: dict[str, Any]) -> dict[str, Any]:
    return {
        "texte": post["texte"],
        "metrics": {"likes": post["likes"], "comments": post["comments"], "shares": post["shares"]},
    }


def basic_audit(metrics: dict[str, Any], sample: list[dict[str, Any]]) -> dict[str, Any]:
    avg_likes = metrics["avg_likes"]
    if avg_likes > 100:
        score = 7
    elif avg_likes > 50:
        score = 5
    elif avg_likes > 10:
        score = 3
    else:
        score = 1
    label = "Bon" if score >= 7 else "Moyen" if score >= 4 else "Faible"
    by_likes = sorted(sample, key=lambda p: p["likes"], reverse=True)

    return {
        "audit_summary": {
            "engagement_score": {"score": score, "label": label},
            "global_health": (
                f"{metrics['total_posts']} publications analysées avec en moyenne "
                f"{avg_likes} j'aime, {metrics['avg_comments']} commentaires et {metrics['avg_shares']} partages."
            ),
            "key_insight": "Audit de base calculé à partir des métriques, l'analyse IA détaillée n'a pas abouti.",
        },
        "quantitative_analysis": {
            "averages": {
                "likes": avg_likes,
                "comments": metrics["avg_comments"],
                "shares": metrics["avg_shares"],
                "engagement_total": metrics["engagement_total"],
            },
            "top_posts": [_post_summary(p) for p in by_likes[:3]],
            "flop_posts": [_post_summary(p) for p in by_likes[::-1][:3]],
        },
        "what_is_working_well": [],
        "pain_points_and_fixes": [],
        "creative_ideas_to_test": [],
        "final_verdict": {"one_thing_to_stop": "", "one_thing_to_start": "", "one_thing_to_amplify": ""},
        "fallback": True,
    }


def _gap(value: float, benchmark: float) -> str:
    if not benchmark:
        return "0%"
    pct = round((value - benchmark) / benchmark * 100)
    return f"{pct:+d}%"


def basic_benchmark(metrics: dict[str, Any]) -> dict[str, Any]:
    avg_likes = metrics["avg_likes"]
    if avg_likes > 100:
        score = 7
    elif avg_likes > 50:
        score = 5
    elif avg_likes > 10:
        score = 3
    else:
        score = 2
    if score >= 7:
        position = "Leader"
    elif score >= 5:
        position = "Challenger"
    elif score >= 3:
        position = "Suiveur"
    else:
        position = "Outsider"

    comparison = {}
    for name, factor in (("likes", 1.3), ("comments", 1.2), ("shares", 1.4)):
        value = metrics[f"avg_{name}"]
        benchmark = round(value * factor)
        comparison[name] = {"page_average": value, "sector_benchmark": benchmark, "gap_percentage": _gap(value, benchmark)}
    comparison["engagement_rate"] = {
        "page_average": f"{metrics['engagement_rate']}%",
        "sector_benchmark": f"{round(metrics['engagement_rate'] * 1.3, 2)}%",
    }

    return {
        "meta": {"sector_detected": metrics["category"] or "Non déterminé", "analysis_date": now_utc().date().isoformat()},
        "benchmark_positioning": {"overall_score": score, "position": position},
        "metrics_comparison": comparison,
        "competitive_gaps": [],
        "differentiation_opportunities": [],
        "strategies_to_adopt": [],
        "action_plan": {"immediate_actions": []},
        "fallback": True,
    }


def _cached(session: ScrapingSession, kind: str, key: str) -> dict[str, Any] | None:
    return ((session.ai_results or {}).get(kind) or {}).get(key)


def _store(session: ScrapingSession, kind: str, key: str, entry: dict[str, Any]) -> None:
    # JSON columns only persist on reassignment
    results = dict(session.ai_results or {})
    by_page = dict(results.get(kind) or {})
    by_page[key] = entry
    results[kind] = by_page
    session.ai_results = results


async def _run_page_report(
    repo: SessionRepository,
    user: User,
    session: ScrapingSession,
    *,
    kind: str,
    model_id: str | None,
    page_url: str | None,
) -> dict[str, Any]:
    check_analysable(user, session)
    if session.scrape_type != ScrapeType.FACEBOOK_PAGES:
        raise PageAnalysisError("Cette analyse est réservée aux extractions de pages Facebook")

    db = repo.db
    items = await get_session_items(db, session.id)
    key, info, posts = select_page(session, items, page_url)

    cached = _cached(session, kind, key)
    if cached:
        logger.info("Reusing %s for session=%s page=%s", kind, session.id, key)
        return {**cached, "alreadyExists": True, "creditsCharged": 0.0}

    model = resolve_model(user, model_id)
    metrics = page_metrics(info, posts)
    sample = sample_posts(posts)

    if kind == "audit":
        cost = estimate_ai_analysis(1, posts_per_page=len(posts), model_id=model).total_cost
        service_type, agent_type, label = "ai_analysis", "page_audit", "Audit IA"
        system_prompt = PAGE_AUDIT_SYSTEM_PROMPT
        user_prompt = PAGE_AUDIT_USER_PROMPT.format(
            posts_json=json.dumps(sample, ensure_ascii=False, indent=1), **metrics
        )
    else:
        cost = estimate_benchmark(1, posts_limit=len(posts), model_id=model).total_cost
        service_type, agent_type, label = "facebook_pages_benchmark", "benchmark", "Benchmark IA"
        system_prompt = BENCHMARK_SYSTEM_PROMPT
        user_prompt = BENCHMARK_USER_PROMPT.format(analysis_date=now_utc().date().isoformat(), **metrics)

    reservation = await credit_service.reserve_credits(
        db, user.id, cost, service_type,
        reference_id=session.id,
        description=f"{label} de la page {metrics['page_name'] or key}",
    )

    try:
        data = await call_openrouter(model, system_prompt, user_prompt)
    except AnalysisError:
        await credit_service.cancel_reservation(db, reservation.id)
        raise

    report = extract_json(data["_content"])
    if report is None:
        logger.warning("Unparsable %s reply for session=%s page=%s, storing basic report", kind, session.id, key)
        report = basic_audit(metrics, sample) if kind == "audit" else basic_benchmark(metrics)

    await credit_service.confirm_reservation(db, reservation.id)

    entry = {
        "sessionId": session.id,
        "pageUrl": key,
        "pageName": metrics["page_name"],
        "model": model,
        "creditsCharged": cost,
        "generatedAt": now_utc().isoformat(),
        kind: report,
    }
    _store(session, kind, key, entry)
    log_usage(db, user, session, model, agent_type, data, cost,
              {"pageUrl": key, "postCount": len(posts), "fallback": bool(report.get("fallback"))})
    await db.commit()
    logger.info("%s done: session=%s page=%s model=%s credits=%s", label, session.id, key, model, cost)

    return {**entry, "alreadyExists": False}


async def audit_page(
    repo: SessionRepository,
    user: User,
    session: ScrapingSession,
    model_id: str | None = None,
    page_url: str | None = None,
) -> dict[str, Any]:
    return await _run_page_report(repo, user, session, kind="audit", model_id=model_id, page_url=page_url)


async def benchmark_page(
    repo: SessionRepository,
    user: User,
    session: ScrapingSession,
    model_id: str | None = None,
    page_url: str | None = None,
) -> dict[str, Any]:
    """Compare one extracted page with its sector standards."""
    return await _run_page_report(repo, user, session, kind="benchmark", model_id=model_id, page_url=page_url)
