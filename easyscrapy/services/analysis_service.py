"""LLM analysis of a session's items through OpenRouter (OpenAI-compatible chat completions)."""

import json
import logging
import re
from typing import Any

import httpx

from easyscrapy.config import get_settings
from easyscrapy.constants import AI_MODELS, ANALYSIS_SAMPLE_ITEMS
from easyscrapy.http_client import get_http_client
from easyscrapy.models.ai_usage_log import AiUsageLog
from easyscrapy.models.scraping_session import ScrapeType, ScrapingSession, SessionStatus
from easyscrapy.models.user import User
from easyscrapy.prompts import MARKETPLACE_ANALYSIS_SYSTEM_PROMPT, MARKETPLACE_ANALYSIS_USER_PROMPT
from easyscrapy.services import credit_service
from easyscrapy.services.estimation_service import EstimationError, estimate_ai_analysis
from easyscrapy.services.export_service import clean_description
from easyscrapy.services.item_service import get_session_items
from easyscrapy.services.payment_service import PaymentRequiredError, SessionNotReadyError
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository
from easyscrapy_cli.utils import now_utc

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class AnalysisError(Exception):
    """Raised when the LLM call fails."""


def extract_json(content: str) -> dict[str, Any] | None:
    """Return the JSON object of an LLM reply, tolerating code fences and prose around it."""
    candidates = []
    fenced = _FENCED_JSON.search(content)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end > start:
        candidates.append(content[start:end + 1])
    candidates.append(content)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def parse_analysis(content: str) -> dict[str, Any]:
    parsed = extract_json(content)
    if parsed is not None:
        return parsed

    logger.warning("Could not parse analysis JSON, returning fallback result")
    return {
        "priceAnalysis": {"summary": content.strip()[:2000]},
        "opportunities": [],
        "locationTrends": [],
        "recommendations": [],
        "confidenceScores": {},
        "fallback": True,
    }


def _sample_items(items: list) -> list[dict[str, Any]]:
    return [
        {
            "title": item.title,
            "price": item.price,
            "location": item.location,
            "description": clean_description(item.description)[:200],
            "url": item.url,
        }
        for item in items[:ANALYSIS_SAMPLE_ITEMS]
    ]


async def call_openrouter(model: str, system_prompt: str, user_prompt: str) -> dict[str, Any]:
    settings = get_settings()
    if not settings.openrouter_api_key:
        raise AnalysisError("OpenRouter API key not configured")

    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
        "stream": False,
        "usage": {"include": True},
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "HTTP-Referer": settings.app_url,
        "X-Title": settings.app_name,
    }

    try:
        client = get_http_client()
        resp = await client.post(
            f"{settings.openrouter_base_url.rstrip('/')}/chat/completions",
            json=payload,
            headers=headers,
            timeout=settings.llm_timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as e:
        logger.error("LLM HTTP error: %s - %s", e.response.status_code, e.response.text[:500])
        raise AnalysisError(f"LLM error: HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error("LLM error: %s", e)
        raise AnalysisError(f"Error generating analysis: {e}") from e

    choices = data.get("choices") or []
    content = choices[0].get("message", {}).get("content") if choices else None
    if not content:
        raise AnalysisError("LLM returned empty response")
    data["_content"] = content
    return data


def check_analysable(user: User, session: ScrapingSession) -> None:
    if session.user_id != user.id:
        raise SessionNotFoundError(f"Session {session.id} not found")
    if session.status != SessionStatus.COMPLETED:
        raise SessionNotReadyError(f"Session {session.id} is not completed")
    if not session.is_paid:
        raise PaymentRequiredError(f"Session {session.id} is not paid")


def resolve_model(user: User, model_id: str | None) -> str:
    model = model_id or user.preferred_ai_model or get_settings().default_ai_model
    if model not in {m["id"] for m in AI_MODELS}:
        raise EstimationError(f"Unknown AI model: {model}")
    return model


def log_usage(
    db, user: User, session: ScrapingSession, model: str, agent_type: str,
    data: dict[str, Any], credits: float, extra: dict[str, Any],
) -> None:
    """Add an AiUsageLog row for an OpenRouter reply. The caller commits."""
    usage = data.get("usage") or {}
    db.add(AiUsageLog(
        user_id=user.id,
        session_id=session.id,
        generation_id=data.get("id") or "",
        model=model,
        agent_type=agent_type,
        tokens_prompt=usage.get("prompt_tokens", 0),
        tokens_completion=usage.get("completion_tokens", 0),
        tokens_total=usage.get("total_tokens", 0),
        cost_usd=float(usage.get("cost") or 0.0),
        credits_charged=credits,
        extra=extra,
    ))


async def analyze_session(
    repo: SessionRepository,
    user: User,
    session: ScrapingSession,
    model_id: str | None = None,
    page_url: str | None = None,
) -> dict[str, Any]:
    """Charge credits and run the LLM analysis on a paid, completed session.

    Marketplace sessions get the listing analysis; Facebook pages sessions
    get the per-page audit.
    """
    check_analysable(user, session)
    if session.scrape_type == ScrapeType.FACEBOOK_PAGES:
        from easyscrapy.services.page_analysis_service import audit_page

        return await audit_page(repo, user, session, model_id, page_url)

    model = resolve_model(user, model_id)
    db = repo.db
    items = await get_session_items(db, session.id)
    item_count = max(len(items) or session.total_items or 0, 1)
    cost = estimate_ai_analysis(1, posts_per_page=item_count, model_id=model).total_cost

    reservation = await credit_service.reserve_credits(
        db, user.id, cost, "ai_analysis",
        reference_id=session.id,
        description=f"Analyse IA de la session {session.id}",
    )

    sample = _sample_items(items)
    user_prompt = MARKETPLACE_ANALYSIS_USER_PROMPT.format(
        source_url=session.url or "",
        total_items=session.total_items,
        sample_size=len(sample),
        items_json=json.dumps(sample, ensure_ascii=False, indent=1),
    )

    try:
        data = await call_openrouter(model, MARKETPLACE_ANALYSIS_SYSTEM_PROMPT, user_prompt)
    except AnalysisError:
        await credit_service.cancel_reservation(db, reservation.id)
        raise

    analysis = parse_analysis(data["_content"])
    await credit_service.confirm_reservation(db, reservation.id)

    log_usage(db, user, session, model, "marketplace_analysis", data, cost,
              {"itemCount": item_count, "fallback": bool(analysis.get("fallback"))})
    await db.commit()
    logger.info("Analysis done: session=%s model=%s credits=%s", session.id, model, cost)

    return {
        "sessionId": session.id,
        "model": model,
        "creditsCharged": cost,
        "generatedAt": now_utc().isoformat(),
        "analysis": analysis,
    }
