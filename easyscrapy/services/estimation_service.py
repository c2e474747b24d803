"""Credit cost estimation: pure arithmetic over COST_MATRIX and AI model multipliers."""

import math
from dataclasses import dataclass, field
from typing import Any

from easyscrapy.constants import AI_MODELS, COST_MATRIX


class EstimationError(ValueError):
    """Raised for invalid estimation parameters (non-positive counts, unknown service)."""


@dataclass
class BreakdownLine:
    label: str
    quantity: float
    unit_cost: float
    subtotal: float


@dataclass
class Estimate:
    service_type: str
    total_cost: float
    breakdown: list[BreakdownLine] = field(default_factory=list)
    user_balance: float = 0.0
    has_enough: bool = True
    shortfall: float = 0.0
    balance_after: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "serviceType": self.service_type,
            "totalCost": self.total_cost,
            "breakdown": [
                {
                    "label": line.label,
                    "quantity": line.quantity,
                    "unitCost": line.unit_cost,
                    "subtotal": line.subtotal,
                }
                for line in self.breakdown
            ],
            "userBalance": self.user_balance,
            "hasEnough": self.has_enough,
            "shortfall": self.shortfall,
            "balanceAfter": self.balance_after,
        }


def _ceil_tenth(value: float) -> float:
    # round() first so 0.1 + 0.2 style float noise does not bump to the next tenth
    return math.ceil(round(value * 10, 6)) / 10


def _require_positive(**counts: float) -> None:
    for name, value in counts.items():
        if value is None or value < 1:
            raise EstimationError(f"{name} must be at least 1")


def get_model_multiplier(model_id: str | None) -> float:
    for model in AI_MODELS:
        if model["id"] == model_id:
            return float(model["cost_multiplier"])
    return 1.0


def get_default_model_id() -> str:
    return next(m["id"] for m in AI_MODELS if m["default"])


def _finalize(service_type: str, lines: list[BreakdownLine], balance: float, multiplier: float = 1.0) -> Estimate:
    raw_total = sum(line.subtotal for line in lines) * multiplier
    total = _ceil_tenth(raw_total)
    has_enough = balance >= total
    return Estimate(
        service_type=service_type,
        total_cost=total,
        breakdown=lines,
        user_balance=balance,
        has_enough=has_enough,
        shortfall=0.0 if has_enough else _ceil_tenth(total - balance),
        balance_after=round((balance - total) * 10) / 10 if has_enough else 0.0,
    )


def _line(label: str, quantity: float, unit_cost: float) -> BreakdownLine:
    return BreakdownLine(label=label, quantity=quantity, unit_cost=unit_cost, subtotal=quantity * unit_cost)


def estimate_marketplace(item_count: int, balance: float = 0.0) -> Estimate:
    _require_positive(itemCount=item_count)
    costs = COST_MATRIX["marketplace"]
    return _finalize("marketplace", [_line("Annonces Marketplace", item_count, costs["per_item"])], balance)


def estimate_facebook_pages(page_count: int, posts_per_page: int = 50, balance: float = 0.0) -> Estimate:
    _require_positive(pageCount=page_count, postsPerPage=posts_per_page)
    costs = COST_MATRIX["facebook_pages"]
    lines = [
        _line("Pages Facebook", page_count, costs["per_page"]),
        _line("Publications", page_count * posts_per_page, costs["per_post"]),
    ]
    return _finalize("facebook_pages", lines, balance)


def estimate_page_extraction(page_count: int, post_count: int = 0, comment_count: int = 0) -> Estimate:
    """Cost of a finished page extraction from what it actually delivered."""
    _require_positive(pageCount=page_count)
    pages = COST_MATRIX["facebook_pages"]
    lines = [_line("Pages Facebook", page_count, pages["per_page"])]
    if post_count:
        lines.append(_line("Publications", post_count, pages["per_post"]))
    if comment_count:
        lines.append(_line("Commentaires", comment_count, COST_MATRIX["comments"]["per_comment"]))
    return _finalize("facebook_pages", lines, 0.0)


def estimate_mentions(mention_count: int, keyword_count: int, balance: float = 0.0) -> Estimate:
    _require_positive(keywordCount=keyword_count)
    costs = COST_MATRIX["mentions"]
    lines = [_line("Mots-clés surveillés", keyword_count, costs["per_keyword"])]
    if mention_count:
        lines.append(_line("Mentions analysées", mention_count, costs["per_mention"]))
    return _finalize("mentions", lines, balance)


def estimate_ai_analysis(
    page_count: int, posts_per_page: int = 20, model_id: str | None = None, balance: float = 0.0
) -> Estimate:
    _require_positive(pageCount=page_count, postsPerPage=posts_per_page)
    costs = COST_MATRIX["ai_analysis"]
    lines = [
        _line("Analyse IA par page", page_count, costs["per_page"]),
        _line("Publications analysées", page_count * posts_per_page, costs["per_post"]),
    ]
    return _finalize("ai_analysis", lines, balance, get_model_multiplier(model_id))


def estimate_benchmark(
    page_count: int, posts_limit: int = 20, model_id: str | None = None, balance: float = 0.0
) -> Estimate:
    _require_positive(pageCount=page_count, postsLimit=posts_limit)
    costs = COST_MATRIX["benchmark"]
    multiplier = get_model_multiplier(model_id)
    lines = [
        _line("Pages comparées", page_count, costs["per_page"]),
        _line("Publications", page_count * posts_limit, costs["per_post"]),
        _line("Analyse IA", 1, costs["ai_analysis"] * multiplier),
        _line("Génération du rapport", 1, costs["report_generation"]),
    ]
    return _finalize("benchmark", lines, balance)


SIMPLE_SERVICES = {
    "marketplace": ("Annonces Marketplace", "per_item"),
    "facebook_pages": ("Pages Facebook", "per_page"),
    "facebook_posts": ("Publications Facebook", "per_post"),
}


def estimate_simple(service_type: str, quantity: int, balance: float = 0.0) -> Estimate:
    """Single-line estimate for the services priced by one unit."""
    if service_type not in SIMPLE_SERVICES:
        raise EstimationError(f"Unsupported service type: {service_type}")
    _require_positive(quantity=quantity)
    label, key = SIMPLE_SERVICES[service_type]
    return _finalize(service_type, [_line(label, quantity, COST_MATRIX[service_type][key])], balance)


def list_models() -> list[dict[str, Any]]:
    return [dict(model) for model in AI_MODELS]

