"""Unit tests for credit cost estimation."""

import pytest

from easyscrapy.services.estimation_service import (
    EstimationError,
    estimate_ai_analysis,
    estimate_benchmark,
    estimate_facebook_pages,
    estimate_marketplace,
    estimate_simple,
    get_default_model_id,
    get_model_multiplier,
    list_models,
)


@pytest.mark.unit
class TestEstimates:
    def test_marketplace_cost(self) -> None:
        estimate = estimate_marketplace(10, balance=20.0)
        assert estimate.total_cost == 5.0
        assert estimate.has_enough is True
        assert estimate.balance_after == 15.0
        assert estimate.shortfall == 0.0

    def test_shortfall_when_balance_is_low(self) -> None:
        estimate = estimate_marketplace(10, balance=2.0)
        assert estimate.has_enough is False
        assert estimate.shortfall == 3.0
        assert estimate.balance_after == 0.0

    def test_facebook_pages_breakdown(self) -> None:
        estimate = estimate_facebook_pages(2, posts_per_page=10)
        # 2 * 0.5 + 20 * 0.1
        assert estimate.total_cost == 3.0
        assert [line.quantity for line in estimate.breakdown] == [2, 20]

    def test_ai_analysis_applies_model_multiplier(self) -> None:
        base = estimate_ai_analysis(1, posts_per_page=20)
        gpt4o = estimate_ai_analysis(1, posts_per_page=20, model_id="openai/gpt-4o")
        assert base.total_cost == 3.0
        assert gpt4o.total_cost == 15.0

    def test_benchmark_multiplier_only_on_ai_line(self) -> None:
        estimate = estimate_benchmark(2, posts_limit=10, model_id="google/gemini-2.5-pro")
        # 2*2 + 20*0.1 + 3*3 + 1
        assert estimate.total_cost == 16.0

    def test_total_rounded_up_to_tenth(self) -> None:
        assert estimate_simple("facebook_pages", 1).total_cost == 0.5
        assert estimate_ai_analysis(1, posts_per_page=1).total_cost == 2.1

    @pytest.mark.parametrize("count", [0, -3])
    def test_non_positive_counts_rejected(self, count: int) -> None:
        with pytest.raises(EstimationError):
            estimate_marketplace(count)

    def test_unknown_simple_service(self) -> None:
        with pytest.raises(EstimationError):
            estimate_simple("teleportation", 1)

    def test_cost_grows_with_item_count(self) -> None:
        costs = [estimate_marketplace(n).total_cost for n in range(1, 60)]
        assert costs == sorted(costs)

    def test_to_dict_uses_camel_case(self) -> None:
        data = estimate_marketplace(1, balance=1.0).to_dict()
        assert set(data) == {
            "serviceType", "totalCost", "breakdown", "userBalance", "hasEnough", "shortfall", "balanceAfter",
        }
        assert data["breakdown"][0]["unitCost"] == 0.5


@pytest.mark.unit
class TestModels:
    def test_unknown_model_has_neutral_multiplier(self) -> None:
        assert get_model_multiplier("acme/unknown") == 1.0
        assert get_model_multiplier(None) == 1.0

    def test_default_model(self) -> None:
        assert get_default_model_id() == "google/gemini-2.5-flash"
        assert any(m["default"] for m in list_models())
