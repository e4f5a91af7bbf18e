import pytest

from covenant_engine.config import EngineConfig
from covenant_engine.prioritization import (
    build_attention_watchlist,
    calculate_portfolio_entropy_health,
    filter_by_attention_level,
    rank_by_priority,
    sort_by_entropy_priority,
    sort_by_entropy_velocity,
    top_priority_covenants,
)


@pytest.fixture
def portfolio(make_covenant):
    """Attention levels 1, 3 and 5 in that input order."""
    return [
        make_covenant([25.0], covenant_id="HEALTHY"),
        make_covenant([-20.0], covenant_id="BREACHED"),
        make_covenant([30.0, 20.0, 5.0], covenant_id="FALLING"),
    ]


def _ids(covenants):
    return [c.id for c in covenants]


class TestPrioritySort:
    def test_most_urgent_first(self, portfolio):
        assert _ids(sort_by_entropy_priority(portfolio)) == ["FALLING", "BREACHED", "HEALTHY"]

    def test_idempotent(self, portfolio):
        once = sort_by_entropy_priority(portfolio)
        assert _ids(sort_by_entropy_priority(once)) == _ids(once)

    def test_ties_keep_input_order(self, make_covenant):
        a = make_covenant([25.0], covenant_id="A")
        b = make_covenant([25.0], covenant_id="B")
        assert _ids(sort_by_entropy_priority([a, b])) == ["A", "B"]
        assert _ids(sort_by_entropy_priority([b, a])) == ["B", "A"]

    def test_lower_headroom_breaks_priority_tie(self, make_covenant):
        # Both single healthy tests: level 1, priority 20
        wide = make_covenant([60.0], covenant_id="WIDE")
        narrow = make_covenant([40.0], covenant_id="NARROW")
        assert _ids(sort_by_entropy_priority([wide, narrow])) == ["NARROW", "WIDE"]

    def test_rank_by_priority_carries_metrics(self, portfolio):
        ranked = rank_by_priority(portfolio)
        priorities = [r.metrics.alert_priority for r in ranked]
        assert priorities == sorted(priorities, reverse=True)

    def test_empty(self):
        assert sort_by_entropy_priority([]) == []


class TestVelocitySort:
    def test_attention_level_first(self, portfolio):
        assert _ids(sort_by_entropy_velocity(portfolio)) == ["FALLING", "BREACHED", "HEALTHY"]

    def test_more_negative_velocity_first(self, make_covenant):
        flat = make_covenant([14.0, 14.0], covenant_id="FLAT")
        sliding = make_covenant([16.0, 14.0], covenant_id="SLIDING")
        assert _ids(sort_by_entropy_velocity([flat, sliding])) == ["SLIDING", "FLAT"]

    def test_velocities_within_epsilon_fall_back_to_priority(self, make_covenant):
        # Tiny negative velocity vs. zero velocity with negative acceleration
        drifting = make_covenant([14.02, 14.0], covenant_id="DRIFTING")
        braking = make_covenant([13.6, 14.0, 14.0], covenant_id="BRAKING")
        assert _ids(sort_by_entropy_velocity([drifting, braking])) == ["BRAKING", "DRIFTING"]

        exact = EngineConfig(velocity_epsilon=0.0)
        assert _ids(sort_by_entropy_velocity([drifting, braking], exact)) == ["DRIFTING", "BRAKING"]


class TestFiltering:
    def test_filter_keeps_input_order(self, portfolio):
        assert _ids(filter_by_attention_level(portfolio, 3)) == ["BREACHED", "FALLING"]

    def test_filter_min_level_one_keeps_all(self, portfolio):
        assert len(filter_by_attention_level(portfolio, 1)) == 3

    def test_top_n(self, portfolio):
        assert _ids(top_priority_covenants(portfolio, 2)) == ["FALLING", "BREACHED"]
        assert top_priority_covenants(portfolio, 0) == []
        assert len(top_priority_covenants(portfolio, 10)) == 3


class TestPortfolioHealth:
    def test_empty_portfolio_is_neutral(self):
        health = calculate_portfolio_entropy_health([])
        assert health.health_score == 50
        assert health.avg_entropy == 0.5
        assert health.avg_attention_level == 3.0
        assert health.covenant_count == 0

    def test_single_healthy_covenant(self, make_covenant):
        # 0.6 * 73.1 + 0.4 * 100 = 83.86
        health = calculate_portfolio_entropy_health([make_covenant([25.0])])
        assert health.health_score == 84
        assert health.avg_attention_level == 1.0

    def test_score_formula(self, portfolio):
        health = calculate_portfolio_entropy_health(portfolio)
        expected = 0.6 * health.avg_entropy * 100 + 0.4 * (5 - health.avg_attention_level) / 4 * 100
        assert abs(health.health_score - expected) <= 0.5
        assert health.avg_attention_level == pytest.approx(3.0)
        assert health.covenant_count == 3
        assert health.critical_count == 1


class TestWatchlist:
    def test_default_level_keeps_high_and_critical(self, portfolio):
        df = build_attention_watchlist(portfolio)
        assert list(df["Covenant ID"]) == ["FALLING"]
        assert list(df.columns) == [
            "Covenant ID", "Name", "Headroom %", "Entropy",
            "Velocity", "Attention", "Priority", "Label",
        ]
        assert df.iloc[0]["Label"] == "Critical Attention Required"

    def test_explicit_level(self, portfolio):
        df = build_attention_watchlist(portfolio, min_level=1)
        assert list(df["Covenant ID"]) == ["FALLING", "BREACHED", "HEALTHY"]

    def test_nothing_on_watch(self, make_covenant):
        assert build_attention_watchlist([make_covenant([25.0])]).empty
