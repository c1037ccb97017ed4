"""
Tests for the composite edge score

Run with: pytest tests/test_edge_score.py -v
"""

import pytest

from edge_engine.core.clv import CLVProjection
from edge_engine.core.edge_score import (
    compute_edge_score,
    invert_volatility,
    normalize_edge,
    normalize_ev,
)
from edge_engine.core.engine_config import get_risk_tier
from edge_engine.core.risk import RiskAssessment


def _clv(score):
    return CLVProjection(
        current_odds=2.0,
        predicted_closing_odds=1.9,
        clv_percent=5.0,
        clv_score=score,
        line_direction="stable",
        fair_odds=1.8,
    )


def _risk(volatility, liquidity):
    return RiskAssessment(
        variance_adjusted_ev=0.05,
        volatility_score=volatility,
        tail_risk_flag=False,
        liquidity_score=liquidity,
        risk_tier="A",
        is_approved=True,
    )


class TestNormalisation:
    def test_ev(self):
        assert normalize_ev(0.10) == pytest.approx(50.0)
        assert normalize_ev(0.25) == 100.0
        assert normalize_ev(-0.05) == 0.0

    def test_edge(self):
        assert normalize_edge(0.15) == pytest.approx(99.9)
        assert normalize_edge(0.20) == 100.0
        assert normalize_edge(-0.01) == 0.0

    def test_volatility(self):
        assert invert_volatility(30) == 70.0
        assert invert_volatility(120) == 0.0


class TestComputeEdgeScore:
    """Weighted composite, confidence damper, tier and stake"""

    def test_strong_candidate(self):
        """30 + 24.975 + 16 + 13.5 + 10 = 94.475 at full confidence"""
        result = compute_edge_score(0.20, 0.15, _clv(80), _risk(10, 100), 100, 0.60, 2.0)

        assert result.edge_score == 94
        assert result.risk_tier == "A+"
        assert result.suggested_stake == pytest.approx(0.05)
        assert result.components.ev == 100.0
        assert result.components.volatility == 90.0

    def test_weak_candidate_rejected(self):
        """57.325 × 0.94 = 53.9 → 54, below the B threshold: no stake"""
        result = compute_edge_score(0.10, 0.05, _clv(60), _risk(20, 100), 80, 0.55, 2.0)

        assert result.edge_score == 54
        assert result.risk_tier == "REJECT"
        assert result.suggested_stake == 0.0

    def test_confidence_damper(self):
        """Zero confidence scales the raw score by 0.7"""
        full = compute_edge_score(0.20, 0.15, _clv(80), _risk(10, 100), 100, 0.60, 2.0)
        damped = compute_edge_score(0.20, 0.15, _clv(80), _risk(10, 100), 0, 0.60, 2.0)
        assert damped.edge_score == round(94.475 * 0.7)
        assert damped.edge_score < full.edge_score

    def test_bounds(self):
        top = compute_edge_score(1.0, 1.0, _clv(100), _risk(0, 100), 100, 0.9, 3.0)
        assert top.edge_score == 100

        bottom = compute_edge_score(-1.0, -1.0, _clv(0), _risk(100, 0), 100, 0.1, 3.0)
        assert bottom.edge_score == 0
        assert bottom.risk_tier == "REJECT"

    def test_stake_uses_kelly(self):
        """Approved candidates carry the capped quarter-Kelly stake"""
        result = compute_edge_score(0.20, 0.15, _clv(80), _risk(10, 100), 100, 0.45, 2.5)
        assert result.suggested_stake == pytest.approx(0.021)


class TestRiskTierSteps:
    @pytest.mark.parametrize("score,tier", [
        (100, "A+"),
        (85, "A+"),
        (84.99, "A"),
        (70, "A"),
        (69.9, "B"),
        (55, "B"),
        (54.99, "REJECT"),
        (0, "REJECT"),
    ])
    def test_step_function(self, score, tier):
        assert get_risk_tier(score) == tier
