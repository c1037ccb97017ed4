"""
Tests for closing line value projection

Run with: pytest tests/test_clv.py -v
"""

import pytest

from edge_engine.core.clv import predict_clv


class TestPredictCLV:
    """Projected close, CLV% and composite score"""

    def test_liquid_positive_edge(self):
        """p=0.55 @ 2.00 with 7 books: 70% convergence toward fair 1.82"""
        clv = predict_clv(2.00, 0.55, 0.05, 7)

        # predicted = 2.0 - (2.0 - 1/0.55) * 0.7 = 1.8727
        assert clv.predicted_closing_odds == pytest.approx(1.87)
        assert clv.fair_odds == pytest.approx(1.82)
        assert clv.clv_percent == pytest.approx(6.8, abs=0.01)
        assert clv.line_direction == "stable"
        # 25 (edge) + 30 (liquidity) + 20 (CLV, capped)
        assert clv.clv_score == 75
        assert clv.is_positive()
        assert clv.reason is None

    def test_illiquid_convergence(self):
        """No bookmakers: 40% convergence"""
        clv = predict_clv(2.00, 0.55, 0.05, 0)
        expected = 2.0 - (2.0 - 1 / 0.55) * 0.4
        assert clv.predicted_closing_odds == pytest.approx(round(expected, 2))

    def test_negative_edge_drifts(self):
        clv = predict_clv(2.00, 0.40, -0.10, 0)

        assert clv.predicted_closing_odds == pytest.approx(2.2)
        assert clv.clv_percent == pytest.approx(-9.09)
        assert clv.line_direction == "drifting"
        assert not clv.is_positive()
        assert clv.clv_score == 0

    @pytest.mark.parametrize("edge,direction", [
        (0.10, "shortening"),
        (0.061, "shortening"),
        (0.06, "stable"),
        (0.02, "stable"),
        (0.019, "drifting"),
    ])
    def test_line_direction_from_edge(self, edge, direction):
        assert predict_clv(2.5, 0.45, edge, 4).line_direction == direction

    def test_score_bounded(self):
        clv = predict_clv(5.0, 0.5, 0.30, 12)
        assert 0 <= clv.clv_score <= 100
        assert clv.clv_score == 100

    @pytest.mark.parametrize("odds,probability", [
        (0.0, 0.5),
        (-1.0, 0.5),
        (2.0, 0.0),
    ])
    def test_invalid_input_neutral(self, odds, probability):
        """Invalid input is a neutral projection with a reason"""
        clv = predict_clv(odds, probability, 0.05, 5)

        assert clv.clv_percent == 0.0
        assert clv.clv_score == 0
        assert clv.line_direction == "stable"
        assert clv.reason is not None
