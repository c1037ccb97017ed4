"""
Tests for Elo ratings and Bayesian form updating

Run with: pytest tests/test_elo.py -v
"""

import pytest

from edge_engine.core.elo import (
    adjust_lambdas_with_elo,
    bayesian_update,
    compute_elo_ratings,
)


class TestComputeEloRatings:
    """Ratings from league position and form"""

    def test_equal_sides(self):
        """Same rank and form: even split with the full 26% draw share"""
        elo = compute_elo_ratings(10, 10, 10, 10, 1.0, 1.0)

        assert elo.home == pytest.approx(1750.0)
        assert elo.away == pytest.approx(1750.0)
        assert elo.expected_draw == pytest.approx(0.26)
        assert elo.expected_home == pytest.approx(0.37)
        assert elo.expected_away == pytest.approx(0.37)
        assert elo.strength_delta == 0.0

    def test_outcomes_sum_to_one(self):
        for home_rank, away_rank in [(1, 20), (5, 6), (18, 2)]:
            elo = compute_elo_ratings(home_rank, away_rank, 12, 12, 1.8, 0.9)
            total = elo.expected_home + elo.expected_draw + elo.expected_away
            assert total == pytest.approx(1.0)

    def test_top_vs_bottom(self):
        elo = compute_elo_ratings(1, 20, 10, 10, 1.0, 1.0)

        assert elo.home == pytest.approx(1975.0)
        assert elo.away == pytest.approx(1500.0)
        assert elo.strength_delta == pytest.approx(475.0)
        assert elo.expected_home > 0.7
        assert elo.expected_draw < 0.26

    def test_form_needs_games(self):
        """With no games played, form carries no weight"""
        elo = compute_elo_ratings(10, 10, 0, 0, 3.0, 0.0)
        assert elo.home == pytest.approx(1750.0)
        assert elo.away == pytest.approx(1750.0)

    def test_form_bonus_saturates(self):
        """Fully reliable after 15 games: +50 per point-per-game above 1.0"""
        elo = compute_elo_ratings(10, 10, 30, 15, 2.0, 0.0)
        assert elo.home == pytest.approx(1800.0)
        assert elo.away == pytest.approx(1700.0)

    def test_partial_reliability(self):
        elo = compute_elo_ratings(10, 10, 6, 10, 2.0, 1.0)
        assert elo.home == pytest.approx(1750.0 + 50.0 * 6 / 15)


class TestBayesianUpdate:
    """Prior/form blending"""

    def test_no_evidence_keeps_prior(self):
        result = bayesian_update(0.4, 0.9, 0)
        assert result.adjusted_probability == pytest.approx(0.4)
        assert result.prior_weight == pytest.approx(1.0)
        assert result.evidence_weight == 0.0

    def test_full_evidence_caps_at_forty_percent(self):
        result = bayesian_update(0.5, 1.0, 20)
        assert result.prior_weight == pytest.approx(0.6)
        assert result.adjusted_probability == pytest.approx(0.7)

        more = bayesian_update(0.5, 1.0, 200)
        assert more.adjusted_probability == pytest.approx(0.7)

    def test_half_evidence(self):
        result = bayesian_update(0.5, 0.0, 10)
        assert result.evidence_weight == pytest.approx(0.5)
        assert result.adjusted_probability == pytest.approx(0.4)

    def test_posterior_clamped(self):
        assert bayesian_update(1.0, 1.0, 20).adjusted_probability == 0.99
        assert bayesian_update(0.0, 0.0, 20).adjusted_probability == 0.01

    def test_negative_sample_treated_as_zero(self):
        assert bayesian_update(0.3, 0.8, -5).adjusted_probability == pytest.approx(0.3)


class TestAdjustLambdasWithElo:
    """λ split nudged toward the Elo expectation"""

    def test_total_preserved(self):
        elo = compute_elo_ratings(10, 10, 10, 10, 1.0, 1.0)
        lambda_home, lambda_away = adjust_lambdas_with_elo(1.5, 1.0, elo)

        assert lambda_home + lambda_away == pytest.approx(2.5)
        # 0.6 * 0.85 + 0.5 * 0.15 = 0.585
        assert lambda_home == pytest.approx(2.5 * 0.585)

    def test_strong_home_side_gains_share(self):
        elo = compute_elo_ratings(1, 20, 10, 10, 2.5, 0.5)
        lambda_home, lambda_away = adjust_lambdas_with_elo(1.2, 1.2, elo)
        assert lambda_home > 1.2 > lambda_away

    def test_zero_total_returns_floors(self):
        elo = compute_elo_ratings(10, 10, 10, 10, 1.0, 1.0)
        assert adjust_lambdas_with_elo(0.0, 0.0, elo) == (0.3, 0.2)
