"""
Tests for the Poisson goal model

Run with: pytest tests/test_poisson.py -v
"""

import math

import pytest
from scipy.stats import poisson

from edge_engine.core.engine_config import POISSON_CONFIG
from edge_engine.core.poisson import (
    apply_fatigue_adjustment,
    apply_injury_weight,
    blend_stats,
    build_score_matrix,
    calculate_strength,
    compute_lambdas,
    derive_market_probabilities,
    poisson_distribution,
    poisson_pmf,
    top_scorelines,
)


class TestPoissonPMF:
    """PMF values and bounds"""

    @pytest.mark.parametrize("lam", [0.3, 1.1, 1.5, 2.7, 4.0])
    def test_matches_scipy(self, lam):
        """Every k in the factorial table agrees with scipy.stats.poisson"""
        for k in range(11):
            assert poisson_pmf(lam, k) == pytest.approx(poisson.pmf(k, lam), rel=1e-12)

    def test_known_values(self):
        assert poisson_pmf(1.5, 0) == pytest.approx(0.2231, abs=1e-4)
        assert poisson_pmf(1.5, 1) == pytest.approx(0.3347, abs=1e-4)

    def test_out_of_table_is_zero(self):
        """k above 10 or below 0 yields 0 rather than an error"""
        assert poisson_pmf(1.5, 11) == 0.0
        assert poisson_pmf(1.5, -1) == 0.0

    def test_negative_lambda_is_zero(self):
        assert poisson_pmf(-0.5, 1) == 0.0

    def test_zero_lambda(self):
        """Poisson(0) puts all its mass on zero goals"""
        assert poisson_pmf(0.0, 0) == 1.0
        assert poisson_pmf(0.0, 2) == 0.0

    def test_distribution_length(self):
        dist = poisson_distribution(1.2)
        assert len(dist) == POISSON_CONFIG.max_goals + 1
        assert dist.sum() < 1.0


class TestAdjustments:
    """Season/form blend, fatigue and injury weighting"""

    def test_blend_weights(self):
        """40% season, 60% form"""
        scored, conceded = blend_stats(2.0, 1.0, 1.0, 2.0)
        assert scored == pytest.approx(1.4)
        assert conceded == pytest.approx(1.6)

    def test_blend_defaults(self):
        """Missing season stats fall back to 1.3 / 1.1"""
        assert blend_stats(None, None) == pytest.approx((1.3, 1.1))

    def test_blend_without_form_is_noop(self):
        assert blend_stats(1.8, 0.9) == pytest.approx((1.8, 0.9))

    @pytest.mark.parametrize("days,multiplier", [
        (None, 1.00),
        (7, 1.00),
        (5, 1.00),
        (4, 0.97),
        (3, 0.97),
        (2, 0.94),
        (1, 0.90),
        (0, 0.90),
    ])
    def test_fatigue_tiers(self, days, multiplier):
        assert apply_fatigue_adjustment(2.0, days) == pytest.approx(2.0 * multiplier)

    def test_injury_weight_clamped(self):
        """Factor is clamped into [0.8, 1.0]"""
        assert apply_injury_weight(2.0, 0.5) == pytest.approx(1.6)
        assert apply_injury_weight(2.0, 0.9) == pytest.approx(1.8)
        assert apply_injury_weight(2.0, 1.3) == pytest.approx(2.0)
        assert apply_injury_weight(2.0, None) == pytest.approx(2.0)


class TestLambdas:
    """Strength factors and expected goals"""

    def test_league_average_sides_are_neutral(self):
        strength = calculate_strength(1.50, 1.15, 1.15, 1.50)
        assert strength.attack_home == pytest.approx(1.0)
        assert strength.defense_home == pytest.approx(1.0)
        assert strength.attack_away == pytest.approx(1.0)
        assert strength.defense_away == pytest.approx(1.0)

    def test_home_advantage_applied_to_home_only(self):
        strength = calculate_strength(1.50, 1.15, 1.15, 1.50)
        lambda_home, lambda_away = compute_lambdas(strength, 1.08)
        assert lambda_home == pytest.approx(1.62)
        assert lambda_away == pytest.approx(1.15)

    def test_clamped_to_bounds(self):
        """Extreme averages are clamped to [0.3, 4.0] and [0.2, 3.5]"""
        high = compute_lambdas(calculate_strength(9.0, 9.0, 9.0, 9.0))
        assert high == (POISSON_CONFIG.lambda_home_max, POISSON_CONFIG.lambda_away_max)

        low = compute_lambdas(calculate_strength(0.01, 0.01, 0.01, 0.01))
        assert low == (POISSON_CONFIG.lambda_home_min, POISSON_CONFIG.lambda_away_min)


class TestScoreMatrix:
    """7x7 matrix and derived market probabilities"""

    def test_shape_and_mass(self):
        """Truncation drops a sliver of tail mass, never adds any"""
        sm = build_score_matrix(1.5, 1.1)
        assert sm.matrix.shape == (7, 7)
        assert sm.total_mass == pytest.approx(poisson.cdf(6, 1.5) * poisson.cdf(6, 1.1))
        assert sm.total_mass < 1.0

    def test_cell_is_product_of_marginals(self):
        sm = build_score_matrix(1.5, 1.1)
        assert sm.matrix[2, 1] == pytest.approx(poisson.pmf(2, 1.5) * poisson.pmf(1, 1.1))

    def test_total_goals_distribution_sums_to_mass(self):
        sm = build_score_matrix(2.1, 0.8)
        totals = sm.total_goals_distribution()
        assert len(totals) == 13
        assert totals.sum() == pytest.approx(sm.total_mass)


class TestMarketProbabilities:
    """Closed-form markets derived from the score matrix"""

    @pytest.fixture
    def probs(self):
        return derive_market_probabilities(build_score_matrix(1.5, 1.1))

    def test_complementary_goal_markets(self, probs):
        assert probs.over_1_5 + probs.under_1_5 == pytest.approx(1.0)
        assert probs.over_2_5 + probs.under_2_5 == pytest.approx(1.0)
        assert probs.over_3_5 + probs.under_3_5 == pytest.approx(1.0)

    def test_btts_from_marginals(self, probs):
        expected = (1 - math.exp(-1.5)) * (1 - math.exp(-1.1))
        assert probs.btts_yes == pytest.approx(expected)
        assert probs.btts_yes + probs.btts_no == pytest.approx(1.0)

    def test_btts_under_1_5_impossible(self, probs):
        assert probs.btts_under_1_5 == 0.0

    def test_result_markets_cover_matrix(self, probs):
        sm = build_score_matrix(1.5, 1.1)
        assert probs.home_win + probs.draw + probs.away_win == pytest.approx(sm.total_mass)

    def test_draw_no_bet_sums_to_one(self, probs):
        assert probs.dnb_home + probs.dnb_away == pytest.approx(1.0)

    def test_stronger_home_side_favoured(self, probs):
        """λ 1.5 vs 1.1: home win beats away win, DNB home beats DNB away"""
        assert probs.home_win > probs.away_win
        assert probs.dnb_home > probs.dnb_away
        assert probs.btts_home_win > probs.btts_away_win

    def test_goal_totals_monotonic(self, probs):
        assert probs.over_1_5 > probs.over_2_5 > probs.over_3_5
        assert probs.under_1_5 < probs.under_2_5 < probs.under_3_5 < probs.under_4_5

    def test_first_half_from_total_lambda(self, probs):
        lam_1h = (1.5 + 1.1) * 0.45
        assert probs.first_half_under_0_5 == pytest.approx(math.exp(-lam_1h))
        assert probs.first_half_over_0_5 + probs.first_half_under_0_5 == pytest.approx(1.0)
        assert probs.first_half_over_1_5 + probs.first_half_under_1_5 == pytest.approx(1.0)

    def test_team_totals(self, probs):
        assert probs.home_over_1_5 == pytest.approx(1 - poisson.cdf(1, 1.5), abs=1e-3)
        assert probs.away_under_3_5 == pytest.approx(poisson.cdf(3, 1.1))

    def test_all_probabilities_in_unit_interval(self, probs):
        for key, value in probs.as_dict().items():
            assert 0.0 <= value <= 1.0, key

    def test_get_unknown_key(self, probs):
        assert probs.get("over_2_5") == probs.over_2_5
        assert probs.get("correct_scores") is None
        assert probs.get("asian_handicap") is None

    def test_dnb_without_decisive_result(self):
        """λ at zero leaves only 0-0; DNB falls back to 0.5 / 0.5"""
        probs = derive_market_probabilities(build_score_matrix(0.0, 0.0))
        assert probs.dnb_home == 0.5
        assert probs.dnb_away == 0.5


class TestTopScorelines:
    def test_most_likely_first(self):
        scorelines = top_scorelines(build_score_matrix(1.5, 1.1))
        assert len(scorelines) == 5
        assert scorelines[0].label == "1-1"
        probabilities = [s.probability for s in scorelines]
        assert probabilities == sorted(probabilities, reverse=True)

    def test_limited_to_four_goals_per_side(self):
        scorelines = top_scorelines(build_score_matrix(3.9, 3.4), k=25)
        assert all(s.home <= 4 and s.away <= 4 for s in scorelines)
