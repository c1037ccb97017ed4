"""
Monte Carlo match simulation.

The analytical score matrix assumes independent Poisson goals and nothing
else.  The simulator draws the same goal processes empirically so the two
estimates can be cross-checked and blended, and so every market gets a
sampling confidence interval the risk gates can act on.

Each iteration draws, in this fixed order::

    home_goals ~ Poisson(λh)
    away_goals ~ Poisson(λa)
    home_1h    ~ Poisson(λh × 0.45)
    away_1h    ~ Poisson(λa × 0.45)

from an :class:`~edge_engine.core.rng.XorShift32` seeded with
``fixture_id ^ seed_base``.  The same ``(λh, λa, fixture_id, iterations)``
therefore always yields the same :class:`SimulationResult`.

Usage::

    result = run_monte_carlo_simulation(1.62, 1.08, fixture_id=19_135_003)
    result.market_probabilities["btts_yes"], result.volatility_score
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from edge_engine.core.engine_config import (
    CALIBRATED_PROB_MAX,
    CALIBRATED_PROB_MIN,
    MONTE_CARLO_CONFIG,
    POISSON_CONFIG,
    MonteCarloConfig,
    get_calibration_factor,
)
from edge_engine.core.rng import XorShift32, fixture_seed

logger = logging.getLogger(__name__)

GOAL_HISTOGRAM_BUCKETS = 13
TOP_SCORELINES = 10

#: Weight of the analytical (Poisson) estimate in the blend.
POISSON_BLEND_WEIGHT = 0.4

#: Encodes a scoreline as one integer for numpy grouping (home * 1000 + away).
_SCORE_KEY_BASE = 1000


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass
class SimulationResult:
    """Raw draws of a simulation plus the statistics derived from them."""

    n_sims: int
    home_goals: np.ndarray = field(repr=False)
    away_goals: np.ndarray = field(repr=False)
    home_1h_goals: np.ndarray = field(repr=False)
    away_1h_goals: np.ndarray = field(repr=False)
    config: MonteCarloConfig = field(default=MONTE_CARLO_CONFIG, repr=False)

    market_probabilities: Dict[str, float] = field(init=False, default_factory=dict)
    confidence_intervals: Dict[str, Tuple[float, float]] = field(
        init=False, default_factory=dict, repr=False
    )
    volatility_score: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if self.n_sims <= 0:
            self.volatility_score = 100
            return
        self.market_probabilities = self._count_markets()
        self.confidence_intervals = {
            key: self._interval(p) for key, p in self.market_probabilities.items()
        }
        self.volatility_score = self._volatility()

    # -- market counting ---------------------------------------------------

    def _count_markets(self) -> Dict[str, float]:
        hg, ag = self.home_goals, self.away_goals
        total = hg + ag
        total_1h = self.home_1h_goals + self.away_1h_goals
        btts = (hg >= 1) & (ag >= 1)
        home_win = hg > ag
        away_win = ag > hg
        n = float(self.n_sims)

        def freq(mask: np.ndarray) -> float:
            return float(np.count_nonzero(mask)) / n

        non_draws = int(np.count_nonzero(home_win) + np.count_nonzero(away_win))
        if non_draws > 0:
            dnb_home = np.count_nonzero(home_win) / non_draws
            dnb_away = np.count_nonzero(away_win) / non_draws
        else:
            dnb_home = dnb_away = 0.5

        return {
            "over_2_5": freq(total > 2),
            "over_3_5": freq(total > 3),
            "under_1_5": freq(total <= 1),
            "under_2_5": freq(total <= 2),
            "btts_yes": freq(btts),
            "btts_no": freq(~btts),
            "btts_over_2_5": freq(btts & (total > 2)),
            "btts_over_3_5": freq(btts & (total > 3)),
            "btts_under_1_5": freq(btts & (total <= 1)),
            "btts_under_2_5": freq(btts & (total <= 2)),
            "btts_home_win": freq(btts & home_win),
            "btts_away_win": freq(btts & away_win),
            "dnb_home": float(dnb_home),
            "dnb_away": float(dnb_away),
            "first_half_over_1_5": freq(total_1h > 1),
            "first_half_over_2_5": freq(total_1h > 2),
            "first_half_under_0_5": freq(total_1h == 0),
            "first_half_under_1_5": freq(total_1h <= 1),
        }

    def _interval(self, p: float) -> Tuple[float, float]:
        """Normal-approximation CI ``p ± z·√(p(1−p)/n)`` clamped to [0, 1]."""
        margin = self.config.ci_z * math.sqrt(p * (1.0 - p) / self.n_sims)
        return max(0.0, p - margin), min(1.0, p + margin)

    def _volatility(self) -> int:
        keys = self.config.volatility_markets
        width_sum = 0.0
        for key in keys:
            ci = self.confidence_intervals.get(key)
            if ci is not None:
                width_sum += ci[1] - ci[0]
        avg_width = width_sum / len(keys)
        return min(100, round(avg_width * self.config.volatility_scale))

    # -- distribution views ------------------------------------------------

    @property
    def goal_distribution(self) -> np.ndarray:
        """Share of simulations by total goals, buckets 0..12."""
        if self.n_sims <= 0:
            return np.zeros(GOAL_HISTOGRAM_BUCKETS)
        totals = self.home_goals + self.away_goals
        counts = np.bincount(totals[totals < GOAL_HISTOGRAM_BUCKETS], minlength=GOAL_HISTOGRAM_BUCKETS)
        return counts / self.n_sims

    @property
    def top_scorelines(self) -> Dict[str, float]:
        """Ten most frequent ``"h-a"`` scorelines; ties keep first-seen order."""
        if self.n_sims <= 0:
            return {}
        codes = self.home_goals.astype(np.int64) * _SCORE_KEY_BASE + self.away_goals
        keys, first_seen, counts = np.unique(codes, return_index=True, return_counts=True)
        order = np.lexsort((first_seen, -counts))[:TOP_SCORELINES]
        return {
            f"{int(keys[i]) // _SCORE_KEY_BASE}-{int(keys[i]) % _SCORE_KEY_BASE}": float(counts[i]) / self.n_sims
            for i in order
        }

    @property
    def mean_goals(self) -> Tuple[float, float]:
        if self.n_sims <= 0:
            return 0.0, 0.0
        return float(np.mean(self.home_goals)), float(np.mean(self.away_goals))

    def to_dict(self) -> Dict:
        mean_home, mean_away = self.mean_goals
        return {
            "n_sims": self.n_sims,
            "market_probabilities": {k: round(v, 4) for k, v in self.market_probabilities.items()},
            "confidence_intervals": {
                k: [round(lo, 4), round(hi, 4)] for k, (lo, hi) in self.confidence_intervals.items()
            },
            "goal_distribution": [round(float(g), 4) for g in self.goal_distribution],
            "top_scorelines": {k: round(float(v), 4) for k, v in self.top_scorelines.items()},
            "mean_goals": {"home": round(mean_home, 3), "away": round(mean_away, 3)},
            "volatility_score": self.volatility_score,
        }


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

def run_monte_carlo_simulation(
    lambda_home: float,
    lambda_away: float,
    fixture_id: int,
    iterations: Optional[int] = None,
    config: MonteCarloConfig = MONTE_CARLO_CONFIG,
    half_time_factor: float = POISSON_CONFIG.half_time_factor,
) -> SimulationResult:
    """
    Simulate a match ``iterations`` times (default ``config.iterations``).

    Draws are sequential from one generator so the stream, and therefore
    the result, depends only on the inputs.  A non-positive iteration count
    yields an empty result (no probabilities, volatility 100).
    """
    n = config.iterations if iterations is None else iterations
    n = max(0, int(n))

    rng = XorShift32(fixture_seed(fixture_id, config.seed_base))
    home = np.zeros(n, dtype=np.int32)
    away = np.zeros(n, dtype=np.int32)
    home_1h = np.zeros(n, dtype=np.int32)
    away_1h = np.zeros(n, dtype=np.int32)

    lam_home_1h = lambda_home * half_time_factor
    lam_away_1h = lambda_away * half_time_factor

    for i in range(n):
        home[i] = rng.poisson(lambda_home)
        away[i] = rng.poisson(lambda_away)
        home_1h[i] = rng.poisson(lam_home_1h)
        away_1h[i] = rng.poisson(lam_away_1h)

    result = SimulationResult(
        n_sims=n,
        home_goals=home,
        away_goals=away,
        home_1h_goals=home_1h,
        away_1h_goals=away_1h,
        config=config,
    )
    logger.debug(
        "Simulated fixture %s: n=%d λh=%.3f λa=%.3f volatility=%d",
        fixture_id, n, lambda_home, lambda_away, result.volatility_score,
    )
    return result


# ---------------------------------------------------------------------------
# Blending and calibration
# ---------------------------------------------------------------------------

def blend_probabilities(
    poisson_prob: float,
    mc_prob: float,
    poisson_weight: float = POISSON_BLEND_WEIGHT,
) -> float:
    """Convex blend: 40% analytical, 60% empirical by default."""
    return poisson_prob * poisson_weight + mc_prob * (1.0 - poisson_weight)


def calibrate_probability(market_id: str, probability: float) -> float:
    """Apply the market's calibration factor and clamp to [0.01, 0.95]."""
    calibrated = probability * get_calibration_factor(market_id)
    return max(CALIBRATED_PROB_MIN, min(CALIBRATED_PROB_MAX, calibrated))
