"""Poisson goal model — strength factors, λ, score matrix and market derivation.

Pure mathematical module: no I/O, no logging, no hidden state.

Pipeline pieces, in the order the orchestrator uses them:

1. :func:`blend_stats` — 40/60 season/form blend of scoring averages.
2. :func:`calculate_strength` — attack/defence ratios vs league averages.
3. :func:`compute_lambdas` — expected goals per side (clamped).
4. :func:`apply_fatigue_adjustment` / :func:`apply_injury_weight`.
5. :func:`build_score_matrix` — 7×7 outer product of bounded Poisson PMFs.
6. :func:`derive_market_probabilities` — every market by cell summation.

Design decisions
----------------
* The PMF uses a factorial lookup table (0!..10!) rather than
  ``scipy.stats.poisson`` so the analytical side stays a handful of
  multiplications; the tests cross-check it against SciPy.
* Over/under pairs are computed as ``cum`` and ``1 − cum`` of the same
  truncated total-goals distribution, so complementary markets sum to
  exactly 1 even though the 7×7 grid drops a sliver of tail mass.
* BTTS is the one market computed from the marginals
  (``P(home ≥ 1) × P(away ≥ 1)``) rather than from matrix cells.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Dict, Final, List, Optional, Tuple

import numpy as np

from edge_engine.core.engine_config import (
    POISSON_CONFIG,
    PoissonConfig,
    get_league_home_advantage,
)

__all__ = [
    "poisson_pmf",
    "poisson_distribution",
    "apply_fatigue_adjustment",
    "apply_injury_weight",
    "get_league_home_advantage",
    "blend_stats",
    "StrengthFactors",
    "calculate_strength",
    "compute_lambdas",
    "clamp_lambdas",
    "ScoreMatrix",
    "build_score_matrix",
    "Scoreline",
    "MarketProbabilities",
    "derive_market_probabilities",
    "top_scorelines",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: 0! through 10!.  The PMF returns 0 for k outside this table.
FACTORIALS: Final[Tuple[int, ...]] = tuple(math.factorial(k) for k in range(11))

#: Season/form blend weights.
SEASON_WEIGHT: Final[float] = 0.4
FORM_WEIGHT: Final[float] = 0.6

DEFAULT_AVG_SCORED: Final[float] = 1.3
DEFAULT_AVG_CONCEDED: Final[float] = 1.1
DEFAULT_DAYS_REST: Final[int] = 7

#: (minimum days rest, λ multiplier), checked from most rested down.
FATIGUE_TIERS: Final[Tuple[Tuple[int, float], ...]] = (
    (5, 1.00),
    (3, 0.97),
    (2, 0.94),
)
HEAVY_FATIGUE_MULTIPLIER: Final[float] = 0.90

INJURY_FACTOR_MIN: Final[float] = 0.80
INJURY_FACTOR_MAX: Final[float] = 1.0

#: Correct-score candidates are searched over 0..4 goals per side.
CORRECT_SCORE_MAX_GOALS: Final[int] = 4


# ---------------------------------------------------------------------------
# Core Poisson
# ---------------------------------------------------------------------------


def poisson_pmf(lam: float, k: int) -> float:
    """``P(X = k) = e^−λ · λ^k / k!`` for ``X ~ Poisson(λ)``.

    Returns 0.0 for ``k`` outside the factorial table or negative ``λ``.

    Examples::

        poisson_pmf(1.5, 0)  →  0.2231
        poisson_pmf(1.5, 1)  →  0.3347
    """
    if k < 0 or k >= len(FACTORIALS) or lam < 0:
        return 0.0
    return math.exp(-lam) * lam**k / FACTORIALS[k]


def poisson_distribution(lam: float, max_goals: int = POISSON_CONFIG.max_goals) -> np.ndarray:
    """PMF values for ``k = 0..max_goals`` as a 1-D array."""
    return np.array([poisson_pmf(lam, k) for k in range(max_goals + 1)], dtype=float)


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


def apply_fatigue_adjustment(lam: float, days_rest: Optional[float] = None) -> float:
    """Scale λ down for short rest (≥5 days none, 3–4 ×0.97, 2 ×0.94, else ×0.90)."""
    rest = DEFAULT_DAYS_REST if days_rest is None else days_rest
    for min_days, multiplier in FATIGUE_TIERS:
        if rest >= min_days:
            return lam * multiplier
    return lam * HEAVY_FATIGUE_MULTIPLIER


def apply_injury_weight(lam: float, injury_factor: Optional[float] = None) -> float:
    """Scale λ by squad strength, clamped to ``[0.80, 1.0]`` (1.0 = full strength)."""
    factor = INJURY_FACTOR_MAX if injury_factor is None else injury_factor
    return lam * max(INJURY_FACTOR_MIN, min(INJURY_FACTOR_MAX, factor))


def blend_stats(
    season_scored: Optional[float],
    season_conceded: Optional[float],
    form_scored: Optional[float] = None,
    form_conceded: Optional[float] = None,
) -> Tuple[float, float]:
    """Blend season and recent-form averages 40/60.

    Missing season values fall back to the league-typical 1.3 scored /
    1.1 conceded; missing form values fall back to the season value, which
    makes the blend a no-op.

    Returns:
        ``(avg_scored, avg_conceded)``.
    """
    s_scored = DEFAULT_AVG_SCORED if season_scored is None else season_scored
    s_conceded = DEFAULT_AVG_CONCEDED if season_conceded is None else season_conceded
    f_scored = s_scored if form_scored is None else form_scored
    f_conceded = s_conceded if form_conceded is None else form_conceded
    return (
        s_scored * SEASON_WEIGHT + f_scored * FORM_WEIGHT,
        s_conceded * SEASON_WEIGHT + f_conceded * FORM_WEIGHT,
    )


# ---------------------------------------------------------------------------
# Attack / defence strength
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrengthFactors:
    """Attack and defence ratios relative to league averages (1.0 = average)."""

    attack_home: float
    defense_home: float
    attack_away: float
    defense_away: float


def calculate_strength(
    home_avg_scored: float,
    home_avg_conceded: float,
    away_avg_scored: float,
    away_avg_conceded: float,
    config: PoissonConfig = POISSON_CONFIG,
) -> StrengthFactors:
    """Normalise scoring averages into strength factors.

    A team's conceded average is divided by the *opposite* venue's league
    average: the home side concedes to away attackers.
    """
    avg_home = config.league_avg_home_goals
    avg_away = config.league_avg_away_goals
    return StrengthFactors(
        attack_home=home_avg_scored / avg_home,
        defense_home=home_avg_conceded / avg_away,
        attack_away=away_avg_scored / avg_away,
        defense_away=away_avg_conceded / avg_home,
    )


def clamp_lambdas(
    lambda_home: float,
    lambda_away: float,
    config: PoissonConfig = POISSON_CONFIG,
) -> Tuple[float, float]:
    """Clamp λ into ``[0.3, 4.0]`` (home) and ``[0.2, 3.5]`` (away)."""
    return (
        max(config.lambda_home_min, min(config.lambda_home_max, lambda_home)),
        max(config.lambda_away_min, min(config.lambda_away_max, lambda_away)),
    )


def compute_lambdas(
    strength: StrengthFactors,
    home_advantage: Optional[float] = None,
    config: PoissonConfig = POISSON_CONFIG,
) -> Tuple[float, float]:
    """Expected goals per side from strength factors.

    ::

        λ_home = avgHome × attackHome × defenceAway × homeAdvantage
        λ_away = avgAway × attackAway × defenceHome

    Returns:
        Clamped ``(lambda_home, lambda_away)``.
    """
    advantage = config.home_advantage if home_advantage is None else home_advantage
    lambda_home = (
        config.league_avg_home_goals * strength.attack_home * strength.defense_away * advantage
    )
    lambda_away = config.league_avg_away_goals * strength.attack_away * strength.defense_home
    return clamp_lambdas(lambda_home, lambda_away, config)


# ---------------------------------------------------------------------------
# Score matrix
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreMatrix:
    """``matrix[i, j] = P(home scores i) × P(away scores j)`` for i, j in 0..N."""

    matrix: np.ndarray = field(repr=False)
    home_dist: np.ndarray = field(repr=False)
    away_dist: np.ndarray = field(repr=False)
    lambda_home: float
    lambda_away: float

    @property
    def max_goals(self) -> int:
        return self.matrix.shape[0] - 1

    @property
    def total_mass(self) -> float:
        """Probability mass captured by the truncated grid (slightly < 1)."""
        return float(self.matrix.sum())

    def total_goals_distribution(self) -> np.ndarray:
        """``P(home + away = t)`` for ``t = 0..2N``."""
        n = self.max_goals
        totals = np.zeros(2 * n + 1)
        home_idx, away_idx = np.indices(self.matrix.shape)
        np.add.at(totals, (home_idx + away_idx).ravel(), self.matrix.ravel())
        return totals


def build_score_matrix(
    lambda_home: float,
    lambda_away: float,
    config: PoissonConfig = POISSON_CONFIG,
) -> ScoreMatrix:
    home_dist = poisson_distribution(lambda_home, config.max_goals)
    away_dist = poisson_distribution(lambda_away, config.max_goals)
    return ScoreMatrix(
        matrix=np.outer(home_dist, away_dist),
        home_dist=home_dist,
        away_dist=away_dist,
        lambda_home=lambda_home,
        lambda_away=lambda_away,
    )


# ---------------------------------------------------------------------------
# Market probabilities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scoreline:
    home: int
    away: int
    probability: float

    @property
    def label(self) -> str:
        return f"{self.home}-{self.away}"


@dataclass(frozen=True)
class MarketProbabilities:
    """Analytical probability for every supported market.

    Keys use underscores (``over_2_5``); whitelist market ids use dots
    (``over_2.5``) and map onto these through ``MarketDefinition.prob_key``.
    """

    # Goal totals
    over_1_5: float
    over_2_5: float
    over_3_5: float
    under_1_5: float
    under_2_5: float
    under_3_5: float
    under_4_5: float
    # BTTS
    btts_yes: float
    btts_no: float
    # BTTS & goals
    btts_over_2_5: float
    btts_over_3_5: float
    btts_under_1_5: float
    btts_under_2_5: float
    # Team totals
    home_over_1_5: float
    away_over_1_5: float
    home_under_3_5: float
    away_under_3_5: float
    # 1X2
    home_win: float
    draw: float
    away_win: float
    # Draw no bet
    dnb_home: float
    dnb_away: float
    # BTTS & result
    btts_home_win: float
    btts_away_win: float
    # First half
    first_half_over_0_5: float
    first_half_over_1_5: float
    first_half_over_2_5: float
    first_half_under_0_5: float
    first_half_under_1_5: float
    # Most likely scorelines
    correct_scores: Tuple[Scoreline, ...] = ()

    def get(self, key: str) -> Optional[float]:
        """Probability for ``key``, or ``None`` if no such market exists."""
        if key == "correct_scores" or key not in _PROBABILITY_KEYS:
            return None
        return getattr(self, key)

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in _PROBABILITY_KEYS}


_PROBABILITY_KEYS: Final[Tuple[str, ...]] = tuple(
    f.name for f in fields(MarketProbabilities) if f.name != "correct_scores"
)


def top_scorelines(
    sm: ScoreMatrix,
    k: int = 5,
    max_goals: int = CORRECT_SCORE_MAX_GOALS,
) -> Tuple[Scoreline, ...]:
    """The ``k`` most likely scorelines with at most ``max_goals`` per side.

    Ties keep row-major order (home goals first).
    """
    limit = min(max_goals, sm.max_goals)
    cells: List[Scoreline] = [
        Scoreline(i, j, float(sm.matrix[i, j]))
        for i in range(limit + 1)
        for j in range(limit + 1)
    ]
    cells.sort(key=lambda s: s.probability, reverse=True)
    return tuple(cells[:k])


def derive_market_probabilities(
    sm: ScoreMatrix,
    config: PoissonConfig = POISSON_CONFIG,
) -> MarketProbabilities:
    """Derive every market from the score matrix by cell summation."""
    m = sm.matrix
    home_idx, away_idx = np.indices(m.shape)
    totals = home_idx + away_idx
    both_score = (home_idx >= 1) & (away_idx >= 1)

    def cum_total(max_total: int) -> float:
        return float(m[totals <= max_total].sum())

    under_1_5 = cum_total(1)
    under_2_5 = cum_total(2)
    under_3_5 = cum_total(3)
    under_4_5 = cum_total(4)

    btts_yes = float((1.0 - sm.home_dist[0]) * (1.0 - sm.away_dist[0]))

    home_win = float(m[home_idx > away_idx].sum())
    draw = float(m[home_idx == away_idx].sum())
    away_win = float(m[home_idx < away_idx].sum())
    decisive = home_win + away_win

    lam_1h = (sm.lambda_home + sm.lambda_away) * config.half_time_factor
    p1h_0 = math.exp(-lam_1h)
    p1h_1 = lam_1h * p1h_0
    p1h_2 = lam_1h**2 / 2.0 * p1h_0

    return MarketProbabilities(
        over_1_5=1.0 - under_1_5,
        over_2_5=1.0 - under_2_5,
        over_3_5=1.0 - under_3_5,
        under_1_5=under_1_5,
        under_2_5=under_2_5,
        under_3_5=under_3_5,
        under_4_5=under_4_5,
        btts_yes=btts_yes,
        btts_no=1.0 - btts_yes,
        btts_over_2_5=float(m[both_score & (totals > 2)].sum()),
        btts_over_3_5=float(m[both_score & (totals > 3)].sum()),
        # BTTS needs at least two goals, so this is always 0.
        btts_under_1_5=float(m[both_score & (totals <= 1)].sum()),
        btts_under_2_5=float(m[both_score & (totals <= 2)].sum()),
        home_over_1_5=float(sm.home_dist[2:].sum()),
        away_over_1_5=float(sm.away_dist[2:].sum()),
        home_under_3_5=float(sm.home_dist[:4].sum()),
        away_under_3_5=float(sm.away_dist[:4].sum()),
        home_win=home_win,
        draw=draw,
        away_win=away_win,
        dnb_home=home_win / decisive if decisive > 0 else 0.5,
        dnb_away=away_win / decisive if decisive > 0 else 0.5,
        btts_home_win=float(m[both_score & (home_idx > away_idx)].sum()),
        btts_away_win=float(m[both_score & (away_idx > home_idx)].sum()),
        first_half_over_0_5=1.0 - p1h_0,
        first_half_over_1_5=1.0 - (p1h_0 + p1h_1),
        first_half_over_2_5=1.0 - (p1h_0 + p1h_1 + p1h_2),
        first_half_under_0_5=p1h_0,
        first_half_under_1_5=p1h_0 + p1h_1,
        correct_scores=top_scorelines(sm),
    )
