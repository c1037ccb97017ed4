"""Engine configuration — every threshold and weight in one place.

This module is the **registry** for the numbers the pipeline depends on.
Nowhere else in the codebase should odds floors, league averages, variance
multipliers or calibration factors be hard-coded.

Architecture
------------
Grouped settings are frozen dataclasses with defensible defaults:

* :class:`EngineConfig`     — odds range, display floor, selection thresholds.
* :class:`MonteCarloConfig` — iteration count, seed base, CI ceiling.
* :class:`PoissonConfig`    — matrix size, league goal averages, λ clamps.
* :class:`KellyConfig`      — fraction, single-stake cap, exposure and drawdown.
* :class:`EdgeScoreWeights` / :class:`ConfidenceWeights` — composite weights.

Per-key lookup tables (league home advantage, variance multipliers,
calibration factors) are module-level ``Final`` dicts with accessor
functions, so callers never index them directly.

Typical usage::

    from dataclasses import replace
    from edge_engine.core.engine_config import EngineConfig

    cfg = EngineConfig.from_env()
    strict = replace(cfg, odds_display_min=2.0)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Final, Tuple


# ---------------------------------------------------------------------------
# Risk tiers
# ---------------------------------------------------------------------------

TIER_A_PLUS: Final[str] = "A+"
TIER_A: Final[str] = "A"
TIER_B: Final[str] = "B"
TIER_REJECT: Final[str] = "REJECT"

#: Ordered (threshold, label) pairs; the first threshold met wins.
RISK_TIER_THRESHOLDS: Final[Tuple[Tuple[float, str], ...]] = (
    (85.0, TIER_A_PLUS),
    (70.0, TIER_A),
    (55.0, TIER_B),
)


def get_risk_tier(score: float) -> str:
    """Map a 0–100 score to a risk tier label (step function at 85/70/55)."""
    for threshold, label in RISK_TIER_THRESHOLDS:
        if score >= threshold:
            return label
    return TIER_REJECT


# ---------------------------------------------------------------------------
# Grouped settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Selection thresholds for the per-match orchestrator.

    Attributes:
        odds_min: Lowest odds the evaluator considers meaningful.  The
            display floor below is what actually gates selection.
        odds_max: Markets priced above this are rejected outright.
        odds_display_min: A candidate must be priced at or above this to be
            selected as the match's pick.
        min_edge_pct: Minimum edge over implied probability for publication.
        min_ev_threshold: Minimum EV; the risk gate uses 80% of it.
        min_confidence: Minimum confidence score for publication.
        max_picks_per_day: Cap on the day's output after correlation filtering.
        min_bookmaker_count: Liquidity gate — fewer books than this rejects.
    """

    odds_min: float = 1.40
    odds_max: float = 10.20
    odds_display_min: float = 1.80
    min_edge_pct: float = 0.02
    min_ev_threshold: float = 0.02
    min_confidence: int = 45
    max_picks_per_day: int = 20
    min_bookmaker_count: int = 2

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``EDGE_*`` environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        default = cls()
        return cls(
            odds_min=float(os.getenv("EDGE_ODDS_MIN", str(default.odds_min))),
            odds_max=float(os.getenv("EDGE_ODDS_MAX", str(default.odds_max))),
            odds_display_min=float(
                os.getenv("EDGE_ODDS_DISPLAY_MIN", str(default.odds_display_min))
            ),
            min_edge_pct=default.min_edge_pct,
            min_ev_threshold=default.min_ev_threshold,
            min_confidence=default.min_confidence,
            max_picks_per_day=int(
                os.getenv("EDGE_MAX_PICKS_PER_DAY", str(default.max_picks_per_day))
            ),
            min_bookmaker_count=int(
                os.getenv("EDGE_MIN_BOOKMAKERS", str(default.min_bookmaker_count))
            ),
        )


@dataclass(frozen=True)
class MonteCarloConfig:
    """Simulation settings.  ``seed_base`` is XOR-ed with the fixture id."""

    iterations: int = 10_000
    seed_base: int = 42
    ci_level: float = 0.95
    ci_z: float = 1.96
    max_ci_width: float = 0.25
    volatility_scale: float = 400.0
    #: Markets whose CI widths are averaged into the volatility score.
    volatility_markets: Tuple[str, ...] = ("over_2_5", "btts_yes", "dnb_home")

    @classmethod
    def from_env(cls) -> "MonteCarloConfig":
        return cls(iterations=int(os.getenv("MC_ITERATIONS", "10000")))


@dataclass(frozen=True)
class PoissonConfig:
    """Poisson model constants.

    League goal averages are the across-league means used to normalise a
    team's scoring into strength factors.  The λ clamps bound pathological
    inputs (e.g. a promoted side with two games of data).
    """

    max_goals: int = 6
    home_advantage: float = 1.08
    home_advantage_min: float = 1.05
    home_advantage_max: float = 1.12
    half_time_factor: float = 0.45
    league_avg_home_goals: float = 1.50
    league_avg_away_goals: float = 1.15
    lambda_home_min: float = 0.3
    lambda_home_max: float = 4.0
    lambda_away_min: float = 0.2
    lambda_away_max: float = 3.5


@dataclass(frozen=True)
class KellyConfig:
    """Bankroll management limits (all as fractions of bankroll)."""

    fraction: float = 0.25
    max_single_stake: float = 0.05
    max_daily_exposure: float = 0.10
    max_drawdown_halt: float = 0.15


@dataclass(frozen=True)
class EdgeScoreWeights:
    """Weights of the composite edge score; they sum to 1.0."""

    ev: float = 0.30
    edge_pct: float = 0.25
    clv: float = 0.20
    volatility: float = 0.15
    liquidity: float = 0.10


@dataclass(frozen=True)
class ConfidenceWeights:
    """Weights of the per-match confidence model; they sum to 1.0."""

    attack_stability: float = 0.20
    defensive_consistency: float = 0.20
    market_stability: float = 0.15
    form_reliability: float = 0.20
    elo_strength: float = 0.15
    injury_stability: float = 0.10


# Shared default instances.
ENGINE_CONFIG: Final[EngineConfig] = EngineConfig()
MONTE_CARLO_CONFIG: Final[MonteCarloConfig] = MonteCarloConfig()
POISSON_CONFIG: Final[PoissonConfig] = PoissonConfig()
KELLY_CONFIG: Final[KellyConfig] = KellyConfig()
EDGE_SCORE_WEIGHTS: Final[EdgeScoreWeights] = EdgeScoreWeights()
CONFIDENCE_WEIGHTS: Final[ConfidenceWeights] = ConfidenceWeights()


# ---------------------------------------------------------------------------
# Per-league home advantage
# ---------------------------------------------------------------------------

#: Home-advantage λ multiplier keyed by provider league id.
LEAGUE_HOME_ADVANTAGES: Final[Dict[int, float]] = {
    2: 1.10,    # Champions League
    5: 1.08,    # Europa League
    8: 1.09,    # Premier League
    9: 1.12,    # La Liga
    564: 1.11,  # Serie A
    567: 1.08,  # Bundesliga
    82: 1.10,   # Ligue 1
    384: 1.09,  # Championship
    387: 1.08,  # Eredivisie
}

SUPPORTED_LEAGUE_IDS: Final[Tuple[int, ...]] = tuple(LEAGUE_HOME_ADVANTAGES)


def get_league_home_advantage(league_id: int, config: PoissonConfig = POISSON_CONFIG) -> float:
    """Home-advantage multiplier for ``league_id``, or the global default."""
    return LEAGUE_HOME_ADVANTAGES.get(league_id, config.home_advantage)


# ---------------------------------------------------------------------------
# Variance multipliers (keyed by whitelist market id)
# ---------------------------------------------------------------------------

DEFAULT_VARIANCE_MULTIPLIER: Final[float] = 0.95

VARIANCE_MULTIPLIERS: Final[Dict[str, float]] = {
    # Goal totals
    "over_2.5": 0.95,
    "over_3.5": 0.90,
    "under_1.5": 1.00,
    "under_2.5": 1.00,
    # Draw no bet
    "draw_no_bet": 0.93,
    "draw_no_bet_away": 0.93,
    # BTTS + result
    "btts_home_win": 0.88,
    "btts_away_win": 0.88,
    # BTTS
    "btts": 0.93,
    "btts_no": 0.93,
    # BTTS + goals
    "btts_over_2.5": 0.90,
    "btts_over_3.5": 0.88,
    "btts_under_1.5": 0.88,
    "btts_under_2.5": 0.90,
    # First half
    "1h_over_1.5": 0.92,
    "1h_over_2.5": 0.88,
    "1h_under_0.5": 0.95,
    "1h_under_1.5": 0.95,
}

#: (odds floor, multiplier) pairs, checked from the highest floor down.
HIGH_ODDS_PENALTIES: Final[Tuple[Tuple[float, float], ...]] = (
    (8.0, 0.80),
    (6.0, 0.85),
    (4.0, 0.90),
)


def get_variance_multiplier(market_id: str, odds: float) -> float:
    """Per-market variance multiplier with the high-odds penalty applied."""
    base = VARIANCE_MULTIPLIERS.get(market_id, DEFAULT_VARIANCE_MULTIPLIER)
    for floor, penalty in HIGH_ODDS_PENALTIES:
        if odds >= floor:
            return base * penalty
    return base


# ---------------------------------------------------------------------------
# Probability calibration (keyed by whitelist market id)
# ---------------------------------------------------------------------------
# Poisson underestimates high-scoring outcomes (boost over/BTTS) and
# overestimates low-scoring ones (shrink under).

PROBABILITY_CALIBRATION: Final[Dict[str, float]] = {
    "over_2.5": 1.15,
    "over_3.5": 1.22,
    "under_1.5": 0.82,
    "under_2.5": 0.88,
    "btts": 1.15,
    "btts_no": 0.88,
    "btts_over_2.5": 1.18,
    "btts_over_3.5": 1.22,
    "btts_under_1.5": 0.80,
    "btts_under_2.5": 0.85,
    "btts_home_win": 1.15,
    "btts_away_win": 1.15,
    "draw_no_bet": 0.92,
    "draw_no_bet_away": 0.92,
    "1h_over_1.5": 1.12,
    "1h_over_2.5": 1.15,
    "1h_under_0.5": 0.85,
    "1h_under_1.5": 0.88,
}

#: Calibrated probabilities are clamped into this band.
CALIBRATED_PROB_MIN: Final[float] = 0.01
CALIBRATED_PROB_MAX: Final[float] = 0.95


def get_calibration_factor(market_id: str) -> float:
    """Calibration factor for ``market_id``; 1.0 when none is defined."""
    return PROBABILITY_CALIBRATION.get(market_id, 1.0)


# ---------------------------------------------------------------------------
# Odds provider market ids
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderMarkets:
    """Odds-provider market ids used by the whitelist's odds filters."""

    match_winner: Tuple[int, ...] = (1,)
    btts: Tuple[int, ...] = (14,)
    over_under: Tuple[int, ...] = (80, 81, 105)
    btts_goals: Tuple[int, ...] = (82,)
    result_btts: Tuple[int, ...] = (97,)
    first_half_ou: Tuple[int, ...] = (28, 107)
    draw_no_bet: Tuple[int, ...] = (10,)


PROVIDER_MARKETS: Final[ProviderMarkets] = ProviderMarkets()

#: Bookmaker id whose price is reported alongside the best price.
BET365_BOOKMAKER_ID: Final[int] = 2

#: Bookmaker count at which the market is treated as fully liquid.
FULL_LIQUIDITY_BOOKMAKERS: Final[int] = 7

UK_BOOKMAKER_NAMES: Final[Dict[int, str]] = {
    2: "bet365",
    5: "888Sport",
    6: "BetFred",
    9: "Betfair",
    12: "BetVictor",
    13: "Coral",
    19: "Paddy Power",
}
