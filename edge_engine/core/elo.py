"""Elo-like strength ratings and Bayesian form updating.

League tables give a coarse but robust strength signal that the raw
scoring averages miss (a mid-table side with a freak 5–0 win looks like a
title contender on goals alone).  This module turns rank and recent form
into an Elo-style rating, converts the rating gap into expected outcome
probabilities, and nudges the Poisson λ pair toward the Elo-implied goal
share.

All functions are pure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Tuple

BASE_ELO: Final[float] = 1500.0
#: Rating points per league-table position.
K_FACTOR: Final[float] = 25.0
DEFAULT_LEAGUE_SIZE: Final[int] = 20
#: Rating points per point-per-game above/below 1.0, at full reliability.
FORM_BONUS_SCALE: Final[float] = 50.0
#: Games played at which form is considered fully reliable.
FORM_RELIABILITY_GAMES: Final[float] = 15.0
#: Baseline draw probability between two equal sides.
DRAW_FACTOR: Final[float] = 0.26
ELO_DIVISOR: Final[float] = 400.0

#: Share of the λ split taken from Elo.
DEFAULT_ELO_BLEND: Final[float] = 0.15
LAMBDA_HOME_FLOOR: Final[float] = 0.3
LAMBDA_AWAY_FLOOR: Final[float] = 0.2

#: Sample size at which evidence weight saturates at 1.0.
EVIDENCE_SATURATION_GAMES: Final[float] = 20.0
#: The prior always keeps at least 1 − 0.4 = 60% weight.
MAX_EVIDENCE_SHARE: Final[float] = 0.4
POSTERIOR_MIN: Final[float] = 0.01
POSTERIOR_MAX: Final[float] = 0.99


@dataclass(frozen=True)
class EloRating:
    home: float
    away: float
    expected_home: float
    expected_away: float
    expected_draw: float
    strength_delta: float


@dataclass(frozen=True)
class BayesianAdjustment:
    adjusted_probability: float
    prior_weight: float
    evidence_weight: float


def compute_elo_ratings(
    home_rank: int,
    away_rank: int,
    home_games_played: int,
    away_games_played: int,
    home_form_ppg: float,
    away_form_ppg: float,
    league_size: int = DEFAULT_LEAGUE_SIZE,
) -> EloRating:
    """Elo-like ratings from league position and form.

    ::

        rating   = 1500 + (league_size − rank) × 25
                 + (form_ppg − 1.0) × 50 × min(1, games_played / 15)
        E_home   = 1 / (1 + 10^((away − home) / 400))
        draw     = 0.26 × (1 − |E_home − E_away|)

    The win expectations are then scaled by ``1 − draw`` so the three
    outcomes sum to 1.
    """
    home_base = BASE_ELO + (league_size - home_rank) * K_FACTOR
    away_base = BASE_ELO + (league_size - away_rank) * K_FACTOR

    home_reliability = min(1.0, home_games_played / FORM_RELIABILITY_GAMES)
    away_reliability = min(1.0, away_games_played / FORM_RELIABILITY_GAMES)

    home = home_base + (home_form_ppg - 1.0) * FORM_BONUS_SCALE * home_reliability
    away = away_base + (away_form_ppg - 1.0) * FORM_BONUS_SCALE * away_reliability

    diff = away - home
    expected_home = 1.0 / (1.0 + 10 ** (diff / ELO_DIVISOR))
    expected_away = 1.0 / (1.0 + 10 ** (-diff / ELO_DIVISOR))

    draw = DRAW_FACTOR * (1.0 - abs(expected_home - expected_away))

    return EloRating(
        home=home,
        away=away,
        expected_home=expected_home * (1.0 - draw),
        expected_away=expected_away * (1.0 - draw),
        expected_draw=draw,
        strength_delta=abs(home - away),
    )


def bayesian_update(
    prior_probability: float,
    form_signal: float,
    sample_size: float,
) -> BayesianAdjustment:
    """Convex blend of a model prior with a form signal.

    Evidence weight grows with sample size (``n / 20``, capped at 1) but
    the prior never drops below 60% weight.  The posterior is clamped to
    ``[0.01, 0.99]``.
    """
    evidence_weight = min(1.0, max(0.0, sample_size) / EVIDENCE_SATURATION_GAMES)
    prior_weight = 1.0 - evidence_weight * MAX_EVIDENCE_SHARE
    posterior = prior_probability * prior_weight + form_signal * (1.0 - prior_weight)
    return BayesianAdjustment(
        adjusted_probability=max(POSTERIOR_MIN, min(POSTERIOR_MAX, posterior)),
        prior_weight=prior_weight,
        evidence_weight=evidence_weight,
    )


def adjust_lambdas_with_elo(
    lambda_home: float,
    lambda_away: float,
    rating: EloRating,
    blend_factor: float = DEFAULT_ELO_BLEND,
) -> Tuple[float, float]:
    """Shift the home/away goal split toward the Elo-implied split.

    Total expected goals are preserved; only the share changes.  Floors of
    0.3 (home) and 0.2 (away) apply, so the caller must still clamp.
    """
    total = lambda_home + lambda_away
    if total <= 0:
        return max(LAMBDA_HOME_FLOOR, lambda_home), max(LAMBDA_AWAY_FLOOR, lambda_away)

    elo_total = rating.expected_home + rating.expected_away
    elo_home_ratio = rating.expected_home / elo_total if elo_total > 0 else 0.5
    poisson_home_ratio = lambda_home / total

    blended_home = poisson_home_ratio * (1.0 - blend_factor) + elo_home_ratio * blend_factor
    return (
        max(LAMBDA_HOME_FLOOR, total * blended_home),
        max(LAMBDA_AWAY_FLOOR, total * (1.0 - blended_home)),
    )
