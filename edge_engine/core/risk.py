"""
Volatility and risk assessment for a single candidate bet.

Four rejection gates run in order; the first to fire returns a REJECT
assessment carrying its reason.  Candidates that clear every gate receive
a composite risk score and a tier (A+ / A / B); a score below the B
threshold is itself a rejection.

    variance_adjusted_ev = ev × (1 − volatility / 200) × variance_multiplier
    liquidity_score      = min(100, round(bookmakers / 7 × 100))
    risk_score           = 0.6 × max(0, 100 − volatility)
                         + 0.2 × liquidity_score
                         + 0.2 × min(100, variance_adjusted_ev × 500)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from edge_engine.core.engine_config import (
    ENGINE_CONFIG,
    FULL_LIQUIDITY_BOOKMAKERS,
    MONTE_CARLO_CONFIG,
    TIER_REJECT,
    EngineConfig,
    MonteCarloConfig,
    get_risk_tier,
)

# Tail-risk flag thresholds.
TAIL_CI_WIDTH = 0.20
TAIL_ODDS = 3.50
TAIL_VOLATILITY = 50

# High-odds volatility gate.
HIGH_ODDS_GATE = 4.00
HIGH_VOLATILITY_GATE = 70

#: Fraction of ``min_ev_threshold`` the variance-adjusted EV must reach.
EV_GATE_FACTOR = 0.8


@dataclass(frozen=True)
class RiskAssessment:
    variance_adjusted_ev: float
    volatility_score: int
    tail_risk_flag: bool
    liquidity_score: int
    risk_tier: str
    is_approved: bool
    rejection_reason: Optional[str] = None
    risk_score: float = 0.0


def assess_risk(
    ev: float,
    odds: float,
    confidence_interval: Tuple[float, float],
    volatility: int,
    bookmaker_count: int,
    variance_multiplier: float,
    engine_config: EngineConfig = ENGINE_CONFIG,
    mc_config: MonteCarloConfig = MONTE_CARLO_CONFIG,
) -> RiskAssessment:
    """Run the rejection gates and, if all pass, tier the candidate.

    Gates, in order:

    1. Monte Carlo CI wider than ``mc_config.max_ci_width``.
    2. Odds ≥ 4.00 combined with volatility ≥ 70.
    3. Fewer than ``engine_config.min_bookmaker_count`` bookmakers.
    4. Variance-adjusted EV below 80% of ``engine_config.min_ev_threshold``.
    """
    variance_adjusted_ev = ev * (1.0 - volatility / 200.0) * variance_multiplier
    ci_width = confidence_interval[1] - confidence_interval[0]
    liquidity_score = min(100, round(bookmaker_count / FULL_LIQUIDITY_BOOKMAKERS * 100))
    tail_risk = (
        ci_width > TAIL_CI_WIDTH
        and odds >= TAIL_ODDS
        and volatility >= TAIL_VOLATILITY
    )

    def reject(reason: str, tail: bool) -> RiskAssessment:
        return RiskAssessment(
            variance_adjusted_ev=variance_adjusted_ev,
            volatility_score=volatility,
            tail_risk_flag=tail,
            liquidity_score=liquidity_score,
            risk_tier=TIER_REJECT,
            is_approved=False,
            rejection_reason=reason,
        )

    if odds <= 0:
        return reject("Invalid odds: no assessment", tail_risk)

    if ci_width > mc_config.max_ci_width:
        return reject(
            f"CI width {ci_width * 100:.1f}% exceeds max {mc_config.max_ci_width * 100:g}%",
            True,
        )

    if odds >= HIGH_ODDS_GATE and volatility >= HIGH_VOLATILITY_GATE:
        return reject(
            f"High-odds volatility: odds {odds:.2f} with volatility {volatility}/100",
            True,
        )

    if bookmaker_count < engine_config.min_bookmaker_count:
        return reject(f"Low liquidity: only {bookmaker_count} bookmaker(s)", False)

    if variance_adjusted_ev < engine_config.min_ev_threshold * EV_GATE_FACTOR:
        return reject(
            f"Variance-adjusted EV {variance_adjusted_ev * 100:.1f}% below threshold",
            tail_risk,
        )

    stability = max(0.0, 100.0 - volatility)
    ev_strength = min(100.0, variance_adjusted_ev * 500.0)
    risk_score = stability * 0.6 + liquidity_score * 0.2 + ev_strength * 0.2
    tier = get_risk_tier(risk_score)

    if tier == TIER_REJECT:
        return RiskAssessment(
            variance_adjusted_ev=variance_adjusted_ev,
            volatility_score=volatility,
            tail_risk_flag=tail_risk,
            liquidity_score=liquidity_score,
            risk_tier=TIER_REJECT,
            is_approved=False,
            rejection_reason=f"Risk score {risk_score:.0f} below minimum tier threshold",
            risk_score=risk_score,
        )

    return RiskAssessment(
        variance_adjusted_ev=variance_adjusted_ev,
        volatility_score=volatility,
        tail_risk_flag=tail_risk,
        liquidity_score=liquidity_score,
        risk_tier=tier,
        is_approved=True,
        risk_score=risk_score,
    )
