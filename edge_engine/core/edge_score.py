"""Composite edge score: one 0–100 number used to rank candidates.

    raw   = 0.30 × EV + 0.25 × edge + 0.20 × CLV + 0.15 × stability + 0.10 × liquidity
    score = clamp(round(raw × (0.7 + 0.3 × confidence / 100)), 0, 100)

Each component is normalised to 0–100 first: EV of +20% and edge of 15%
both saturate at 100.  Scores under the B threshold (55) are tiered
``REJECT`` and carry no stake.
"""

from __future__ import annotations

from dataclasses import dataclass

from edge_engine.core.clv import CLVProjection
from edge_engine.core.engine_config import (
    EDGE_SCORE_WEIGHTS,
    KELLY_CONFIG,
    TIER_REJECT,
    EdgeScoreWeights,
    KellyConfig,
    get_risk_tier,
)
from edge_engine.core.kelly import fractional_kelly
from edge_engine.core.risk import RiskAssessment


@dataclass(frozen=True)
class EdgeScoreComponents:
    ev: float
    edge: float
    clv: float
    volatility: float
    liquidity: float


@dataclass(frozen=True)
class EdgeScoreResult:
    edge_score: int
    components: EdgeScoreComponents
    risk_tier: str
    suggested_stake: float


def normalize_ev(ev: float) -> float:
    return min(100.0, max(0.0, ev * 500.0))


def normalize_edge(edge: float) -> float:
    return min(100.0, max(0.0, edge * 666.0))


def invert_volatility(volatility: float) -> float:
    return max(0.0, 100.0 - volatility)


def compute_edge_score(
    ev: float,
    edge: float,
    clv: CLVProjection,
    risk: RiskAssessment,
    confidence: float,
    probability: float,
    odds: float,
    weights: EdgeScoreWeights = EDGE_SCORE_WEIGHTS,
    kelly_config: KellyConfig = KELLY_CONFIG,
) -> EdgeScoreResult:
    """Score a candidate.

    Args:
        ev: Expected value to score; the orchestrator passes the
            variance-adjusted figure when the risk assessment approved.
        edge: Raw probability edge over the implied probability.
        clv: CLV projection for the candidate.
        risk: Risk assessment supplying volatility and liquidity.
        confidence: Match confidence, 0–100.
        probability: Calibrated model probability (for Kelly sizing).
        odds: Best available odds (for Kelly sizing).
    """
    components = EdgeScoreComponents(
        ev=normalize_ev(ev),
        edge=normalize_edge(edge),
        clv=float(clv.clv_score),
        volatility=invert_volatility(risk.volatility_score),
        liquidity=float(risk.liquidity_score),
    )

    raw = (
        weights.ev * components.ev
        + weights.edge_pct * components.edge
        + weights.clv * components.clv
        + weights.volatility * components.volatility
        + weights.liquidity * components.liquidity
    )
    damper = 0.7 + (confidence / 100.0) * 0.3
    score = min(100, max(0, round(raw * damper)))

    tier = get_risk_tier(score)
    if tier == TIER_REJECT:
        return EdgeScoreResult(score, components, TIER_REJECT, 0.0)

    return EdgeScoreResult(
        edge_score=score,
        components=components,
        risk_tier=tier,
        suggested_stake=fractional_kelly(probability, odds, kelly_config),
    )
