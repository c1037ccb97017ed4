"""
Closing Line Value (CLV) projection.

CLV is the best available predictor of long-run betting profitability:
beating the price the market settles at means the bet was placed at a
better number than the consensus eventually agreed on.

Without line-history data the closing price is *projected* rather than
observed.  The model assumes the current price converges toward the
model's fair price before kick-off, faster in liquid markets:

    fair        = 1 / p
    liquidity   = min(1, bookmakers / 7)
    convergence = 0.4 + 0.3 × liquidity              (0.4 – 0.7)
    predicted   = current − (current − fair) × convergence
    clv%        = (current − predicted) / predicted × 100

Design decisions
----------------
* Line direction is read from the model edge, not from the projected move:
  a large edge means the sharp money should arrive and shorten the price.
* The CLV score is a 0–100 composite (edge up to 50, liquidity up to 30,
  projected CLV up to 20) so it can be weighted directly in the edge score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from edge_engine.core.engine_config import FULL_LIQUIDITY_BOOKMAKERS

LineDirection = Literal["shortening", "drifting", "stable"]

SHORTENING_EDGE = 0.06
DRIFTING_EDGE = 0.02


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CLVProjection:
    """Projected closing price and CLV metrics for one candidate."""

    current_odds: float
    predicted_closing_odds: float
    clv_percent: float
    clv_score: int               # 0-100 composite
    line_direction: LineDirection
    fair_odds: float
    reason: Optional[str] = None

    def is_positive(self) -> bool:
        """True when the projected close is shorter than the current price."""
        return self.clv_percent > 0


def predict_clv(
    current_odds: float,
    model_probability: float,
    edge: float,
    bookmaker_count: int,
) -> CLVProjection:
    """
    Project the closing line for a candidate bet.

    Args:
        current_odds:      Best available decimal odds now.
        model_probability: Calibrated model probability.
        edge:              ``model_probability − 1 / current_odds``.
        bookmaker_count:   Distinct bookmakers pricing the market.

    Returns:
        CLVProjection.  Non-positive odds or probability produce a neutral
        projection (score 0, direction ``stable``) with a reason.
    """
    if model_probability <= 0 or current_odds <= 0:
        return CLVProjection(
            current_odds=current_odds,
            predicted_closing_odds=current_odds,
            clv_percent=0.0,
            clv_score=0,
            line_direction="stable",
            fair_odds=0.0,
            reason="Invalid probability or odds: neutral projection",
        )

    fair = 1.0 / model_probability
    liquidity = min(1.0, bookmaker_count / FULL_LIQUIDITY_BOOKMAKERS)
    convergence = 0.4 + liquidity * 0.3

    predicted = current_odds - (current_odds - fair) * convergence
    clv_percent = (current_odds - predicted) / predicted * 100.0

    if edge > SHORTENING_EDGE:
        direction: LineDirection = "shortening"
    elif edge < DRIFTING_EDGE:
        direction = "drifting"
    else:
        direction = "stable"

    edge_part = min(50.0, edge * 500.0)
    liquidity_part = liquidity * 30.0
    clv_part = min(20.0, clv_percent * 5.0)
    score = max(0, min(100, round(edge_part + liquidity_part + clv_part)))

    return CLVProjection(
        current_odds=current_odds,
        predicted_closing_odds=round(predicted, 2),
        clv_percent=round(clv_percent, 2),
        clv_score=score,
        line_direction=direction,
        fair_odds=round(fair, 2),
    )
