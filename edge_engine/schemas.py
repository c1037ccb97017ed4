"""
Pydantic request/response schemas for the Edge Engine API.

Requests are validated at the boundary so the engine only ever sees
well-formed numbers; anything the engine cannot price still degrades to a
neutral result rather than an error.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Match analysis
# ---------------------------------------------------------------------------

class TeamStatsIn(BaseModel):
    """Per-team inputs; omitted fields fall back to engine defaults."""

    avg_scored: Optional[float] = Field(None, ge=0, le=10)
    avg_conceded: Optional[float] = Field(None, ge=0, le=10)
    form_scored: Optional[float] = Field(None, ge=0, le=10)
    form_conceded: Optional[float] = Field(None, ge=0, le=10)
    form_ppg: Optional[float] = Field(None, ge=0, le=3, description="Points per game, 0-3")
    rank: Optional[int] = Field(None, ge=1, le=40)
    games_played: Optional[int] = Field(None, ge=0)
    days_rest: Optional[float] = Field(None, ge=0)
    injury_factor: Optional[float] = Field(None, ge=0, le=1)


class OddsEntryIn(BaseModel):
    """One bookmaker price, as delivered by the odds feed."""

    bookmaker_id: int
    bookmaker_name: str = ""
    market_id: int
    label: str = ""
    odds_name: str = ""
    odds_value: float = Field(..., description="Decimal odds")


class AnalysisRequest(BaseModel):
    """Payload for POST /api/analysis."""

    fixture_id: int = Field(..., ge=0)
    home_team: str = Field(..., min_length=1, max_length=120)
    away_team: str = Field(..., min_length=1, max_length=120)
    league_id: int
    league_name: str = ""
    start_time: str = Field("", description="ISO-8601 kick-off")
    home: TeamStatsIn = Field(default_factory=TeamStatsIn)
    away: TeamStatsIn = Field(default_factory=TeamStatsIn)
    odds: List[OddsEntryIn] = Field(default_factory=list)

    @field_validator("away_team")
    @classmethod
    def validate_distinct_teams(cls, v: str, info) -> str:
        home = info.data.get("home_team")
        if home is not None and v.strip().lower() == home.strip().lower():
            raise ValueError("home_team and away_team must differ")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "fixture_id": 19135003,
                "home_team": "Arsenal",
                "away_team": "Chelsea",
                "league_id": 8,
                "league_name": "Premier League",
                "start_time": "2026-10-17T14:00:00Z",
                "home": {"avg_scored": 1.9, "avg_conceded": 0.9, "rank": 2, "form_ppg": 2.2},
                "away": {"avg_scored": 1.5, "avg_conceded": 1.2, "rank": 6, "form_ppg": 1.6},
                "odds": [
                    {
                        "bookmaker_id": 2,
                        "bookmaker_name": "bet365",
                        "market_id": 80,
                        "label": "Over",
                        "odds_name": "2.5",
                        "odds_value": 1.95,
                    }
                ],
            }
        }
    }


class CandidateResponse(BaseModel):
    """One scored market from the candidate list."""

    market_id: str
    label: str
    odds: float
    probability: float
    edge: float
    ev_adjusted: float
    edge_score: int
    risk_tier: str
    rejection_reason: str | None = None


class PredictionResponse(BaseModel):
    """The selected market for a match."""

    fixture_id: int
    home_team: str
    away_team: str
    league_id: int
    league_name: str
    start_time: str
    market: str
    market_id: str
    probability: float
    implied_probability: float
    odds: float
    bet365_odds: float | None
    best_bookmaker: str
    edge: float
    ev: float
    ev_adjusted: float
    confidence: int
    edge_score: int
    risk_tier: str
    suggested_stake: float
    clv_projection: float
    simulation_win_freq: int
    confidence_interval: List[float]
    lambda_home: float
    lambda_away: float
    goal_distribution: List[float] | None = None
    scorelines: Dict[str, float] | None = None


class AnalysisResponse(BaseModel):
    """Response from POST /api/analysis. ``prediction`` is null when nothing qualified."""

    fixture_id: int
    lambda_home: float
    lambda_away: float
    confidence: int
    prediction: PredictionResponse | None
    candidates: List[CandidateResponse]
    simulation: Dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Accumulators
# ---------------------------------------------------------------------------

class FixtureLambdasIn(BaseModel):
    """A fixture with its final λ pair."""

    fixture_id: int
    home_team: str
    away_team: str
    league_id: int
    lambda_home: float = Field(..., gt=0, le=10)
    lambda_away: float = Field(..., gt=0, le=10)
    league_name: str = ""
    start_time: str = ""
    confidence: Optional[int] = Field(None, ge=0, le=100)
    best_bookmaker: str = ""


class AccaFreezeRequest(BaseModel):
    """Payload for POST /api/acca-freeze."""

    fixtures: List[FixtureLambdasIn]
    count: int = Field(10, ge=1, le=50, description="Number of accumulators to return")
    stake: float = Field(10.0, gt=0)
    odds: Dict[str, float] = Field(
        default_factory=dict,
        description='Best prices keyed "fixture_id:market_id"; missing prices are synthesised',
    )


class AccaLegResponse(BaseModel):
    fixture_id: int
    market_id: str
    team: str
    odds: float
    probability: float
    confidence: int
    start_time: str
    league_name: str
    league_id: int
    home_team: str
    away_team: str
    is_freeze_leg: bool
    status: str


class AccaResponse(BaseModel):
    id: str
    legs: List[AccaLegResponse]
    combined_odds: float
    combined_probability: float
    composite_confidence: int
    freeze_value: float
    full_payout: float
    safe_odds_product: float
    freeze_leg_odds: float
    freeze_recommendation: str
    ticket: str


class AccaMeta(BaseModel):
    total_fixtures: int
    win_predictions: int
    safe_legs_available: int
    freeze_legs_available: int
    generated_at: str


class AccaFreezeResponse(BaseModel):
    accas: List[AccaResponse]
    meta: AccaMeta


class LegStatusIn(BaseModel):
    odds: float = Field(..., gt=0)
    probability: float = Field(..., ge=0, le=1)
    status: Literal["pending", "won", "lost", "void"] = "pending"


class FreezeValueRequest(BaseModel):
    """Payload for POST /api/acca-freeze/value."""

    legs: List[LegStatusIn] = Field(..., min_length=1)
    stake: float = Field(10.0, gt=0)


class FreezeValueResponse(BaseModel):
    freeze_value: float
    recommendation: str


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------

class KellyRequest(BaseModel):
    """Payload for POST /api/kelly."""

    probability: float = Field(..., ge=0.0, le=1.0)
    odds: float = Field(..., description="Decimal odds")
    fraction: Optional[float] = Field(None, gt=0, le=1, description="Kelly multiplier")
    bankroll: Optional[float] = Field(None, gt=0)

    @field_validator("odds")
    @classmethod
    def validate_decimal_odds(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"odds={v} is not valid decimal odds")
        return v


class KellyResponse(BaseModel):
    full_kelly: float
    fractional_kelly: float
    suggested_stake: float
    stake_amount: float | None = None
    reasoning: str
