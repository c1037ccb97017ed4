"""Market whitelist, odds matching and market evaluation.

Only markets on :data:`MARKET_WHITELIST` are ever evaluated.  Each
definition knows:

* which :class:`~edge_engine.core.poisson.MarketProbabilities` field
  carries its model probability (``prob_key``), and
* how to locate its price in the odds feed: provider market ids, plus
  optional label / threshold-name filters and a team-name filter for
  team-specific markets.

:func:`evaluate_market` prices a calibrated probability against the best
available odds.  It deliberately does **not** reject negative-edge
markets: every candidate is scored downstream and the orchestrator picks
the best one per match.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

from edge_engine.core.clv import CLVProjection
from edge_engine.core.engine_config import (
    BET365_BOOKMAKER_ID,
    ENGINE_CONFIG,
    PROVIDER_MARKETS,
    TIER_REJECT,
    EngineConfig,
    get_variance_multiplier,
)
from edge_engine.core.odds_math import expected_value, implied_prob
from edge_engine.core.risk import RiskAssessment

MarketTier = Literal["elite", "safe"]
TeamSide = Literal["home", "away"]

#: Number of leading characters of a team name used to match odds labels.
TEAM_PREFIX_LENGTH = 5


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketDefinition:
    id: str
    label: str
    tier: MarketTier
    prob_key: str
    provider_market_ids: Tuple[int, ...]
    provider_label: Optional[str] = None
    provider_name: Optional[str] = None
    team_side: Optional[TeamSide] = None

    @property
    def is_team_specific(self) -> bool:
        return self.team_side is not None

    def display_label(self, home_team: str, away_team: str) -> str:
        return self.label.replace("{home}", home_team).replace("{away}", away_team)


_PM = PROVIDER_MARKETS

#: Evaluation order doubles as the tie-break order for equal edge scores.
MARKET_WHITELIST: Tuple[MarketDefinition, ...] = (
    # Goal totals
    MarketDefinition("over_2.5", "Over 2.5 Goals", "elite", "over_2_5", _PM.over_under, "Over", "2.5"),
    MarketDefinition("under_2.5", "Under 2.5 Goals", "elite", "under_2_5", _PM.over_under, "Under", "2.5"),
    MarketDefinition("over_3.5", "Over 3.5 Goals", "elite", "over_3_5", _PM.over_under, "Over", "3.5"),
    MarketDefinition("under_3.5", "Under 3.5 Goals", "elite", "under_3_5", _PM.over_under, "Under", "3.5"),
    # BTTS
    MarketDefinition("btts", "Both Teams To Score", "elite", "btts_yes", _PM.btts, "Yes"),
    # BTTS + goals
    MarketDefinition("btts_over_2.5", "BTTS & Over 2.5", "elite", "btts_over_2_5", _PM.btts_goals, "Over 2.5 & Yes"),
    MarketDefinition("btts_under_2.5", "BTTS & Under 2.5", "elite", "btts_under_2_5", _PM.btts_goals, "Under 2.5 & Yes"),
    MarketDefinition("btts_over_3.5", "BTTS & Over 3.5", "elite", "btts_over_3_5", _PM.btts_goals, "Over 3.5 & Yes"),
    # BTTS + result
    MarketDefinition("btts_home_win", "{home} & BTTS", "elite", "btts_home_win", _PM.result_btts, team_side="home"),
    MarketDefinition("btts_away_win", "{away} & BTTS", "elite", "btts_away_win", _PM.result_btts, team_side="away"),
    # Team totals
    MarketDefinition("home_over_1.5", "{home} Over 1.5", "elite", "home_over_1_5", _PM.over_under, "Over", "1.5", "home"),
    MarketDefinition("away_over_1.5", "{away} Over 1.5", "elite", "away_over_1_5", _PM.over_under, "Over", "1.5", "away"),
    MarketDefinition("home_under_3.5", "{home} Under 3.5", "elite", "home_under_3_5", _PM.over_under, "Under", "3.5", "home"),
    MarketDefinition("away_under_3.5", "{away} Under 3.5", "elite", "away_under_3_5", _PM.over_under, "Under", "3.5", "away"),
    # Draw no bet
    MarketDefinition("draw_no_bet", "{home} (DNB)", "elite", "dnb_home", _PM.draw_no_bet, team_side="home"),
    MarketDefinition("draw_no_bet_away", "{away} (DNB)", "elite", "dnb_away", _PM.draw_no_bet, team_side="away"),
    # 1X2
    MarketDefinition("result_home", "{home} to Win", "elite", "home_win", _PM.match_winner, "Home", team_side="home"),
    MarketDefinition("result_draw", "Draw", "elite", "draw", _PM.match_winner, "Draw"),
    MarketDefinition("result_away", "{away} to Win", "elite", "away_win", _PM.match_winner, "Away", team_side="away"),
    # High-probability, low-odds
    MarketDefinition("over_1.5", "Over 1.5 Goals", "safe", "over_1_5", _PM.over_under, "Over", "1.5"),
    MarketDefinition("under_4.5", "Under 4.5 Goals", "safe", "under_4_5", _PM.over_under, "Under", "4.5"),
    MarketDefinition("btts_no", "BTTS: No", "safe", "btts_no", _PM.btts, "No"),
    # First half
    MarketDefinition("1h_over_0.5", "1st Half Over 0.5", "safe", "first_half_over_0_5", _PM.first_half_ou, "Over", "0.5"),
    MarketDefinition("1h_over_1.5", "1st Half Over 1.5", "safe", "first_half_over_1_5", _PM.first_half_ou, "Over", "1.5"),
    MarketDefinition("1h_under_0.5", "1st Half Under 0.5", "safe", "first_half_under_0_5", _PM.first_half_ou, "Under", "0.5"),
    MarketDefinition("1h_under_1.5", "1st Half Under 1.5", "safe", "first_half_under_1_5", _PM.first_half_ou, "Under", "1.5"),
)

MARKETS_BY_ID: Dict[str, MarketDefinition] = {m.id: m for m in MARKET_WHITELIST}


def resolve_market_label(market: MarketDefinition, home_team: str, away_team: str) -> str:
    """Display label with ``{home}`` / ``{away}`` substituted."""
    return market.display_label(home_team, away_team)


# ---------------------------------------------------------------------------
# Market families
# ---------------------------------------------------------------------------


def is_goal_market(market_id: str) -> bool:
    return "over" in market_id or "under" in market_id


def is_result_market(market_id: str) -> bool:
    """Win / draw-no-bet variants (``result_*``, ``draw_no_bet*``, ``dnb_*``)."""
    return market_id.startswith(("result_", "draw_no_bet", "dnb_"))


def market_family(market_id: str) -> str:
    """Coarse family used for diversification: goals, btts, result, else the id."""
    if is_goal_market(market_id):
        return "goals"
    if "btts" in market_id:
        return "btts"
    if "result" in market_id or "draw" in market_id or market_id.startswith("dnb_"):
        return "result"
    return market_id


# ---------------------------------------------------------------------------
# Odds matching
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OddsEntry:
    """One bookmaker price from the odds feed."""

    bookmaker_id: int
    bookmaker_name: str
    market_id: int
    label: str
    odds_name: str
    odds_value: float

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OddsEntry":
        """Build from a feed row; missing text fields become empty strings."""
        return cls(
            bookmaker_id=int(raw.get("bookmaker_id") or 0),
            bookmaker_name=str(raw.get("bookmaker_name") or ""),
            market_id=int(raw.get("market_id") or 0),
            label=str(raw.get("label") or ""),
            odds_name=str(raw.get("odds_name") or raw.get("name") or ""),
            odds_value=float(raw.get("odds_value") or raw.get("value") or 0.0),
        )


@dataclass(frozen=True)
class OddsMatch:
    best_odds: float
    bet365_odds: Optional[float]
    best_bookmaker: str
    bookmaker_count: int


def _label_matches(entry: OddsEntry, parts: Sequence[str]) -> bool:
    combined = f"{entry.label.lower()} {entry.odds_name.lower()}"
    return all(part in combined for part in parts)


def find_odds_for_market(
    odds: Iterable[OddsEntry],
    market: MarketDefinition,
    home_team: str,
    away_team: str,
) -> Optional[OddsMatch]:
    """Locate the best price for ``market`` in the odds feed.

    Filters, in order:

    1. Provider market id must be one of ``market.provider_market_ids``.
    2. Label filter (strict): split on ``&``; every part must occur in
       the lower-cased ``"label name"`` string.
    3. Threshold-name filter (strict): ``odds_name`` equals the name or
       ``label`` contains it.
    4. Team filter (lenient): prefer entries mentioning the first five
       characters of the team name; keep everything if none do.

    Returns:
        Best odds, the bet365 price if present, the best bookmaker and the
        number of distinct bookmakers, or ``None`` if nothing matched.
    """
    filtered: List[OddsEntry] = [o for o in odds if o.market_id in market.provider_market_ids]
    if not filtered:
        return None

    if market.provider_label:
        parts = [p.strip() for p in market.provider_label.lower().split("&")]
        filtered = [o for o in filtered if _label_matches(o, parts)]
        if not filtered:
            return None

    if market.provider_name:
        name = market.provider_name
        filtered = [o for o in filtered if o.odds_name == name or name in o.label]
        if not filtered:
            return None

    if market.team_side is not None:
        team = home_team if market.team_side == "home" else away_team
        prefix = team.lower()[:TEAM_PREFIX_LENGTH]
        by_team = [
            o for o in filtered
            if prefix in o.label.lower() or prefix in o.odds_name.lower()
        ]
        if by_team:
            filtered = by_team

    ranked = sorted(filtered, key=lambda o: o.odds_value, reverse=True)
    best = ranked[0]
    bet365 = next((o for o in ranked if o.bookmaker_id == BET365_BOOKMAKER_ID), None)

    return OddsMatch(
        best_odds=best.odds_value,
        bet365_odds=bet365.odds_value if bet365 else None,
        best_bookmaker=best.bookmaker_name,
        bookmaker_count=len({o.bookmaker_id for o in filtered}),
    )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluatedMarket:
    """One priced candidate for a match.

    The first block is set by :func:`evaluate_market`; the orchestrator
    fills the second block with :func:`dataclasses.replace`.
    """

    market_id: str
    label: str
    tier: MarketTier
    probability: float
    implied_probability: float
    edge: float
    odds: float
    bet365_odds: Optional[float]
    best_bookmaker: str
    bookmaker_count: int
    ev: float
    ev_adjusted: float
    variance_multiplier: float
    confidence: int
    is_result_market: bool

    confidence_interval: Tuple[float, float] = (0.0, 0.0)
    simulation_win_freq: int = 0
    clv_projection: Optional[CLVProjection] = None
    risk_assessment: Optional[RiskAssessment] = None
    edge_score: int = 0
    risk_tier: str = TIER_REJECT
    suggested_stake: float = 0.0

    @property
    def ci_width(self) -> float:
        return self.confidence_interval[1] - self.confidence_interval[0]


def evaluate_market(
    market: MarketDefinition,
    probability: float,
    odds: float,
    confidence: int,
    home_team: str,
    away_team: str,
    *,
    bet365_odds: Optional[float] = None,
    best_bookmaker: str = "",
    bookmaker_count: int = 0,
    config: EngineConfig = ENGINE_CONFIG,
) -> Optional[EvaluatedMarket]:
    """Price a calibrated probability against the market.

    ::

        implied     = 1 / odds
        edge        = p − implied
        ev          = p × odds − 1
        ev_adjusted = ev × (confidence / 100) × variance_multiplier

    Returns:
        ``None`` only for unusable inputs: ``odds ≤ 0``, ``p ≤ 0`` or odds
        above ``config.odds_max``.  Negative edge is *not* a rejection.
    """
    if odds <= 0 or probability <= 0 or odds > config.odds_max:
        return None

    variance_multiplier = get_variance_multiplier(market.id, odds)
    ev = expected_value(probability, odds)
    implied = implied_prob(odds)

    return EvaluatedMarket(
        market_id=market.id,
        label=market.display_label(home_team, away_team),
        tier=market.tier,
        probability=probability,
        implied_probability=implied,
        edge=probability - implied,
        odds=odds,
        bet365_odds=bet365_odds,
        best_bookmaker=best_bookmaker,
        bookmaker_count=bookmaker_count,
        ev=ev,
        ev_adjusted=ev * (confidence / 100.0) * variance_multiplier,
        variance_multiplier=variance_multiplier,
        confidence=confidence,
        is_result_market=is_result_market(market.id),
    )
