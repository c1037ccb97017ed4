"""
Accumulator ("ACCA Freeze") builder.

Builds 5-fold WIN-only accumulators designed around a bookmaker "acca
freeze" feature: four short-priced *safe* legs plus one long-priced
*freeze* leg the bettor can freeze once the safes have landed.

Pipeline:
    1. Split the day's WIN-type predictions into safe and freeze pools
    2. Enumerate C(n, 4) safe combinations under the per-league cap
    3. Pair each combination with up to three compatible freeze legs
    4. Rank by the safe legs' combined probability (the safes must land)
    5. Pick the top N, preferring distinct freeze legs
    6. As legs settle, track the freeze value and recommendation

Parlay legs are treated as independent; with at most two legs per league
the correlation this ignores is small.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Literal, Optional, Sequence

from edge_engine.core.engine_config import TIER_B
from edge_engine.core.odds_math import synthetic_odds
from edge_engine.core.poisson import build_score_matrix, derive_market_probabilities
from edge_engine.services.engine import MatchPrediction

logger = logging.getLogger(__name__)

LegStatus = Literal["pending", "won", "lost", "void"]
FreezeRecommendation = Literal["LET_IT_RIDE", "CONSIDER_FREEZING", "FREEZE_NOW", "ACCA_DEAD"]

SAFE_ODDS_MIN = 1.20
SAFE_ODDS_MAX = 2.00
FREEZE_ODDS_MIN = 3.00
FREEZE_ODDS_MAX = 22.50
MIN_EDGE_SCORE = 5
MAX_SAME_LEAGUE = 2
SAFE_LEG_COUNT = 4
MAX_SAFE_POOL = 16
MAX_FREEZE_POOL = 15
FREEZE_PAIRINGS_PER_COMBO = 3
DEFAULT_STAKE = 10.0

#: WIN-type market ids and the side each backs.
WIN_MARKET_SIDES: Dict[str, str] = {
    "result_home": "home",
    "dnb_home": "home",
    "draw_no_bet": "home",
    "result_away": "away",
    "dnb_away": "away",
    "draw_no_bet_away": "away",
}

# derive_win_predictions: markets priced from the score matrix.
MIN_DERIVED_PROBABILITY = 0.10
DEFAULT_DERIVED_CONFIDENCE = 65
FALLBACK_EDGE_SCORE = 5


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class AccaLeg:
    """One WIN-type selection inside an accumulator.  ``status`` changes as it settles."""

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
    is_freeze_leg: bool = False
    status: LegStatus = "pending"


@dataclass
class AccaFreeze:
    id: str
    legs: List[AccaLeg]
    combined_odds: float
    combined_probability: float
    composite_confidence: int
    freeze_value: float
    full_payout: float
    safe_odds_product: float
    freeze_leg_odds: float
    freeze_recommendation: FreezeRecommendation

    @property
    def freeze_leg(self) -> Optional[AccaLeg]:
        return next((leg for leg in self.legs if leg.is_freeze_leg), None)

    @property
    def safe_legs(self) -> List[AccaLeg]:
        return [leg for leg in self.legs if not leg.is_freeze_leg]


@dataclass(frozen=True)
class AccaScore:
    combined_odds: float
    combined_probability: float
    composite_confidence: int


@dataclass
class FixtureLambdas:
    """A fixture with its final λ pair, as fed to :func:`derive_win_predictions`."""

    fixture_id: int
    home_team: str
    away_team: str
    league_id: int
    lambda_home: float
    lambda_away: float
    league_name: str = ""
    start_time: str = ""
    confidence: Optional[int] = None
    best_bookmaker: str = ""


# ---------------------------------------------------------------------------
# Prediction → leg
# ---------------------------------------------------------------------------

def is_win_market(market_id: str) -> bool:
    return market_id in WIN_MARKET_SIDES


def _backed_side(market_id: str) -> str:
    return WIN_MARKET_SIDES.get(market_id, "home")


def _to_leg(pick: MatchPrediction, is_freeze_leg: bool) -> AccaLeg:
    side = _backed_side(pick.market_id)
    return AccaLeg(
        fixture_id=pick.fixture_id,
        market_id=pick.market_id,
        team=pick.home_team if side == "home" else pick.away_team,
        odds=pick.odds,
        probability=pick.probability,
        confidence=pick.confidence,
        start_time=pick.start_time,
        league_name=pick.league_name,
        league_id=pick.league_id,
        home_team=pick.home_team,
        away_team=pick.away_team,
        is_freeze_leg=is_freeze_leg,
    )


def _score_first_probability(pick: MatchPrediction) -> float:
    """Backed side's share of total expected goals (λ_side / λ_total)."""
    total = pick.lambda_home + pick.lambda_away
    if total <= 0:
        return 0.0
    side = _backed_side(pick.market_id)
    return (pick.lambda_home if side == "home" else pick.lambda_away) / total


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------

def filter_safe_legs(picks: Iterable[MatchPrediction]) -> List[AccaLeg]:
    """WIN-type picks priced 1.20–2.00 with edge score ≥ 5, max two per league.

    Selection favours probability; the returned legs are in kick-off order.
    """
    eligible = [
        p for p in picks
        if is_win_market(p.market_id)
        and SAFE_ODDS_MIN <= p.odds <= SAFE_ODDS_MAX
        and p.edge_score >= MIN_EDGE_SCORE
    ]
    eligible.sort(key=lambda p: p.probability, reverse=True)

    league_counts: Dict[int, int] = {}
    kept: List[MatchPrediction] = []
    for pick in eligible:
        count = league_counts.get(pick.league_id, 0)
        if count < MAX_SAME_LEAGUE:
            kept.append(pick)
            league_counts[pick.league_id] = count + 1

    return sorted((_to_leg(p, False) for p in kept), key=lambda leg: leg.start_time)


def filter_freeze_legs(picks: Iterable[MatchPrediction]) -> List[AccaLeg]:
    """WIN-type picks priced 3.00–22.50, one per fixture, top 15 by freeze potential.

    Freeze potential is ``score_first × (1 + odds / 20)``, favouring
    high-priced sides that still carry a real share of the goals.
    """
    best_per_fixture: Dict[int, MatchPrediction] = {}
    for pick in picks:
        if not is_win_market(pick.market_id):
            continue
        if not FREEZE_ODDS_MIN <= pick.odds <= FREEZE_ODDS_MAX:
            continue
        existing = best_per_fixture.get(pick.fixture_id)
        if existing is None or _score_first_probability(pick) > _score_first_probability(existing):
            best_per_fixture[pick.fixture_id] = pick

    ranked = sorted(
        best_per_fixture.values(),
        key=lambda p: _score_first_probability(p) * (1.0 + p.odds / 20.0),
        reverse=True,
    )
    return sorted(
        (_to_leg(p, True) for p in ranked[:MAX_FREEZE_POOL]),
        key=lambda leg: leg.start_time,
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def _product(values: Iterable[float]) -> float:
    result = 1.0
    for v in values:
        result *= v
    return result


def score_acca(legs: Sequence[AccaLeg]) -> AccaScore:
    """Combined odds (2 dp), probability (4 dp) and probability-weighted confidence."""
    total_prob = sum(leg.probability for leg in legs)
    if total_prob > 0:
        confidence = round(sum(leg.confidence * (leg.probability / total_prob) for leg in legs))
    else:
        confidence = 0
    return AccaScore(
        combined_odds=round(_product(leg.odds for leg in legs), 2),
        combined_probability=round(_product(leg.probability for leg in legs), 4),
        composite_confidence=confidence,
    )


def calculate_freeze_value(legs: Sequence[AccaLeg], stake: float = DEFAULT_STAKE) -> float:
    """
    Theoretical cash value of freezing the accumulator now.

        freeze_value = stake × Π(odds of won legs) × Π(probability of pending legs)

    A lost leg makes the value 0; void legs contribute a factor of 1.
    """
    if any(leg.status == "lost" for leg in legs):
        return 0.0
    won = _product(leg.odds for leg in legs if leg.status == "won")
    pending = _product(leg.probability for leg in legs if leg.status == "pending")
    return round(stake * won * pending, 2)


def get_freeze_recommendation(
    freeze_value: float,
    stake: float = DEFAULT_STAKE,
) -> FreezeRecommendation:
    """Map a freeze value to an action; exactly 2× stake is FREEZE_NOW."""
    if freeze_value == 0:
        return "ACCA_DEAD"
    if freeze_value < stake:
        return "LET_IT_RIDE"
    if freeze_value >= stake * 2:
        return "FREEZE_NOW"
    return "CONSIDER_FREEZING"


# ---------------------------------------------------------------------------
# Combination search
# ---------------------------------------------------------------------------

def _league_counts(legs: Iterable[AccaLeg]) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for leg in legs:
        counts[leg.league_id] = counts.get(leg.league_id, 0) + 1
    return counts


def _cap_safe_pool(safe_legs: Sequence[AccaLeg]) -> List[AccaLeg]:
    """Keep the MAX_SAFE_POOL most probable legs, preserving input order."""
    if len(safe_legs) <= MAX_SAFE_POOL:
        return list(safe_legs)
    ranked = sorted(range(len(safe_legs)), key=lambda i: safe_legs[i].probability, reverse=True)
    keep = set(ranked[:MAX_SAFE_POOL])
    return [leg for i, leg in enumerate(safe_legs) if i in keep]


def _copy_leg(leg: AccaLeg) -> AccaLeg:
    return AccaLeg(**{name: getattr(leg, name) for name in leg.__dataclass_fields__})


def build_accas(
    safe_legs: Sequence[AccaLeg],
    freeze_legs: Sequence[AccaLeg],
    count: int = 2,
    stake: float = DEFAULT_STAKE,
) -> List[AccaFreeze]:
    """
    Build the top ``count`` accumulators.

    Args:
        safe_legs: Output of :func:`filter_safe_legs`.
        freeze_legs: Output of :func:`filter_freeze_legs`.
        count: Number of accumulators to return.
        stake: Stake used for payout and freeze value.

    Returns:
        Up to ``count`` AccaFreeze objects, best first, each with legs in
        kick-off order.  Empty when there are fewer than four safe legs or
        no freeze leg.
    """
    if len(safe_legs) < SAFE_LEG_COUNT or not freeze_legs:
        return []

    pool = _cap_safe_pool(safe_legs)
    candidates: List[AccaFreeze] = []

    for combo in itertools.combinations(pool, SAFE_LEG_COUNT):
        league_counts = _league_counts(combo)
        if any(n > MAX_SAME_LEAGUE for n in league_counts.values()):
            continue

        fixture_ids = {leg.fixture_id for leg in combo}
        compatible = [
            f for f in freeze_legs
            if f.fixture_id not in fixture_ids
            and league_counts.get(f.league_id, 0) < MAX_SAME_LEAGUE
        ][:FREEZE_PAIRINGS_PER_COMBO]

        safe_odds = _product(leg.odds for leg in combo)
        for freeze in compatible:
            legs = [_copy_leg(leg) for leg in combo] + [_copy_leg(freeze)]
            score = score_acca(legs)
            freeze_value = calculate_freeze_value(legs, stake)
            candidates.append(
                AccaFreeze(
                    id="acca-" + "-".join(str(leg.fixture_id) for leg in legs),
                    legs=legs,
                    combined_odds=score.combined_odds,
                    combined_probability=score.combined_probability,
                    composite_confidence=score.composite_confidence,
                    freeze_value=freeze_value,
                    full_payout=round(stake * score.combined_odds, 2),
                    safe_odds_product=round(safe_odds, 2),
                    freeze_leg_odds=freeze.odds,
                    freeze_recommendation=get_freeze_recommendation(freeze_value, stake),
                )
            )

    candidates.sort(
        key=lambda a: _product(leg.probability for leg in a.safe_legs),
        reverse=True,
    )

    selected: List[AccaFreeze] = []
    used_freeze_fixtures = set()
    for candidate in candidates:
        if len(selected) >= count:
            break
        freeze = candidate.freeze_leg
        if freeze is not None and freeze.fixture_id not in used_freeze_fixtures:
            selected.append(candidate)
            used_freeze_fixtures.add(freeze.fixture_id)

    if len(selected) < count:
        chosen_ids = {a.id for a in selected}
        for candidate in candidates:
            if len(selected) >= count:
                break
            if candidate.id not in chosen_ids:
                selected.append(candidate)
                chosen_ids.add(candidate.id)

    for acca in selected:
        acca.legs.sort(key=lambda leg: leg.start_time)

    logger.info(
        "Built %d accumulators from %d candidates (%d safe, %d freeze legs)",
        len(selected), len(candidates), len(pool), len(freeze_legs),
    )
    return selected


def format_acca_ticket(acca: AccaFreeze) -> str:
    """
    Format an accumulator for human-readable display.

    Args:
        acca: Accumulator from build_accas()

    Returns:
        Formatted string for display
    """
    lines = []
    lines.append(f"🎫 {len(acca.legs)}-Fold Acca @ {acca.combined_odds:.2f}")
    for leg in acca.legs:
        tag = "FREEZE" if leg.is_freeze_leg else "SAFE  "
        lines.append(
            f"   [{tag}] {leg.team} ({leg.home_team} v {leg.away_team}) "
            f"@ {leg.odds:.2f} [{leg.status}]"
        )
    lines.append(f"   Combined Prob: {acca.combined_probability:.2%}")
    lines.append(f"   Confidence: {acca.composite_confidence}")
    lines.append(f"   Full Payout: {acca.full_payout:.2f}")
    lines.append(f"   Freeze Value: {acca.freeze_value:.2f} ({acca.freeze_recommendation})")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# WIN predictions from λ
# ---------------------------------------------------------------------------

OddsLookup = Callable[[int, str, str, str], Optional[float]]


def derive_win_predictions(
    fixtures: Iterable[FixtureLambdas],
    odds_lookup: Optional[OddsLookup] = None,
) -> List[MatchPrediction]:
    """
    Price home/away win and draw-no-bet for each fixture from its λ pair.

    ``odds_lookup(fixture_id, market_id, home_team, away_team)`` returns the
    best bookmaker price or ``None``.  When it fails or has no price, odds
    fall back to the fair price plus a 5% margin.  Markets under 10%
    probability are skipped.
    """
    predictions: List[MatchPrediction] = []

    for f in fixtures:
        if not f.lambda_home or not f.lambda_away:
            continue

        probs = derive_market_probabilities(build_score_matrix(f.lambda_home, f.lambda_away))
        markets = (
            ("result_home", f"{f.home_team} Win", probs.home_win),
            ("result_away", f"{f.away_team} Win", probs.away_win),
            ("dnb_home", f"{f.home_team} DNB", probs.dnb_home),
            ("dnb_away", f"{f.away_team} DNB", probs.dnb_away),
        )

        for market_id, label, prob in markets:
            if prob < MIN_DERIVED_PROBABILITY:
                continue

            odds = 0.0
            if odds_lookup is not None:
                try:
                    odds = odds_lookup(f.fixture_id, market_id, f.home_team, f.away_team) or 0.0
                except Exception as exc:
                    logger.warning(
                        "Odds lookup failed for %s (fixture %s): %s", label, f.fixture_id, exc
                    )
            if odds <= 0:
                odds = synthetic_odds(prob)
            if odds <= 0:
                continue

            implied = 1.0 / odds
            edge = prob - implied
            predictions.append(
                MatchPrediction(
                    fixture_id=f.fixture_id,
                    home_team=f.home_team,
                    away_team=f.away_team,
                    league_id=f.league_id,
                    league_name=f.league_name,
                    start_time=f.start_time,
                    market=label,
                    market_id=market_id,
                    probability=prob,
                    implied_probability=implied,
                    odds=odds,
                    bet365_odds=None,
                    best_bookmaker=f.best_bookmaker,
                    edge=edge,
                    ev=edge,
                    ev_adjusted=edge,
                    confidence=f.confidence or DEFAULT_DERIVED_CONFIDENCE,
                    edge_score=round(edge * 100) if edge > 0 else FALLBACK_EDGE_SCORE,
                    risk_tier=TIER_B,
                    suggested_stake=0.0,
                    clv_projection=0.0,
                    simulation_win_freq=0,
                    confidence_interval=(0.0, 0.0),
                    lambda_home=f.lambda_home,
                    lambda_away=f.lambda_away,
                )
            )

    return predictions
